import asyncio

import pytest

from chatstream import logging_utils


def test_bind_turn_is_scoped_to_the_running_task() -> None:
    async def tagged() -> str:
        logging_utils.bind_turn("turn-42")
        return logging_utils.current_turn()

    assert asyncio.run(tagged()) == "turn-42"
    assert logging_utils.current_turn() == "-"


class FakeLogger:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.formats: list[str] = []

    def remove(self, *args: object) -> None:
        self.calls.append("remove")

    def add(self, *args: object, **kwargs: object) -> None:
        self.calls.append(f"add level={kwargs['level']}")
        self.formats.append(str(kwargs["format"]))

    def configure(self, **kwargs: object) -> None:
        self.calls.append("configure")


def test_configure_logging_once_per_profile(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeLogger()
    monkeypatch.setattr(logging_utils, "logger", fake)
    monkeypatch.setattr(logging_utils, "_CONFIGURED_PROFILE", None)

    logging_utils.configure_logging(profile="default", level="debug")
    logging_utils.configure_logging(profile="default")

    assert fake.calls == ["remove", "add level=DEBUG", "configure"]


def test_chat_profile_uses_its_format(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeLogger()
    monkeypatch.setattr(logging_utils, "logger", fake)
    monkeypatch.setattr(logging_utils, "_CONFIGURED_PROFILE", None)

    logging_utils.configure_logging(profile="chat")

    assert fake.formats == [logging_utils._PROFILE_FORMATS["chat"]]
    assert "{extra[turn]}" in fake.formats[0]
