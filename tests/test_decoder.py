from __future__ import annotations

import json
from collections.abc import AsyncIterator

import pytest
from conftest import reply_payload
from pydantic import ValidationError

from chatstream.decoder import StreamDecoder, parse_data_line


async def _lines(*lines: str, error: Exception | None = None) -> AsyncIterator[str]:
    for line in lines:
        yield line
    if error is not None:
        raise error


def _data(text: str) -> str:
    return f"data: {json.dumps(reply_payload(text))}"


def test_parse_data_line_ignores_non_data_and_done() -> None:
    assert parse_data_line(": keepalive") is None
    assert parse_data_line("event: ping") is None
    assert parse_data_line("data: [DONE]") is None
    assert parse_data_line("data: [DONE]\n") is None


def test_parse_data_line_raises_on_malformed_payload() -> None:
    with pytest.raises(ValidationError):
        parse_data_line('data: {"message": {"id": ')


def test_parse_data_line_returns_snapshot() -> None:
    frame = parse_data_line(_data("partial"))

    assert frame is not None
    assert frame.text == "partial"
    assert frame.conversation_id == "conv-1"


@pytest.mark.asyncio
async def test_decoder_skips_malformed_lines_and_keeps_going() -> None:
    decoder = StreamDecoder(_lines(_data("a"), "", 'data: {"broken', "", _data("ab"), "data: [DONE]"))

    frames = [frame async for frame in decoder]

    assert [frame.text for frame in frames] == ["a", "ab"]
    assert decoder.frames_decoded == 2
    assert decoder.lines_skipped == 1
    assert decoder.last_line == "data: [DONE]"


@pytest.mark.asyncio
async def test_decoder_empty_stream_yields_nothing() -> None:
    decoder = StreamDecoder(_lines())

    frames = [frame async for frame in decoder]

    assert frames == []
    assert decoder.last_line == ""


@pytest.mark.asyncio
async def test_decoder_propagates_source_errors() -> None:
    decoder = StreamDecoder(_lines(_data("a"), error=ConnectionResetError("reset")))
    seen: list[str] = []

    with pytest.raises(ConnectionResetError):
        async for frame in decoder:
            seen.append(frame.text)

    assert seen == ["a"]


def test_parse_data_line_accepts_null_fields() -> None:
    raw = reply_payload("hello world")
    raw["message"].update({"recipient": None, "weight": None})

    frame = parse_data_line(f"data: {json.dumps(raw)}")

    assert frame is not None
    assert frame.text == "hello world"
    assert frame.message.recipient is None
