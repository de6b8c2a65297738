from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from chatstream.bus import Subscription
from chatstream.config import Settings
from chatstream.models import Notification

ENDPOINT = "https://chat.test/backend-api/conversation"


def reply_payload(text: str | None, *, message_id: str = "reply-1", conversation_id: str = "conv-1") -> dict[str, Any]:
    parts = [] if text is None else [text]
    return {
        "message": {
            "id": message_id,
            "role": "assistant",
            "user": None,
            "create_time": None,
            "update_time": None,
            "content": {"content_type": "text", "parts": parts},
            "end_turn": None,
            "weight": 1.0,
            "metadata": {},
            "recipient": "all",
        },
        "conversation_id": conversation_id,
        "error": None,
    }


def sse_body(*lines: str | dict[str, Any]) -> bytes:
    rendered: list[str] = []
    for line in lines:
        if isinstance(line, dict):
            rendered.append(f"data: {json.dumps(line)}")
        else:
            rendered.append(line)
        rendered.append("")
    return ("\n".join(rendered) + "\n").encode("utf-8")


class RecordingTransport(httpx.MockTransport):
    """Mock transport that keeps every request it receives."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


async def drain(subscription: Subscription) -> list[Notification]:
    received: list[Notification] = []
    while subscription.pending():
        notification = await subscription.get()
        if notification is None:
            break
        received.append(notification)
    return received


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, endpoint_url=ENDPOINT, access_token="token-1")
