"""Hold the latest reply snapshot of a turn."""

from __future__ import annotations

from typing import Any

from chatstream.models import ReplyState, StreamFrame

EMPTY_REPLY_ERROR = "no reply data received"


class ReplyAccumulator:
    """Each frame is a full snapshot and replaces the previous one.

    A frame that arrives without a message or conversation id (for example
    an error frame with ``"message": null``) keeps the previous values for
    those fields.
    """

    def __init__(self) -> None:
        self._current = ReplyState()
        self.frames = 0
        self.has_content = False

    @property
    def current(self) -> ReplyState:
        return self._current

    def apply(self, frame: StreamFrame) -> ReplyState:
        previous = self._current
        carried: dict[str, Any] = {}
        if not frame.message_id and not frame.parts and previous.message_id:
            carried["message"] = previous.message
        if not frame.conversation_id and previous.conversation_id:
            carried["conversation_id"] = previous.conversation_id
        self._current = frame.model_copy(update=carried) if carried else frame
        self.frames += 1
        if frame.parts:
            self.has_content = True
        return self._current

    def finish(self, last_line: str = "") -> ReplyState:
        """Return the terminal reply for a cleanly closed stream."""
        update: dict[str, Any] = {"end": True}
        if not self.has_content:
            update["error"] = f"{EMPTY_REPLY_ERROR}: {last_line}" if last_line else EMPTY_REPLY_ERROR
        self._current = self._current.model_copy(update=update)
        return self._current

    def fail(self, error: str) -> ReplyState:
        """Return the current snapshot marked terminal with ``error``."""
        self._current = self._current.model_copy(update={"end": True, "error": error})
        return self._current
