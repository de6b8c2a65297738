"""Decode ``data:`` lines of an event stream into reply frames."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator

from loguru import logger
from pydantic import ValidationError

from chatstream.models import StreamFrame

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def parse_data_line(line: str) -> StreamFrame | None:
    """Parse one stream line.

    Returns None for lines that carry no frame: non-data lines and the
    ``[DONE]`` marker. Raises ``ValidationError`` for malformed payloads.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX) :].strip()
    if payload == DONE_SENTINEL:
        return None
    return StreamFrame.model_validate_json(payload)


class StreamDecoder:
    """Async iterator of frames pulled lazily from a line source.

    Malformed data lines are logged and skipped. Errors raised by the line
    source propagate to the caller unchanged.
    """

    def __init__(self, lines: AsyncIterable[str]) -> None:
        self._lines = lines
        self.last_line = ""
        self.frames_decoded = 0
        self.lines_skipped = 0

    def __aiter__(self) -> AsyncIterator[StreamFrame]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[StreamFrame]:
        async for raw in self._lines:
            line = raw.rstrip("\r\n")
            if not line:
                continue
            self.last_line = line
            try:
                frame = parse_data_line(line)
            except ValidationError as exc:
                self.lines_skipped += 1
                logger.warning("stream.frame.malformed error_count={} line={!r}", exc.error_count(), line[:200])
                continue
            if frame is None:
                continue
            self.frames_decoded += 1
            yield frame
