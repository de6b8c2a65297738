"""Exception types for chatstream."""

from __future__ import annotations


class ChatStreamError(Exception):
    """Base exception for chatstream."""


class ConfigurationError(ChatStreamError):
    """Raised when required settings are missing or invalid."""


class TurnError(ChatStreamError):
    """Base exception for a failed turn."""

    def __init__(self, message: str, *, turn_id: str | None = None) -> None:
        super().__init__(message)
        self.turn_id = turn_id


class TurnCancelledError(TurnError):
    """Raised when a turn is aborted by its cancellation signal."""


class TransportError(TurnError):
    """Raised on connection failures, non-200 responses and stream read errors."""

    def __init__(self, message: str, *, turn_id: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message, turn_id=turn_id)
        self.status_code = status_code


class ProtocolError(TurnError):
    """Reserved for unrecoverable stream format errors."""
