"""Request, reply and notification models."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_MODEL = "text-davinci-002-render"
NEXT_ACTION = "next"


def _default_if_null(model: type[BaseModel], value: Any, info: ValidationInfo) -> Any:
    if value is None and info.field_name is not None:
        return model.model_fields[info.field_name].get_default(call_default_factory=True)
    return value


class TurnState(StrEnum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class MessageContent(BaseModel):
    """Content block shared by outbound messages and reply snapshots."""

    model_config = ConfigDict(frozen=True)

    content_type: str = "text"
    parts: list[str] = Field(default_factory=list)

    @field_validator("content_type", "parts", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        return _default_if_null(cls, value, info)


class InputMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: str = "user"
    content: MessageContent


class TurnRequest(BaseModel):
    """Body of one conversation POST."""

    model_config = ConfigDict(frozen=True)

    action: str = NEXT_ACTION
    messages: list[InputMessage]
    conversation_id: str | None = None
    parent_message_id: str | None = None
    model: str = DEFAULT_MODEL

    @classmethod
    def for_question(
        cls,
        question: str,
        *,
        message_id: str,
        conversation_id: str | None = None,
        parent_message_id: str | None = None,
        model: str = DEFAULT_MODEL,
    ) -> TurnRequest:
        return cls(
            messages=[
                InputMessage(
                    id=message_id,
                    role="user",
                    content=MessageContent(content_type="text", parts=[question]),
                )
            ],
            conversation_id=conversation_id or None,
            parent_message_id=parent_message_id or None,
            model=model,
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body, leaving out unset continuation identifiers."""
        return self.model_dump(exclude_none=True)


class ReplyMessage(BaseModel):
    """Assistant message inside a reply snapshot.

    Only ``id``, ``role`` and ``content`` are read by the client. The other
    fields are carried through as the upstream service sends them. A
    ``null`` in a field the client reads falls back to its default.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = ""
    role: str = ""
    content: MessageContent = Field(default_factory=MessageContent)
    user: Any = None
    create_time: Any = None
    update_time: Any = None
    end_turn: Any = None
    weight: Any = None
    metadata: Any = None
    recipient: Any = None

    @field_validator("id", "role", "content", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        return _default_if_null(cls, value, info)


class ReplyState(BaseModel):
    """Best-known state of the assistant reply during one turn."""

    model_config = ConfigDict(frozen=True, extra="allow")

    message: ReplyMessage = Field(default_factory=ReplyMessage)
    conversation_id: str = ""
    error: Any = None
    end: bool = False

    @field_validator("message", "conversation_id", "end", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        return _default_if_null(cls, value, info)

    @property
    def message_id(self) -> str:
        return self.message.id

    @property
    def parts(self) -> list[str]:
        return self.message.content.parts

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def failed(self) -> bool:
        return self.error is not None and self.error != ""


StreamFrame = ReplyState


@dataclass
class ConversationContext:
    """Continuation state linking a turn to the previous one."""

    conversation_id: str | None = None
    parent_message_id: str | None = None

    def copy(self) -> ConversationContext:
        return ConversationContext(self.conversation_id, self.parent_message_id)


@dataclass(frozen=True)
class Notification:
    """One reply snapshot delivered through the notification bus."""

    correlation_id: str
    turn_id: str
    reply: ReplyState
    created_at: float = field(default_factory=time.time)

    @property
    def terminal(self) -> bool:
        return self.reply.end

    @classmethod
    def for_reply(cls, turn_id: str, reply: ReplyState) -> Notification:
        correlation_id = reply.message_id or str(time.time_ns())
        return cls(correlation_id=correlation_id, turn_id=turn_id, reply=reply)

    def copy(self) -> Notification:
        return Notification(
            correlation_id=self.correlation_id,
            turn_id=self.turn_id,
            reply=self.reply.model_copy(deep=True),
            created_at=self.created_at,
        )


def new_message_id() -> str:
    return str(uuid.uuid4())
