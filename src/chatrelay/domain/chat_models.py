from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


ThreadStatus = Literal["assistant_active", "human_requested", "human_active", "closed"]
SenderType = Literal["user", "assistant", "human_agent"]

DEFAULT_SENDER_NAME = "Guest"


class Thread(BaseModel):
    thread_id: str
    user_id: str
    user_email: str
    status: ThreadStatus = "assistant_active"
    last_message_at: str
    created_at: str
    updated_at: str


class Message(BaseModel):
    message_id: str
    thread_id: str
    content: str = Field(min_length=1)
    sender_type: SenderType
    sender_name: str
    sender_uid: Optional[str] = None
    created_at: str


class MessageCreate(BaseModel):
    """Fields a caller supplies when appending; id and timestamp come from the store."""

    content: str = Field(min_length=1)
    sender_type: SenderType
    sender_name: str = Field(min_length=1)
    sender_uid: Optional[str] = None


class SendMessagePayload(BaseModel):
    """Inbound ``send_message`` event body."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str = Field(min_length=1)
    email: str = Field(min_length=1)
    content: str = Field(min_length=1)
    sender_name: Optional[str] = Field(default=None, alias="senderName")

    @field_validator("sender_name", mode="before")
    @classmethod
    def _ignore_non_text_name(cls, value: Any) -> Optional[str]:
        # a display name that is not text falls back to the default
        return value if isinstance(value, str) else None

    @property
    def display_name(self) -> str:
        return self.sender_name or DEFAULT_SENDER_NAME


class MessageOut(BaseModel):
    """Wire shape shared by ``receive_message`` and the history endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    content: str
    sender_type: SenderType = Field(alias="senderType")
    sender_name: str = Field(alias="senderName")
    timestamp: str

    @classmethod
    def from_message(cls, message: Message) -> "MessageOut":
        return cls(
            id=message.message_id,
            content=message.content,
            sender_type=message.sender_type,
            sender_name=message.sender_name,
            timestamp=message.created_at,
        )


@dataclass(frozen=True)
class Delivered:
    message: Message

    def to_wire(self) -> MessageOut:
        return MessageOut.from_message(self.message)


@dataclass(frozen=True)
class Fallback:
    """Apology reply that is sent but never stored."""

    text: str
    reply_id: str
    sender_name: str
    timestamp: str

    def to_wire(self) -> MessageOut:
        return MessageOut(
            id=self.reply_id,
            content=self.text,
            sender_type="assistant",
            sender_name=self.sender_name,
            timestamp=self.timestamp,
        )


RelayOutcome = Union[Delivered, Fallback]
