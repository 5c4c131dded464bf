from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageMetadata(BaseModel):
    """Optional details the UI attaches to assistant messages."""

    confidence: float | None = None
    sources: list[dict] | None = None
    processing_time_ms: float | None = None
    error: bool | None = None


class ConversationMessage(BaseModel):
    type: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: MessageMetadata | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value):
        # older clients still send "bot"
        if isinstance(value, str) and value.strip().lower() == "bot":
            return "assistant"
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("content")
    @classmethod
    def _require_content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be empty")
        return value


class Conversation(BaseModel):
    user_id: str
    messages: list[ConversationMessage] = Field(default_factory=list)
    last_activity_at: datetime = Field(default_factory=utcnow)
