"""Conversation and message models."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator


class Conversation(BaseModel):
    """Two-party chat thread keyed by the sorted participant ids."""
    conversation_id: str = Field(..., description="Sorted participant ids joined by '_'")
    participants: list[str] = Field(..., min_length=2, max_length=2, description="The two user IDs")
    last_message: Optional[str] = Field(None, description="Preview of the latest message")
    last_message_time: Optional[str] = Field(None, description="Timestamp of the latest message")
    created_at: Optional[str] = None

    def other_participant(self, user_id: str) -> Optional[str]:
        for participant in self.participants:
            if participant != user_id:
                return participant
        return None


class Message(BaseModel):
    """Single chat message. Append-only."""
    message_id: str = Field(..., description="Message ID (ULID)")
    conversation_id: str = Field(..., description="Conversation ID")
    sender_id: str = Field(..., description="Sender user ID")
    text: str = Field(..., min_length=1, max_length=4000, description="Message text")
    created_at: Optional[str] = None

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value
