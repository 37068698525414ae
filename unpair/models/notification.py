"""Notification model."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    MATCH = "match"


class Notification(BaseModel):
    """One-way message telling a user a match was found."""
    notification_id: str = Field(..., description="Notification ID (ULID)")
    user_id: str = Field(..., description="User the notification is addressed to")
    type: NotificationType = Field(default=NotificationType.MATCH, description="Notification type")
    message: str = Field(..., description="Human-readable message")
    listing_id: Optional[str] = Field(None, description="Listing that triggered or satisfied the match")
    request_id: Optional[str] = Field(None, description="Request that triggered or satisfied the match")
    read: bool = Field(default=False, description="Read flag")
    created_at: Optional[str] = None
