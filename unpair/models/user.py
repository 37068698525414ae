"""User profile model - public profile row mirrored from Supabase Auth."""

from typing import Optional
from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """Public profile of an app user."""
    user_id: str = Field(..., description="Supabase Auth user ID")
    email: Optional[str] = Field(None, description="Email address")
    display_name: Optional[str] = Field(None, description="Name shown to other users")
    photo_url: Optional[str] = Field(None, description="Profile photo URL")
    email_verified: bool = Field(default=False, description="Whether the email was confirmed")
    created_at: Optional[str] = None

    @property
    def public_name(self) -> str:
        """Display name, falling back to the email's local part."""
        if self.display_name:
            return self.display_name
        if self.email:
            return self.email.split("@")[0]
        return "Unknown"
