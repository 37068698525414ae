"""Request model - a "looking for" post."""

from typing import Optional
from pydantic import Field

from unpair.models.listing import SneakerFields


class RequestForm(SneakerFields):
    """What the buyer fills in on the search screen."""


class SneakerRequest(RequestForm):
    """Search request as stored in the search_requests table."""
    request_id: str = Field(..., description="Request ID (ULID)")
    owner_id: str = Field(..., description="Auth user ID of the requester")
    created_at: Optional[str] = None
