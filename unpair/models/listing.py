"""Listing models - a single sneaker posted for sale."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from unpair.utils.config import SNEAKER_SIZES


class FootSide(str, Enum):
    """Which foot the sneaker is for."""
    LEFT = "left"
    RIGHT = "right"


def normalize_key(value: str) -> str:
    """Canonical form used for foot, brand, size and model: stripped, lowercase."""
    return value.strip().lower()


class SneakerFields(BaseModel):
    """Fields shared by listings and requests, normalized on the way in."""
    foot: FootSide = Field(..., description="left or right")
    brand: str = Field(..., min_length=1, description="Brand, lowercased")
    model: Optional[str] = Field(None, description="Model name, lowercased")
    size: str = Field(..., min_length=1, description="US size as shown by the size picker")

    @field_validator("foot", mode="before")
    @classmethod
    def _normalize_foot(cls, value):
        if isinstance(value, str):
            return normalize_key(value)
        return value

    @field_validator("brand", "size", mode="before")
    @classmethod
    def _normalize_required(cls, value):
        if isinstance(value, str):
            return normalize_key(value)
        return value

    @field_validator("model", mode="before")
    @classmethod
    def _normalize_model(cls, value):
        if isinstance(value, str):
            return normalize_key(value) or None
        return value

    @field_validator("size")
    @classmethod
    def _known_size(cls, value: str) -> str:
        if value not in SNEAKER_SIZES:
            raise ValueError(f"size must be one of {', '.join(SNEAKER_SIZES)}")
        return value

    def match_key(self) -> tuple[str, str, str]:
        """The (foot, brand, size) triple listings and requests are matched on."""
        return (self.foot.value, self.brand, self.size)

    def describe(self) -> str:
        """Human-readable description used in notification messages."""
        model = f" {self.model}" if self.model else ""
        return f"{self.foot.value} foot {self.brand}{model} (Size {self.size})"


class ListingForm(SneakerFields):
    """What the seller fills in on the sell screen."""
    condition: str = Field(..., min_length=1, description="Condition, free text")

    @field_validator("condition", mode="before")
    @classmethod
    def _strip_condition(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class Listing(ListingForm):
    """Sneaker listing as stored in the listings table."""
    listing_id: str = Field(..., description="Listing ID (ULID)")
    owner_id: str = Field(..., description="Auth user ID of the seller")
    image_urls: list[str] = Field(..., min_length=1, description="Public image URLs")
    created_at: Optional[str] = None
