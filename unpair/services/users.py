"""User profile lookups and updates (users table)."""

from typing import Iterable, Optional

from unpair.models.user import UserProfile
from unpair.services.storage import PROFILE_IMAGES_FOLDER, upload_image
from unpair.services.supabase_client import get_row, upsert_row, utc_now
from unpair.utils.config import AppConfig
from unpair.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


async def get_profile(user_id: str) -> Optional[UserProfile]:
    row = await get_row(AppConfig.USERS_TABLE, "user_id", user_id)
    return UserProfile(**row) if row else None


async def get_profiles(user_ids: Iterable[str]) -> dict[str, UserProfile]:
    """Profiles keyed by user id; unknown users are simply absent."""
    profiles = {}
    for user_id in dict.fromkeys(user_ids):
        profile = await get_profile(user_id)
        if profile is not None:
            profiles[user_id] = profile
    return profiles


async def save_profile(
    user_id: str,
    email: Optional[str],
    email_verified: bool = False,
    display_name: Optional[str] = None,
    photo_url: Optional[str] = None,
) -> UserProfile:
    """Create or merge the public profile row for a user."""
    existing = await get_profile(user_id)
    profile = UserProfile(
        user_id=user_id,
        email=email or (existing.email if existing else None),
        display_name=display_name
        or (existing.display_name if existing else None)
        or (email.split("@")[0] if email else None),
        photo_url=photo_url or (existing.photo_url if existing else None),
        email_verified=email_verified or (existing.email_verified if existing else False),
        created_at=existing.created_at if existing else utc_now(),
    )
    stored = await upsert_row(AppConfig.USERS_TABLE, profile.model_dump(mode="json"))
    logger.info("Profile saved", user_id=mask_user_id(user_id), created=existing is None)
    return UserProfile(**stored)


async def update_profile_photo(user_id: str, image: bytes) -> UserProfile:
    """Upload a new profile photo and point the profile at it."""
    photo_url = await upload_image(PROFILE_IMAGES_FOLDER, user_id, image)
    existing = await get_profile(user_id)
    return await save_profile(
        user_id,
        email=existing.email if existing else None,
        photo_url=photo_url,
    )
