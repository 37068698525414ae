"""Marketplace reads and owner-only actions on listings, requests and notifications."""

from typing import Optional

from unpair.models.listing import Listing
from unpair.models.notification import Notification
from unpair.models.request import SneakerRequest
from unpair.services.supabase_client import delete_row, get_row, select_rows, update_row
from unpair.services.users import get_profile
from unpair.utils.config import AppConfig
from unpair.utils.errors import NotFoundError, PermissionDeniedError
from unpair.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


async def list_feed(limit: Optional[int] = None) -> list[Listing]:
    """Newest listings first."""
    rows = await select_rows(
        AppConfig.LISTINGS_TABLE,
        order_by="created_at",
        desc=True,
        limit=limit or AppConfig.FEED_PAGE_SIZE,
    )
    return [Listing(**row) for row in rows]


async def get_listing(listing_id: str) -> Listing:
    row = await get_row(AppConfig.LISTINGS_TABLE, "listing_id", listing_id)
    if row is None:
        raise NotFoundError("Sneaker not found")
    return Listing(**row)


async def get_listing_detail(listing_id: str) -> dict:
    """Listing plus the seller's public name and contact email."""
    listing = await get_listing(listing_id)
    seller = await get_profile(listing.owner_id)
    return {
        **listing.model_dump(mode="json"),
        "seller": {
            "user_id": listing.owner_id,
            "name": seller.public_name if seller else "Unknown",
            "email": seller.email if seller else None,
            "photo_url": seller.photo_url if seller else None,
        },
    }


async def list_user_listings(user_id: str) -> list[Listing]:
    rows = await select_rows(
        AppConfig.LISTINGS_TABLE,
        filters={"owner_id": user_id},
        order_by="created_at",
        desc=True,
    )
    return [Listing(**row) for row in rows]


async def list_user_requests(user_id: str) -> list[SneakerRequest]:
    rows = await select_rows(
        AppConfig.REQUESTS_TABLE,
        filters={"owner_id": user_id},
        order_by="created_at",
        desc=True,
    )
    return [SneakerRequest(**row) for row in rows]


async def _delete_owned(table: str, id_column: str, record_id: str, user_id: str) -> None:
    row = await get_row(table, id_column, record_id)
    if row is None:
        raise NotFoundError()
    if row.get("owner_id") != user_id:
        raise PermissionDeniedError()
    await delete_row(table, id_column, record_id)
    logger.info(
        "Record deleted by owner",
        table=table,
        record_id=record_id,
        owner_id=mask_user_id(user_id),
    )


async def delete_listing(user_id: str, listing_id: str) -> None:
    await _delete_owned(AppConfig.LISTINGS_TABLE, "listing_id", listing_id, user_id)


async def delete_request(user_id: str, request_id: str) -> None:
    await _delete_owned(AppConfig.REQUESTS_TABLE, "request_id", request_id, user_id)


async def list_notifications(user_id: str, unread_only: bool = False) -> list[Notification]:
    filters = {"user_id": user_id}
    if unread_only:
        filters["read"] = False
    rows = await select_rows(
        AppConfig.NOTIFICATIONS_TABLE,
        filters=filters,
        order_by="created_at",
        desc=True,
    )
    return [Notification(**row) for row in rows]


async def mark_notification_read(user_id: str, notification_id: str) -> Notification:
    """Flip the read flag; the only mutation a notification ever gets."""
    row = await get_row(AppConfig.NOTIFICATIONS_TABLE, "notification_id", notification_id)
    if row is None:
        raise NotFoundError("Notification not found")
    if row.get("user_id") != user_id:
        raise PermissionDeniedError("That notification isn't yours")
    if row.get("read"):
        return Notification(**row)
    updated = await update_row(
        AppConfig.NOTIFICATIONS_TABLE,
        "notification_id",
        notification_id,
        {"read": True},
    )
    return Notification(**updated)
