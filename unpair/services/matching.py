"""Match-and-notify workflow for listings and "looking for" requests.

Posting a listing scans open requests for the same (foot, brand, size) and
notifies each requester; posting a request scans listings and notifies each
seller. Matching is exact string equality on the normalized triple. The
record write and the notification step are separate operations: if the
second one fails the record stays and the caller gets a MatchingError.
"""

from typing import Optional, Union
from pydantic import BaseModel, Field, ValidationError

from unpair.models.listing import Listing, ListingForm, SneakerFields
from unpair.models.notification import Notification, NotificationType
from unpair.models.request import RequestForm, SneakerRequest
from unpair.services.storage import LISTING_IMAGES_FOLDER, delete_images, upload_image
from unpair.services.supabase_client import (
    claim_submission_key,
    generate_id,
    get_row,
    insert_row,
    is_duplicate_key_error,
    select_rows,
    utc_now,
)
from unpair.utils.config import AppConfig
from unpair.utils.errors import FormValidationError, MatchingError, SupabaseError, UnpairError
from unpair.utils.logging import (
    get_structured_logger,
    log_timing,
    mask_user_id,
)

logger = get_structured_logger(__name__)


class SubmissionResult(BaseModel):
    """Outcome of posting a listing or request."""
    record: Union[Listing, SneakerRequest]
    notifications: list[Notification] = Field(default_factory=list)
    replayed: bool = Field(default=False, description="True when an idempotency key was reused")


def is_match(a: SneakerFields, b: SneakerFields) -> bool:
    return a.match_key() == b.match_key()


def listing_match_message(listing: Listing) -> str:
    return f"A {listing.describe()} is now available!"


def request_match_message(request: SneakerRequest) -> str:
    return f"Someone is looking for a {request.describe()}!"


def _form_error(error: ValidationError) -> FormValidationError:
    fields = sorted({str(item["loc"][0]) for item in error.errors() if item.get("loc")})
    if fields:
        return FormValidationError(f"Please check: {', '.join(fields)}")
    return FormValidationError()


def parse_listing_form(data: dict) -> ListingForm:
    if not data.get("brand") or not data.get("size") or not data.get("condition"):
        raise FormValidationError("Please fill all fields and add an image")
    try:
        return ListingForm(**data)
    except ValidationError as e:
        raise _form_error(e)


def parse_request_form(data: dict) -> RequestForm:
    if not data.get("brand") or not data.get("size"):
        raise FormValidationError("Please fill at least brand and size")
    try:
        return RequestForm(**data)
    except ValidationError as e:
        raise _form_error(e)


async def find_matching_rows(table: str, fields: SneakerFields, exclude_owner_id: str) -> list[dict]:
    """Rows in `table` with the same match key, minus the submitter's own posts."""
    foot, brand, size = fields.match_key()
    rows = await select_rows(table, filters={"foot": foot, "brand": brand, "size": size})
    return [
        row for row in rows
        if row.get("owner_id") != exclude_owner_id and is_match(fields, SneakerFields.model_validate(row))
    ]


async def _emit_notification(
    user_id: str,
    message: str,
    listing_id: Optional[str],
    request_id: Optional[str],
) -> Notification:
    notification = Notification(
        notification_id=generate_id(),
        user_id=user_id,
        type=NotificationType.MATCH,
        message=message,
        listing_id=listing_id,
        request_id=request_id,
        read=False,
        created_at=utc_now(),
    )
    stored = await insert_row(AppConfig.NOTIFICATIONS_TABLE, notification.model_dump(mode="json"))
    return Notification(**stored)


async def notify_matches_for_listing(listing: Listing) -> list[Notification]:
    """Notify the owner of every request that matches a new listing."""
    matches = await find_matching_rows(AppConfig.REQUESTS_TABLE, listing, listing.owner_id)
    message = listing_match_message(listing)
    notifications = []
    for row in matches:
        notifications.append(
            await _emit_notification(
                user_id=row["owner_id"],
                message=message,
                listing_id=listing.listing_id,
                request_id=row.get("request_id"),
            )
        )
    return notifications


async def notify_matches_for_request(request: SneakerRequest) -> list[Notification]:
    """Notify the owner of every listing that matches a new request."""
    matches = await find_matching_rows(AppConfig.LISTINGS_TABLE, request, request.owner_id)
    message = request_match_message(request)
    notifications = []
    for row in matches:
        notifications.append(
            await _emit_notification(
                user_id=row["owner_id"],
                message=message,
                listing_id=row.get("listing_id"),
                request_id=request.request_id,
            )
        )
    return notifications


async def _load_record(record_type: str, record_id: str) -> Optional[Union[Listing, SneakerRequest]]:
    if record_type == "listing":
        row = await get_row(AppConfig.LISTINGS_TABLE, "listing_id", record_id)
        return Listing(**row) if row else None
    row = await get_row(AppConfig.REQUESTS_TABLE, "request_id", record_id)
    return SneakerRequest(**row) if row else None


def _replay(record: Union[Listing, SneakerRequest], record_type: str, record_id: str) -> SubmissionResult:
    logger.info("Replayed submission", record_type=record_type, record_id=record_id)
    return SubmissionResult(record=record, notifications=[], replayed=True)


async def _claim_submission(
    idempotency_key: Optional[str],
    record_type: str,
) -> tuple[str, Optional[SubmissionResult]]:
    """Pick the record id for a submission and detect replays.

    The key is reserved before anything else is written. A retry of a
    submission whose record was never stored gets the same record id back,
    so the record's primary key keeps it to a single row.
    """
    record_id = generate_id()
    if not idempotency_key:
        return record_id, None

    claimed = await claim_submission_key(idempotency_key, record_type, record_id)
    if claimed.get("record_type") != record_type:
        raise FormValidationError("Idempotency key was already used for a different post", title="Bad request")
    if claimed["record_id"] == record_id:
        return record_id, None

    record = await _load_record(record_type, claimed["record_id"])
    if record is not None:
        return claimed["record_id"], _replay(record, record_type, claimed["record_id"])
    return claimed["record_id"], None


async def _store_record(table: str, record, record_type: str, record_id: str):
    """Insert the record; a duplicate key means a concurrent retry stored it first."""
    try:
        return await insert_row(table, record.model_dump(mode="json"))
    except SupabaseError as e:
        if not is_duplicate_key_error(e):
            raise
    existing = await _load_record(record_type, record_id)
    if existing is None:
        raise SupabaseError(f"Failed to insert into {table}: duplicate {record_id} not found")
    return _replay(existing, record_type, record_id)


async def submit_listing(
    owner_id: str,
    form: ListingForm,
    images: list[bytes],
    idempotency_key: Optional[str] = None,
) -> SubmissionResult:
    """Upload images, store the listing, then notify matching requesters.

    If the listing cannot be stored, the images uploaded for it are removed.
    """
    if not images:
        raise FormValidationError("Please fill all fields and add an image")

    listing_id, replay = await _claim_submission(idempotency_key, "listing")
    if replay is not None:
        return replay

    image_urls = []
    try:
        for index, data in enumerate(images):
            image_urls.append(await upload_image(LISTING_IMAGES_FOLDER, owner_id, data, index=index))

        listing = Listing(
            **form.model_dump(),
            listing_id=listing_id,
            owner_id=owner_id,
            image_urls=image_urls,
            created_at=utc_now(),
        )
        stored = await _store_record(AppConfig.LISTINGS_TABLE, listing, "listing", listing_id)
    except UnpairError:
        await _discard_images(image_urls, listing_id)
        raise

    if isinstance(stored, SubmissionResult):
        await _discard_images(image_urls, listing_id)
        return stored
    listing = Listing(**stored)

    logger.info(
        "Listing created",
        listing_id=listing.listing_id,
        owner_id=mask_user_id(owner_id),
        foot=listing.foot.value,
        brand=listing.brand,
        size=listing.size,
        image_count=len(image_urls),
    )

    try:
        with log_timing("notify_matches_for_listing", logger=logger, listing_id=listing.listing_id):
            notifications = await notify_matches_for_listing(listing)
    except UnpairError as e:
        logger.error(
            "Match notification failed after listing was created",
            listing_id=listing.listing_id,
            error=e.message,
        )
        raise MatchingError(record_id=listing.listing_id) from e

    logger.info(
        "Listing matches notified",
        listing_id=listing.listing_id,
        notifications_sent=len(notifications),
    )
    return SubmissionResult(record=listing, notifications=notifications)


async def _discard_images(image_urls: list[str], listing_id: str) -> None:
    try:
        await delete_images(image_urls)
    except SupabaseError as e:
        logger.error(
            "Orphaned listing images left in storage",
            listing_id=listing_id,
            image_count=len(image_urls),
            error=e.message,
        )


async def submit_request(
    owner_id: str,
    form: RequestForm,
    idempotency_key: Optional[str] = None,
) -> SubmissionResult:
    """Store a "looking for" request, then notify matching sellers."""
    request_id, replay = await _claim_submission(idempotency_key, "request")
    if replay is not None:
        return replay

    request = SneakerRequest(
        **form.model_dump(),
        request_id=request_id,
        owner_id=owner_id,
        created_at=utc_now(),
    )
    stored = await _store_record(AppConfig.REQUESTS_TABLE, request, "request", request_id)
    if isinstance(stored, SubmissionResult):
        return stored
    request = SneakerRequest(**stored)

    logger.info(
        "Request created",
        request_id=request.request_id,
        owner_id=mask_user_id(owner_id),
        foot=request.foot.value,
        brand=request.brand,
        size=request.size,
    )

    try:
        with log_timing("notify_matches_for_request", logger=logger, request_id=request.request_id):
            notifications = await notify_matches_for_request(request)
    except UnpairError as e:
        logger.error(
            "Match notification failed after request was created",
            request_id=request.request_id,
            error=e.message,
        )
        raise MatchingError(record_id=request.request_id) from e

    logger.info(
        "Request matches notified",
        request_id=request.request_id,
        notifications_sent=len(notifications),
    )
    return SubmissionResult(record=request, notifications=notifications)
