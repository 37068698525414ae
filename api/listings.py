"""Listings endpoint: home feed, product detail, my listings, sell, delete."""

from unpair.models.listing import ListingForm
from unpair.services import listings as listing_service
from unpair.services.auth import resolve_user
from unpair.services.matching import parse_listing_form, submit_listing
from unpair.services.storage import decode_image
from unpair.utils.errors import FormValidationError
from unpair.utils.http import (
    bearer_token,
    dispatch,
    get_header,
    get_query_param,
    json_response,
    parse_json_body,
    run_async,
)

FORM_FIELDS = set(ListingForm.model_fields)


def _get(request: dict) -> dict:
    listing_id = get_query_param(request, "id")
    if listing_id:
        return json_response(200, run_async(listing_service.get_listing_detail(listing_id)))

    if get_query_param(request, "mine"):
        user_id = run_async(resolve_user(bearer_token(request)))
        listings = run_async(listing_service.list_user_listings(user_id))
    else:
        limit = get_query_param(request, "limit")
        try:
            limit = int(limit) if limit else None
        except ValueError:
            raise FormValidationError("limit must be a number", title="Bad request")
        listings = run_async(listing_service.list_feed(limit))

    return json_response(200, {"listings": [listing.model_dump(mode="json") for listing in listings]})


def _post(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    body = parse_json_body(request)

    form = parse_listing_form({k: v for k, v in body.items() if k in FORM_FIELDS})
    images = [decode_image(value) for value in body.get("images") or []]
    idempotency_key = get_header(request, "Idempotency-Key") or body.get("idempotency_key")

    result = run_async(submit_listing(user_id, form, images, idempotency_key=idempotency_key))
    return json_response(200 if result.replayed else 201, {
        "listing": result.record.model_dump(mode="json"),
        "notifications_sent": len(result.notifications),
        "replayed": result.replayed,
    })


def _delete(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    listing_id = get_query_param(request, "id")
    if not listing_id:
        raise FormValidationError("Which listing?", title="Bad request")
    run_async(listing_service.delete_listing(user_id, listing_id))
    return json_response(200, {"ok": True})


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"GET": _get, "POST": _post, "DELETE": _delete})
