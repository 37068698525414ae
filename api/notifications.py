"""Notifications endpoint: list and mark read."""

from unpair.services import listings as listing_service
from unpair.services.auth import resolve_user
from unpair.utils.errors import FormValidationError
from unpair.utils.http import (
    bearer_token,
    dispatch,
    get_query_param,
    json_response,
    parse_json_body,
    run_async,
)


def _get(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    unread_only = (get_query_param(request, "unread") or "").lower() in ("1", "true")
    notifications = run_async(listing_service.list_notifications(user_id, unread_only=unread_only))
    return json_response(200, {"notifications": [n.model_dump(mode="json") for n in notifications]})


def _patch(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    body = parse_json_body(request)
    notification_id = body.get("notification_id") or get_query_param(request, "id")
    if not notification_id:
        raise FormValidationError("Which notification?", title="Bad request")
    notification = run_async(listing_service.mark_notification_read(user_id, notification_id))
    return json_response(200, {"notification": notification.model_dump(mode="json")})


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"GET": _get, "PATCH": _patch})
