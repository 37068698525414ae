"""Search requests endpoint: my requests, post a "looking for", delete."""

from unpair.models.request import RequestForm
from unpair.services import listings as listing_service
from unpair.services.auth import resolve_user
from unpair.services.matching import parse_request_form, submit_request
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

FORM_FIELDS = set(RequestForm.model_fields)


def _get(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    requests = run_async(listing_service.list_user_requests(user_id))
    return json_response(200, {"requests": [r.model_dump(mode="json") for r in requests]})


def _post(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    body = parse_json_body(request)

    form = parse_request_form({k: v for k, v in body.items() if k in FORM_FIELDS})
    idempotency_key = get_header(request, "Idempotency-Key") or body.get("idempotency_key")

    result = run_async(submit_request(user_id, form, idempotency_key=idempotency_key))
    return json_response(200 if result.replayed else 201, {
        "request": result.record.model_dump(mode="json"),
        "notifications_sent": len(result.notifications),
        "replayed": result.replayed,
    })


def _delete(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    request_id = get_query_param(request, "id")
    if not request_id:
        raise FormValidationError("Which request?", title="Bad request")
    run_async(listing_service.delete_request(user_id, request_id))
    return json_response(200, {"ok": True})


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"GET": _get, "POST": _post, "DELETE": _delete})
