"""Conversations endpoint: inbox and "message seller"."""

from unpair.services import conversations as conversation_service
from unpair.services.auth import resolve_user
from unpair.utils.errors import AuthenticationRequiredError
from unpair.utils.http import (
    bearer_token,
    dispatch,
    json_response,
    parse_json_body,
    run_async,
)


def _current_user(request: dict) -> str:
    try:
        return run_async(resolve_user(bearer_token(request)))
    except AuthenticationRequiredError:
        raise AuthenticationRequiredError("Please log in to chat with sellers")


def _get(request: dict) -> dict:
    user_id = _current_user(request)
    inbox = run_async(conversation_service.list_conversations(user_id))
    return json_response(200, {"conversations": inbox})


def _post(request: dict) -> dict:
    user_id = _current_user(request)
    body = parse_json_body(request)
    conversation = run_async(
        conversation_service.get_or_create_conversation(user_id, body.get("other_user_id"))
    )
    return json_response(200, {"conversation": conversation.model_dump(mode="json")})


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"GET": _get, "POST": _post})
