"""Messages endpoint: read a conversation and send a message."""

from unpair.services import conversations as conversation_service
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
    conversation_id = get_query_param(request, "conversation_id")
    if not conversation_id:
        raise FormValidationError("Which conversation?", title="Bad request")
    messages = run_async(conversation_service.list_messages(conversation_id, user_id))
    return json_response(200, {"messages": [m.model_dump(mode="json") for m in messages]})


def _post(request: dict) -> dict:
    user_id = run_async(resolve_user(bearer_token(request)))
    body = parse_json_body(request)
    conversation_id = body.get("conversation_id")
    if not isinstance(conversation_id, str) or not conversation_id:
        raise FormValidationError("Which conversation?", title="Bad request")
    message = run_async(conversation_service.send_message(conversation_id, user_id, body.get("text")))
    return json_response(201, {"message": message.model_dump(mode="json")})


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"GET": _get, "POST": _post})
