"""Request/response plumbing shared by the serverless handlers in api/."""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

from unpair.utils.errors import (
    AuthenticationRequiredError,
    FormValidationError,
    UnpairError,
)
from unpair.utils.logging import correlation_context, get_structured_logger
from unpair.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)


def get_header(request: dict, name: str) -> str:
    """Case-insensitive header lookup."""
    headers = request.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value or ""
    return ""


def get_query_param(request: dict, name: str, default: Optional[str] = None) -> Optional[str]:
    query = request.get("query") or {}
    value = query.get(name, default)
    if isinstance(value, list):
        return value[0] if value else default
    return value


def parse_json_body(request: dict) -> dict:
    """Parse the JSON body; a malformed body is a form error, not a crash."""
    raw_body = request.get("body")
    if not raw_body:
        return {}
    if isinstance(raw_body, dict):
        return raw_body
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError:
        raise FormValidationError("Request body must be valid JSON", title="Bad request")
    if not isinstance(body, dict):
        raise FormValidationError("Request body must be a JSON object", title="Bad request")
    return body


def bearer_token(request: dict) -> str:
    header = get_header(request, "Authorization")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationRequiredError()
    return token.strip()


def json_response(status_code: int, payload: Any, headers: Optional[dict] = None) -> dict:
    response_headers = {"Content-Type": "application/json"}
    if headers:
        response_headers.update(headers)
    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(payload, default=str),
    }


def alert_response(exc: Exception) -> dict:
    """Turn an exception into the alert payload the app shows in a modal."""
    if isinstance(exc, UnpairError):
        return json_response(exc.status_code, {"error": exc.to_alert()})
    return json_response(500, {"error": {"title": "Error", "message": "Something went wrong"}})


def run_async(coro: Awaitable) -> Any:
    """Drive a coroutine to completion from a synchronous handler."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            raise RuntimeError("event loop is closed")
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def dispatch(request: dict, routes: dict[str, Callable[[dict], dict]]) -> dict:
    """Route by HTTP method inside a correlation context and map errors to alerts."""
    LoggingConfig.setup_logging()
    method = (request.get("method") or "GET").upper()
    incoming_id = get_header(request, LoggingConfig.LOG_CORRELATION_ID_HEADER) or None

    with correlation_context(incoming_id) as correlation_id:
        route = routes.get(method)
        if route is None:
            return json_response(405, {"error": {"title": "Error", "message": f"Method {method} not allowed"}})

        try:
            response = route(request)
        except UnpairError as e:
            logger.warning(
                "Request failed",
                method=method,
                path=request.get("path"),
                error_type=type(e).__name__,
                error=e.message,
            )
            response = alert_response(e)
        except Exception as e:
            logger.error(
                "Unhandled error processing request",
                method=method,
                path=request.get("path"),
                error=str(e),
                exc_info=True,
            )
            response = alert_response(e)

        response["headers"][LoggingConfig.LOG_CORRELATION_ID_HEADER] = correlation_id
        return response
