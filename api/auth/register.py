"""Register endpoint."""

from unpair.services.auth import register
from unpair.utils.http import dispatch, json_response, parse_json_body, run_async


def _post(request: dict) -> dict:
    body = parse_json_body(request)
    session = run_async(register(
        body.get("email"),
        body.get("password"),
        body.get("confirm_password"),
    ))
    return json_response(201, session)


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"POST": _post})
