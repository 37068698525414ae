"""Login endpoint."""

from unpair.services.auth import sign_in
from unpair.utils.http import dispatch, json_response, parse_json_body, run_async


def _post(request: dict) -> dict:
    body = parse_json_body(request)
    session = run_async(sign_in(body.get("email"), body.get("password")))
    return json_response(200, session)


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"POST": _post})
