"""Profile endpoint: current profile, photo, password, verification email."""

from unpair.services import auth as auth_service
from unpair.services.storage import decode_image
from unpair.services.users import update_profile_photo
from unpair.utils.errors import FormValidationError
from unpair.utils.http import (
    bearer_token,
    dispatch,
    json_response,
    parse_json_body,
    run_async,
)


def _get(request: dict) -> dict:
    user_id = run_async(auth_service.resolve_user(bearer_token(request)))
    profile = run_async(auth_service.get_current_profile(user_id))
    return json_response(200, {"profile": profile.model_dump(mode="json")})


def _patch(request: dict) -> dict:
    """Apply one profile action: new photo, new password or resend verification."""
    user_id = run_async(auth_service.resolve_user(bearer_token(request)))
    body = parse_json_body(request)

    if body.get("photo"):
        profile = run_async(update_profile_photo(user_id, decode_image(body["photo"])))
        return json_response(200, {"profile": profile.model_dump(mode="json")})

    if body.get("new_password") is not None:
        run_async(auth_service.update_password(user_id, body["new_password"]))
        return json_response(200, {"ok": True})

    if body.get("resend_verification"):
        profile = run_async(auth_service.get_current_profile(user_id))
        run_async(auth_service.resend_verification_email(profile.email))
        return json_response(200, {"ok": True})

    raise FormValidationError("Nothing to update", title="Bad request")


def handler(request):
    """Serverless entry point."""
    return dispatch(request, {"GET": _get, "PATCH": _patch})
