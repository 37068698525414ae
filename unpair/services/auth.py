"""Account flows on top of Supabase Auth, plus the form checks the app runs first."""

import re
from typing import Optional

from unpair.models.user import UserProfile
from unpair.services.supabase_client import SupabaseClient, create_auth_client
from unpair.services.users import get_profile, save_profile
from unpair.utils.config import AppConfig
from unpair.utils.errors import (
    AuthenticationRequiredError,
    FormValidationError,
    SupabaseError,
)
from unpair.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_login(email: Optional[str], password: Optional[str]) -> None:
    if not email or not password:
        raise FormValidationError("Fill in all fields!")


def validate_password(password: Optional[str]) -> None:
    if not password or len(password) < AppConfig.MIN_PASSWORD_LENGTH:
        raise FormValidationError(
            f"Password must be at least {AppConfig.MIN_PASSWORD_LENGTH} characters",
            title="Weak password",
        )


def validate_registration(
    email: Optional[str],
    password: Optional[str],
    confirm_password: Optional[str],
) -> None:
    """Same checks the register screen runs, in the same order."""
    if not email or not password or not confirm_password:
        raise FormValidationError("Fill in all fields!")
    if not _EMAIL_RE.match(email):
        raise FormValidationError("That email doesn't look right", title="Invalid email")
    if password != confirm_password:
        raise FormValidationError("Passwords don't match!", title="Password mismatch")
    validate_password(password)


def _session_payload(response) -> dict:
    session = getattr(response, "session", None)
    user = getattr(response, "user", None)
    return {
        "user_id": user.id if user else None,
        "email": user.email if user else None,
        "email_verified": bool(getattr(user, "email_confirmed_at", None)) if user else False,
        "access_token": session.access_token if session else None,
        "refresh_token": session.refresh_token if session else None,
    }


async def register(email: str, password: str, confirm_password: str) -> dict:
    """Create the auth user and their public profile row.

    Supabase sends the verification email itself when confirmations are on,
    in which case the returned session is empty until the user confirms.
    """
    validate_registration(email, password, confirm_password)
    client = create_auth_client()
    try:
        response = client.auth.sign_up({"email": email, "password": password})
    except Exception as e:
        logger.warning("Sign up rejected", error=str(e))
        raise FormValidationError(str(e) or "Sign up failed!", title="Sign up failed")

    payload = _session_payload(response)
    if not payload["user_id"]:
        raise SupabaseError("Sign up failed: no user returned")

    await save_profile(payload["user_id"], email=email, email_verified=payload["email_verified"])
    logger.info("User registered", user_id=mask_user_id(payload["user_id"]))
    return payload


async def sign_in(email: str, password: str) -> dict:
    validate_login(email, password)
    client = create_auth_client()
    try:
        response = client.auth.sign_in_with_password({"email": email, "password": password})
    except Exception as e:
        logger.info("Sign in rejected", error=str(e))
        raise AuthenticationRequiredError("Wrong email or password", title="Login failed")

    payload = _session_payload(response)
    logger.info("User signed in", user_id=mask_user_id(payload["user_id"]))
    return payload


async def resolve_user(access_token: Optional[str]) -> str:
    """Map a bearer token to the authenticated user's id."""
    if not access_token:
        raise AuthenticationRequiredError()

    async with SupabaseClient() as client:
        try:
            response = client.auth.get_user(access_token)
        except Exception as e:
            logger.info("Access token rejected", error=str(e))
            raise AuthenticationRequiredError("Your session expired, please log in again")

    user = getattr(response, "user", None) if response else None
    if user is None or not getattr(user, "id", None):
        raise AuthenticationRequiredError()
    return user.id


async def resend_verification_email(email: str) -> None:
    if not email:
        raise FormValidationError("Which email should we send it to?")
    client = create_auth_client()
    try:
        client.auth.resend({"type": "signup", "email": email})
    except Exception as e:
        raise SupabaseError(f"Failed to send verification email: {e}") from e
    logger.info("Verification email resent")


async def update_password(user_id: Optional[str], new_password: str) -> None:
    if not user_id:
        raise AuthenticationRequiredError("No user logged in")
    validate_password(new_password)
    async with SupabaseClient() as client:
        try:
            client.auth.admin.update_user_by_id(user_id, {"password": new_password})
        except Exception as e:
            raise SupabaseError(f"Failed to update password: {e}") from e
    logger.info("Password updated", user_id=mask_user_id(user_id))


async def get_current_profile(user_id: str) -> UserProfile:
    """Profile for the signed-in user, creating an empty one on first use."""
    profile = await get_profile(user_id)
    if profile is None:
        profile = await save_profile(user_id, email=None)
    return profile
