"""Error handling utilities."""

from typing import Optional


class UnpairError(Exception):
    """Base exception for UNPAIR backend.

    Every error knows how to present itself to the app as an alert.
    """
    status_code = 500
    alert_title = "Error"
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, *, title: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if title:
            self.alert_title = title

    def to_alert(self) -> dict:
        return {"title": self.alert_title, "message": self.message}


class FormValidationError(UnpairError):
    """User input failed validation before anything was written."""
    status_code = 400
    alert_title = "Missing fields"
    default_message = "Please fill all fields"


class AuthenticationRequiredError(UnpairError):
    """Caller is not logged in."""
    status_code = 401
    alert_title = "Log in first"
    default_message = "Please log in to continue"


class PermissionDeniedError(UnpairError):
    """Caller does not own the record they tried to change."""
    status_code = 403
    alert_title = "Not allowed"
    default_message = "You can only change your own posts"


class NotFoundError(UnpairError):
    """Record does not exist."""
    status_code = 404
    alert_title = "Not found"
    default_message = "We couldn't find that"


class MatchingError(UnpairError):
    """Match scan or notification step failed after the record was written."""
    status_code = 502
    default_message = "Posted, but we couldn't check for matches right now"

    def __init__(self, message: Optional[str] = None, *, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class SupabaseError(UnpairError):
    """Supabase operation error."""
    status_code = 502
