"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; the handler registered in
``gtc_api.main`` turns them into JSON responses.
"""
from typing import Optional


class GtcError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(GtcError):
    status_code = 404
    default_detail = "Record not found"


class MemberNotFound(NotFound):
    default_detail = "Member not found"


class IllegalTransition(GtcError):
    status_code = 400
    default_detail = "Illegal status transition"


class Forbidden(GtcError):
    status_code = 403
    default_detail = "Forbidden"


class ValidationFailed(GtcError):
    status_code = 422
    default_detail = "Validation failed"

    def __init__(self, messages: list[str], detail: Optional[str] = None):
        self.messages = list(messages)
        super().__init__(detail or (self.messages[0] if self.messages else None))


class ImportParseError(GtcError):
    status_code = 400
    default_detail = "Couldn't process the file that was provided. Please confirm it matches the import format."


class ExternalServiceError(GtcError):
    status_code = 502
    default_detail = "External service unavailable"
