"""Typed failures raised by the command facade and the API boundary.

Every failure carries a stable ``code`` and the HTTP status it maps to.
The API layer renders them into the standard response envelope.
"""

from __future__ import annotations


class WhatsAppError(Exception):
    """Base class for all typed failures."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail


class SessionNotReady(WhatsAppError):
    """Session is not READY. Retryable once status reports ready."""

    code = "NOT_READY"
    status_code = 503

    def __init__(self, message: str = "WhatsApp client is not ready") -> None:
        super().__init__(message)


class ValidationError(WhatsAppError):
    """Bad input shape. Not retryable without correction."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotAGroupError(ValidationError):
    """Group operation attempted on a chat that is not a group."""

    code = "NOT_GROUP"

    def __init__(self, message: str = "Chat is not a group") -> None:
        super().__init__(message)


class AuthenticationError(WhatsAppError):
    """Missing or invalid API key."""

    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class NotFound(WhatsAppError):
    """Referenced chat, contact, group or message does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class UnderlyingClientError(WhatsAppError):
    """Wraps any failure surfaced by the underlying messaging client.

    ``code`` identifies the operation (e.g. SEND_ERROR, CREATE_GROUP_ERROR);
    ``detail`` keeps the original exception message for diagnostics.
    """

    status_code = 500

    def __init__(self, code: str, message: str, detail: str | None = None) -> None:
        super().__init__(message, code=code, detail=detail)
