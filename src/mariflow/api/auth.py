"""Static API key authentication.

The key is accepted from either header:
- X-API-Key: <key>
- Authorization: Bearer <key>

Comparison is constant-time and exact.
"""

from __future__ import annotations

import hmac

from fastapi import Depends, Request

from mariflow.config import Settings
from mariflow.observability.logging import get_logger
from mariflow.whatsapp.errors import AuthenticationError

from .deps import get_settings

logger = get_logger(__name__)

API_KEY_HEADER = "X-API-Key"


def _extract_api_key(request: Request) -> str | None:
    """Return the presented key, or None if neither header carries one."""
    key = request.headers.get(API_KEY_HEADER)
    if key:
        return key

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def verify_api_key(presented: str | None, expected: str) -> bool:
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode(), expected.encode())


def require_api_key(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """FastAPI dependency guarding every /api/v1 route.

    Raises:
        AuthenticationError: 401 if the key is missing or does not match.
    """
    presented = _extract_api_key(request)
    if presented is None:
        logger.warning(
            "api key missing",
            extra={"extra_fields": {"path": request.url.path}},
        )
        raise AuthenticationError("API key is required")
    if not verify_api_key(presented, settings.api_key):
        logger.warning(
            "api key rejected",
            extra={"extra_fields": {"path": request.url.path}},
        )
        raise AuthenticationError("Invalid API key")
