"""Standard response envelope and exception handlers.

Every /api/v1 response has the shape::

    {"success": bool, "data"?: ..., "message"?: str, "error"?: str,
     "code"?: str, "timestamp": "<ISO-8601>"}
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mariflow.infra.time import iso_now
from mariflow.observability.logging import get_logger
from mariflow.whatsapp.errors import WhatsAppError

logger = get_logger(__name__)

_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
}


def ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Success envelope."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    body["timestamp"] = iso_now()
    return body


def error_response(
    status_code: int,
    error: str,
    code: str | None = None,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    """Failure envelope as a JSONResponse."""
    body: dict[str, Any] = {"success": False, "error": error}
    if code is not None:
        body["code"] = code
    if details:
        body["details"] = details
    body["timestamp"] = iso_now()
    return JSONResponse(status_code=status_code, content=body)


def _validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    details = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", ())]
        details.append(
            {
                "field": ".".join(location[1:]) or ".".join(location),
                "location": location[0] if location else None,
                "message": err.get("msg"),
            }
        )
    return details


async def _whatsapp_error_handler(request: Request, exc: WhatsAppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request failed",
            extra={
                "extra_fields": {
                    "path": request.url.path,
                    "code": exc.code,
                    "status": exc.status_code,
                }
            },
        )
    return error_response(exc.status_code, exc.message, exc.code)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(
        "request validation failed",
        extra={"extra_fields": {"path": request.url.path, "errors": len(exc.errors())}},
    )
    return error_response(400, "Invalid request data", "VALIDATION_ERROR", _validation_details(exc))


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        error = "Route not found"
    else:
        error = str(exc.detail)
    code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    response = error_response(exc.status_code, error, code)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled error",
        exc_info=exc,
        extra={"extra_fields": {"path": request.url.path}},
    )
    return error_response(500, "Internal server error", "INTERNAL_ERROR")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WhatsAppError, _whatsapp_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)
