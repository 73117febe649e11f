"""
Error envelope for every response that is not a success.

Every failure is rendered as `{"error": str}`. Diagnostic detail for
unexpected errors is attached under `details` only outside production.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from forum.core.config import settings
from forum.core.federated import FederatedLoginNotConfigured
from forum.core.security import MissingSecretError
from forum.crud import LikeTargetNotFound

logger = logging.getLogger(__name__)


def error_response(
    status_code: int,
    message: str,
    *,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    content: dict[str, Any] = {"error": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return error_response(404, "Route not found", path=request.url.path)
    return error_response(
        exc.status_code,
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


def _field_name(loc: tuple[Any, ...]) -> str:
    # drop the leading "body"/"query"/"path" segment
    parts = [str(part) for part in loc[1:]] or [str(part) for part in loc]
    return ".".join(parts)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return error_response(400, "Invalid JSON")
    details = [
        {"field": _field_name(tuple(error.get("loc", ()))), "message": error.get("msg")}
        for error in errors
    ]
    return error_response(400, "Invalid data", details=details)


async def missing_secret_handler(request: Request, exc: MissingSecretError) -> JSONResponse:
    logger.error("Token operation attempted without JWT_SECRET: %s", request.url.path)
    return error_response(500, "JWT_SECRET is not configured on the server")


async def federated_not_configured_handler(
    request: Request, exc: FederatedLoginNotConfigured
) -> JSONResponse:
    logger.error("Federated login attempted without GOOGLE_CLIENT_ID")
    return error_response(500, "Google login is not configured on the server")


async def like_target_not_found_handler(
    request: Request, exc: LikeTargetNotFound
) -> JSONResponse:
    return error_response(404, f"{exc.target.capitalize()} not found")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.is_production:
        return error_response(500, "Internal server error")
    return error_response(500, "Internal server error", details=str(exc))


class BodySizeLimitMiddleware:
    """Reject request bodies larger than `max_bytes` with 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked uploads) are counted as the endpoint reads them.
    """

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            response = error_response(413, "Payload too large")
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise StarletteHTTPException(status_code=413, detail="Payload too large")
            return message

        await self.app(scope, limited_receive, send)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(MissingSecretError, missing_secret_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        FederatedLoginNotConfigured, federated_not_configured_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(LikeTargetNotFound, like_target_not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
