"""
Application error types and their FastAPI exception handlers.

Plain 4xx failures in routers use ``HTTPException``.  ``ApiError`` is for
errors that carry more than a message: a machine-readable ``code`` for the
frontend or a ``details`` list explaining what went wrong.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error rendered as ``{"detail": message, "code": ..., "details": [...]}``."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[List[str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.details = details
        self.extra = extra or {}

    def to_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"detail": self.message}
        if self.code:
            content["code"] = self.code
        if self.details is not None:
            content["details"] = self.details
        content.update(self.extra)
        return content


class UnauthorizedError(ApiError):
    """No valid access token; the client should try the refresh endpoint."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(
            status.HTTP_401_UNAUTHORIZED, message, code="TRY_REFRESH_TOKEN"
        )


def _summarise_validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    errors = []
    for err in exc.errors():
        # Drop the leading "body"/"query" segment so the field reads like the payload key
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header", "cookie"):
            loc = loc[1:]
        errors.append({"field": ".".join(loc) or "unknown", "message": err.get("msg", "")})
    return errors


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s %s", request.method, request.url.path, exc.message, exc.details or ""
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures as 400 with the first problem up front."""
    errors = _summarise_validation_errors(exc)
    first = errors[0] if errors else {"field": "unknown", "message": "Invalid request"}
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Invalid request data",
            "field": first["field"],
            "message": first["message"],
            "errors": errors,
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers above on *app*."""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
