"""
Service error taxonomy and the JSON error envelope returned by the API.

Every error is an ``HTTPException`` so services can raise them directly, the
same way FastAPI handlers do. Each carries a stable ``code`` that batch
operations copy into their per-candidate error entries.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

log = structlog.get_logger()


class ServiceError(HTTPException):
    status_code: int = 500
    code: str = "INTERNAL"

    def __init__(self, message: str = "Internal error"):
        super().__init__(status_code=self.status_code, detail=message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "status": self.status_code}


class Unauthorized(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationFailed(ServiceError):
    status_code = 422
    code = "VALIDATION"


class Conflict(ServiceError):
    status_code = 409
    code = "CONFLICT"


class Expired(ServiceError):
    status_code = 410
    code = "EXPIRED"


class Internal(ServiceError):
    pass


def _envelope(code: str, message: str, status: int) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message, "status": status}},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Render service errors, request validation and stray exceptions in one envelope."""

    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        return _envelope(exc.code, exc.message, exc.status_code)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return _envelope(f"HTTP_{exc.status_code}", str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        message = first.get("msg", "Invalid request")
        return _envelope(ValidationFailed.code, message, 422)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log.exception("request.unhandled_error", path=request.url.path)
        return _envelope(Internal.code, "Internal error", 500)
