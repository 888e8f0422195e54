from __future__ import annotations

from typing import Optional
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class SuggestionError(Exception):
    """Base class for errors raised by the suggestion pipeline."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ExtractionFailure(SuggestionError):
    """One extraction attempt failed; always converted into the local fallback."""


class NotFoundError(SuggestionError):
    status_code = 404


class ConflictError(SuggestionError):
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class ValidationError(SuggestionError):
    status_code = 400


class StorageError(SuggestionError):
    status_code = 500


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    status: Optional[str] = None


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SuggestionError)
    async def _handle_suggestion_error(request: Request, exc: SuggestionError):  # type: ignore[unused-variable]
        body = ErrorResponse(error=exc.message, status=getattr(exc, "current_status", None))
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(request: Request, exc: RequestValidationError):  # type: ignore[unused-variable]
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="; ".join(parts) or "invalid request").model_dump(exclude_none=True),
        )

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException):  # type: ignore[unused-variable]
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail)).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception):  # type: ignore[unused-variable]
        return JSONResponse(status_code=500, content=ErrorResponse(error="internal error").model_dump(exclude_none=True))
