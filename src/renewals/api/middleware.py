"""Error handlers for the stand-in backend.

Status code mapping:
- ``RenewalNotFoundError`` → 404 Not Found
- ``RenewalValidationError`` → 422 Unprocessable Entity (per-field details)
- ``ValueError`` → 400 Bad Request
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from renewals.api.models import ErrorDetail, ErrorResponse
from renewals.validation import RenewalValidationError

logger = logging.getLogger(__name__)


class RenewalNotFoundError(KeyError):
    """Raised when a renewal id is unknown to the store."""

    def __init__(self, renewal_id: str) -> None:
        super().__init__(renewal_id)
        self.renewal_id = renewal_id


async def _handle_not_found(request: Request, exc: RenewalNotFoundError) -> JSONResponse:
    logger.info("Renewal not found: %s", exc.renewal_id)
    body = ErrorResponse(
        error=ErrorDetail(code="RENEWAL_NOT_FOUND", message=f"Renewal not found: {exc.renewal_id}")
    )
    return JSONResponse(status_code=404, content=body.model_dump())


async def _handle_invalid_renewal(request: Request, exc: RenewalValidationError) -> JSONResponse:
    logger.info("Rejected renewal: %s", exc.errors)
    body = ErrorResponse(
        error=ErrorDetail(code="VALIDATION_ERROR", message=str(exc), details=exc.errors)
    )
    return JSONResponse(status_code=422, content=body.model_dump())


async def _handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    logger.info("Bad request: %s", exc)
    body = ErrorResponse(error=ErrorDetail(code="BAD_REQUEST", message=str(exc)))
    return JSONResponse(status_code=400, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    """Attach the exception handlers to *app*."""
    app.add_exception_handler(RenewalNotFoundError, _handle_not_found)  # type: ignore[arg-type]
    app.add_exception_handler(
        RenewalValidationError,
        _handle_invalid_renewal,  # type: ignore[arg-type]
    )
    app.add_exception_handler(ValueError, _handle_value_error)  # type: ignore[arg-type]
