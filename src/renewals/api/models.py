"""Pydantic envelopes for the local stand-in backend."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    """Successful response: ``{"data": ..., "success": true, "message": ...}``."""

    data: Any = None
    success: bool = True
    message: str | None = None


class ErrorDetail(BaseModel):
    """Structured error payload."""

    code: str
    message: str
    details: dict | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    error: ErrorDetail


class LogEntryRequest(BaseModel):
    """Body of ``POST /renewals/{id}/log``."""

    action: str
    date: str | None = None
    notes: str | None = None
    changes: list[dict[str, Any]] = Field(default_factory=list)
