"""Normalization of backend response envelopes.

The backend answers in one of three shapes:

1. ``{"data": ..., "success": bool, "message": ...}``: passed through
2. ``{"data": ...}``: a resource wrapper, treated as success
3. anything else (a bare list or object): the whole payload is the data

A failure is never inferred from the payload itself; failures come from the
transport layer and are handled in :mod:`renewals.client`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from renewals.models import ApiResult


def normalize_response(raw: Any) -> ApiResult[Any]:
    if isinstance(raw, Mapping):
        if isinstance(raw.get("success"), bool):
            message = raw.get("message")
            return ApiResult[Any](
                data=raw.get("data"),
                success=raw["success"],
                message=message if isinstance(message, str) else None,
            )
        if raw.get("data") is not None:
            return ApiResult[Any](data=raw["data"], success=True)
    return ApiResult[Any](data=raw, success=True)
