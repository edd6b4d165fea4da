"""
Classification of provider SDK exceptions.

Maps openai/httpx exceptions onto ApiErrorKind. Messages carry the exception
type and status code only, never the provider's response body.
"""

from __future__ import annotations

import asyncio

import httpx
import openai

from docscan_ai.exceptions import ApiError, ApiErrorKind


_NETWORK_ERRORS = (
    openai.APIConnectionError,
    httpx.TransportError,
    asyncio.TimeoutError,
    TimeoutError,
)


def _kind_for_status(status_code: int) -> ApiErrorKind:
    if status_code in (401, 403):
        return ApiErrorKind.INVALID_CREDENTIAL
    if status_code == 429:
        return ApiErrorKind.RATE_LIMITED
    if status_code == 408 or status_code >= 500:
        return ApiErrorKind.TRANSIENT
    return ApiErrorKind.PERMANENT


def classify_error(error: BaseException) -> ApiError:
    """
    Turn any exception raised by a provider call into an ApiError.

    Args:
        error: Exception raised while calling the provider.

    Returns:
        ApiError with the matching kind. Unrecognized exceptions are treated
        as transient.
    """
    if isinstance(error, ApiError):
        return error

    status_code: int | None = None

    if isinstance(error, openai.APIStatusError):
        status_code = error.status_code
        kind = _kind_for_status(status_code)
    elif isinstance(error, _NETWORK_ERRORS):
        kind = ApiErrorKind.TRANSIENT
    else:
        # Unknown failures are retried with another credential.
        kind = ApiErrorKind.TRANSIENT

    detail = type(error).__name__
    if status_code is not None:
        detail = f"{detail}, HTTP {status_code}"
    return ApiError(kind, f"{kind.reason} ({detail})", status_code=status_code)
