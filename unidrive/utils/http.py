"""HTTP utilities: status classification and retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Awaitable, Callable

import httpx

from unidrive.models.failures import FailureKind

logger = logging.getLogger(__name__)


def classify_status(status_code: int) -> FailureKind | None:
    """Map an HTTP status to a failure kind; ``None`` for success codes."""
    if status_code < 400:
        return None
    if status_code in (HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN):
        return FailureKind.UNAUTHORIZED
    if status_code in (HTTPStatus.NOT_FOUND, HTTPStatus.GONE):
        return FailureKind.NOT_FOUND
    if status_code == HTTPStatus.TOO_MANY_REQUESTS:
        return FailureKind.RATE_LIMITED
    if status_code >= 500:
        return FailureKind.TRANSIENT
    return FailureKind.MALFORMED


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code) is FailureKind.TRANSIENT
    return False


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """Call ``func`` and return its response, retrying transient failures.

    Non-transient error statuses are returned to the caller untouched so it
    can inspect the provider's error payload.
    """
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: Exception | None = None

    while attempt < config.attempts:
        try:
            response = await func(*args, **kwargs)
            if classify_status(response.status_code) is FailureKind.TRANSIENT:
                response.raise_for_status()
            return response
        except (httpx.TransportError, httpx.HTTPStatusError) as exc:
            if not is_transient(exc):
                raise
            last_exception = exc
            attempt += 1
            if attempt >= config.attempts:
                break
            logger.warning("Transient HTTP failure (attempt %s): %s", attempt, exc)
            await asyncio.sleep(config.backoff_seconds * attempt)

    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


__all__ = ["RetryConfig", "classify_status", "is_transient", "request_with_retry"]
