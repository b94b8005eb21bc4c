"""
Typed provider call outcomes.

Adapters never raise across their boundary; each call returns an
``Outcome`` holding either a value or a ``ProviderFailure``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from unidrive.models.items import ServiceType

T = TypeVar("T")


class FailureKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ProviderFailure:
    """Why a single provider call did not produce a value."""

    kind: FailureKind
    message: str
    service: Optional[ServiceType] = None
    account_id: Optional[str] = None
    status_code: Optional[int] = None
    reauth_url: Optional[str] = None

    @property
    def is_unauthorized(self) -> bool:
        return self.kind is FailureKind.UNAUTHORIZED

    @property
    def is_retryable(self) -> bool:
        return self.kind in (FailureKind.TRANSIENT, FailureKind.RATE_LIMITED)

    def describe(self) -> str:
        source = self.service.display_name if self.service else "provider"
        if self.account_id:
            source = f"{source} ({self.account_id})"
        return f"{source}: {self.message}"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    failure: Optional[ProviderFailure] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, failure: ProviderFailure) -> "Outcome[T]":
        return cls(failure=failure)

    @property
    def ok(self) -> bool:
        return self.failure is None


class ProviderError(Exception):
    """Raised inside adapters and converted to an ``Outcome`` at the boundary."""

    def __init__(self, failure: ProviderFailure) -> None:
        super().__init__(failure.message)
        self.failure = failure


__all__ = ["FailureKind", "Outcome", "ProviderError", "ProviderFailure"]
