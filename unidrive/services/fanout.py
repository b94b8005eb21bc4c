"""Wait-for-all fan-out over provider calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Sequence, TypeVar

from unidrive.models.credentials import ServiceAccount
from unidrive.models.failures import FailureKind, Outcome, ProviderFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_outcomes(
    accounts: Sequence[ServiceAccount],
    calls: Sequence[Awaitable[Outcome[T]]],
) -> list[Outcome[T]]:
    """Run ``calls`` concurrently and return one outcome per account, in order.

    Every branch is awaited to completion; an unexpected exception in one
    branch becomes that branch's failure instead of cancelling its siblings.
    """
    if len(accounts) != len(calls):
        raise ValueError("Each call must be paired with the account it targets.")

    results = await asyncio.gather(*calls, return_exceptions=True)
    outcomes: list[Outcome[T]] = []
    for account, result in zip(accounts, results):
        if isinstance(result, Outcome):
            outcomes.append(result)
            continue
        if not isinstance(result, Exception):
            raise result
        logger.error(
            "Unexpected error from %s account %s",
            account.service.value,
            account.id,
            exc_info=result,
        )
        outcomes.append(
            Outcome.failed(
                ProviderFailure(
                    kind=FailureKind.TRANSIENT,
                    message=str(result) or result.__class__.__name__,
                    service=account.service,
                    account_id=account.id,
                )
            )
        )
    return outcomes


__all__ = ["gather_outcomes"]
