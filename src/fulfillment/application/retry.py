"""Bounded re-read-and-retry for writes that lose a version race."""

from __future__ import annotations

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fulfillment.domain.exceptions import ConcurrencyConflict

logger = structlog.get_logger(__name__)


def _log_conflict(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "conflict_retry",
        attempt=retry_state.attempt_number,
        entity_id=getattr(exc, "entity_id", None),
    )


def conflict_retrying(max_attempts: int) -> Retrying:
    """A ``Retrying`` that re-runs its callable on ConcurrencyConflict.

    The callable must re-read everything it touches; after
    ``max_attempts`` the last conflict propagates unchanged.
    """
    return Retrying(
        retry=retry_if_exception_type(ConcurrencyConflict),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.01, max=0.2),
        before_sleep=_log_conflict,
        reraise=True,
    )
