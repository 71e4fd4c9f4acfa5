"""Domain-level exceptions.

All business rule violations are expressed as subclasses of DomainException
so the CLI layer can catch them uniformly and display user-friendly messages.
"""

from __future__ import annotations

from decimal import Decimal


class DomainException(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainException):
    """Malformed input, rejected before any state change."""


class EntityNotFoundError(DomainException):
    """A requested entity does not exist."""


class IllegalTransition(DomainException):
    """A state machine guard refused the requested transition."""

    def __init__(self, current: str, attempted: str, reason: str = "") -> None:
        self.current = current
        self.attempted = attempted
        self.reason = reason
        message = f"Cannot move from '{current}' to '{attempted}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConcurrencyConflict(DomainException):
    """Another writer changed the entity first. Re-read and retry."""

    def __init__(
        self,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
        message: str | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if message is None:
            message = (
                f"Concurrent update on '{entity_id}': "
                f"expected version {expected_version}, found {actual_version}"
            )
        super().__init__(message)


class CeilingExceeded(DomainException):
    """A cash collection would push the agent over their cash limit."""

    def __init__(self, balance: Decimal, limit: Decimal, amount: Decimal) -> None:
        self.balance = balance
        self.limit = limit
        self.amount = amount
        super().__init__(
            f"Cash limit exceeded: balance {balance} + {amount} > limit {limit} "
            f"(available {limit - balance})"
        )


class PaymentFailure(DomainException):
    """An external payment or payout capability failed, or payout was already released."""


class InvalidSettlement(DomainException):
    """Commission and fees would exceed the order total."""


class AlreadyFinal(DomainException):
    """A deposit has already been verified or rejected."""


# Short names used across the engine.
Conflict = ConcurrencyConflict
NotFound = EntityNotFoundError
