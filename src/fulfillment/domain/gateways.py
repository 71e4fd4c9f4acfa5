"""Abstract external capabilities the engine depends on.

Like the repositories, these are defined in the domain layer so the
domain never depends on a payment vendor.  Concrete bindings live in
``fulfillment.infrastructure.gateways``; tests supply scripted fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.model.value_objects import Money, PaymentChannel


class CaptureStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CaptureResult:
    status: CaptureStatus
    reference: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is CaptureStatus.COMPLETED


@dataclass(frozen=True)
class PayoutResult:
    transaction_id: str


class PaymentCapture(ABC):

    @abstractmethod
    def authorize(self, order_id: str, amount: Money, channel: PaymentChannel) -> CaptureResult:
        """Capture ``amount`` from the buyer. Declines are returned, not raised."""


class PayoutGateway(ABC):

    @abstractmethod
    def release(self, destination: str, amount: Money, reference: str) -> PayoutResult:
        """Send ``amount`` to ``destination``.

        Raises PaymentFailure with the provider's reason on failure.
        """


class PayoutDirectory(ABC):

    @abstractmethod
    def destination_for(self, seller_id: str) -> str:
        """Return the payout destination (e.g. mobile-money number) of a seller."""


class Notifier(ABC):

    @abstractmethod
    def notify(self, recipient: str, event: DomainEvent) -> None:
        """Fire-and-forget delivery of ``event`` to ``recipient``."""
