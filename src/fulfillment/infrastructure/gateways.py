"""Offline bindings of the external capabilities.

No provider SDK is wired in.  Captures and payouts are confirmed by an
operator who passes the provider's reference on the command line, so
every result here is deterministic.  Notifications go to the log.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import structlog

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.exceptions import EntityNotFoundError, PaymentFailure, ValidationError
from fulfillment.domain.gateways import (
    CaptureResult,
    CaptureStatus,
    Notifier,
    PaymentCapture,
    PayoutDirectory,
    PayoutGateway,
    PayoutResult,
)
from fulfillment.domain.model.value_objects import Money, PaymentChannel
from fulfillment.infrastructure.persistence.json_store import lock_for

logger = structlog.get_logger(__name__)


class OperatorConfirmedCapture(PaymentCapture):
    """Records a capture the operator already saw succeed (or fail) at the provider."""

    def __init__(self, approved: bool = True, reference: str | None = None) -> None:
        self._approved = approved
        self._reference = reference

    def authorize(self, order_id: str, amount: Money, channel: PaymentChannel) -> CaptureResult:
        reference = self._reference or f"CAPTURE_{order_id}"
        status = CaptureStatus.COMPLETED if self._approved else CaptureStatus.FAILED
        logger.info(
            "payment_capture_confirmed",
            order_id=order_id, amount=str(amount), channel=channel.value,
            reference=reference, status=status.value,
        )
        return CaptureResult(status=status, reference=reference)


class OperatorConfirmedPayout(PayoutGateway):
    """Records a payout the operator sent by hand; the reference doubles as transaction id."""

    def __init__(self, transaction_id: str | None = None) -> None:
        self._transaction_id = transaction_id

    def release(self, destination: str, amount: Money, reference: str) -> PayoutResult:
        if not destination:
            raise PaymentFailure("Payout destination is empty")
        if amount.is_zero:
            raise PaymentFailure("Refusing to release a zero payout")
        transaction_id = self._transaction_id or reference
        logger.info(
            "payout_released",
            destination=destination, amount=str(amount),
            reference=reference, transaction_id=transaction_id,
        )
        return PayoutResult(transaction_id=transaction_id)


class JsonPayoutDirectory(PayoutDirectory):
    """Seller id -> payout destination, kept in one JSON object on disk."""

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = lock_for(file_path)
        with self._lock:
            if not self._file_path.exists():
                self._file_path.write_text("{}", encoding="utf-8")

    def destination_for(self, seller_id: str) -> str:
        destination = self._load().get(seller_id)
        if not destination:
            raise EntityNotFoundError(f"No payout destination registered for seller {seller_id}")
        return destination

    def register(self, seller_id: str, destination: str) -> None:
        if not seller_id.strip() or not destination.strip():
            raise ValidationError("Seller ID and destination are required")
        with self._lock:
            mapping = self._load()
            mapping[seller_id.strip()] = destination.strip()
            tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(mapping, indent=2) + "\n", encoding="utf-8")
            os.replace(tmp_path, self._file_path)

    def _load(self) -> dict[str, str]:
        return json.loads(self._file_path.read_text(encoding="utf-8"))


class LoggingNotifier(Notifier):

    def notify(self, recipient: str, event: DomainEvent) -> None:
        logger.info(
            "notification_sent",
            recipient=recipient, event_type=event.event_type, order_id=event.order_id,
        )
