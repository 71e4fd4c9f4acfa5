"""Application service: Capture Payment use case.

The order is claimed (payment status ``processing``) and saved with the
version check before the provider is asked, so two concurrent captures
cannot both charge the buyer.  The external capture then runs with no
lock held, and its outcome is applied to a freshly read order.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import OrderDTO, order_to_dto
from fulfillment.application.retry import conflict_retrying
from fulfillment.domain.exceptions import (
    ConcurrencyConflict,
    DomainException,
    EntityNotFoundError,
    PaymentFailure,
)
from fulfillment.domain.gateways import CaptureResult, PaymentCapture
from fulfillment.domain.model.order import Order
from fulfillment.domain.repository.order_repository import OrderRepository

logger = structlog.get_logger(__name__)


class CapturePaymentHandler:

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_capture: PaymentCapture,
        max_attempts: int = 3,
    ) -> None:
        self._order_repo = order_repo
        self._payment_capture = payment_capture
        self._max_attempts = max_attempts

    def handle(self, order_id: str, actor: str) -> OrderDTO:
        """Capture the order total from the buyer.

        Raises PaymentFailure when the provider declines; the order keeps
        status ``pending`` with payment ``failed`` and may be retried.
        A capture already in flight for the order raises PaymentFailure
        (or ConcurrencyConflict when both claims raced) without a charge.
        """
        order = self._load(order_id)
        order.begin_capture(actor)
        try:
            self._order_repo.save(order)
        except ConcurrencyConflict:
            logger.warning("payment_capture_claim_lost", order_id=order_id)
            raise

        try:
            result = self._payment_capture.authorize(
                order.id, order.total_amount, order.payment_channel
            )
        except PaymentFailure as exc:
            logger.warning("payment_capture_failed", order_id=order_id, reason=str(exc))
            self._abandon(order_id, actor, str(exc))
            raise

        try:
            order = conflict_retrying(self._max_attempts)(self._apply, order_id, result, actor)
        except DomainException:
            if result.succeeded:
                logger.error(
                    "captured_payment_not_recorded",
                    order_id=order_id, reference=result.reference,
                )
            raise

        if not result.succeeded:
            logger.warning("payment_declined", order_id=order.id, reference=result.reference)
            raise PaymentFailure(f"Payment for order {order.id} was declined")

        logger.info(
            "payment_captured",
            order_id=order.id, reference=result.reference, amount=str(order.total_amount),
        )
        return order_to_dto(order)

    def _apply(self, order_id: str, result: CaptureResult, actor: str) -> Order:
        order = self._load(order_id)
        order.record_payment(result.succeeded, result.reference, actor)
        self._order_repo.save(order)
        return order

    def _abandon(self, order_id: str, actor: str, reason: str) -> None:
        try:
            order = self._load(order_id)
            order.abandon_capture(actor, reason)
            self._order_repo.save(order)
        except DomainException as exc:
            logger.error("payment_capture_claim_not_cleared", order_id=order_id, error=str(exc))

    def _load(self, order_id: str) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")
        return order
