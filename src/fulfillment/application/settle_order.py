"""Application service: Settle Order (seller payout).

Sequence for one order:

1. Read the order, check it may be settled and resolve the destination.
2. Claim it: save payment status ``releasing`` with the version check.
   Of two concurrent settlements only one claim lands; the other gets
   ConcurrencyConflict, or PaymentFailure once the claim is visible.
3. Release the net amount to the seller, with no lock held.  A zero net
   amount is settled without calling the provider.
4. Re-read the order and commit ``settled`` with the version check.
5. Notify the seller after the commit; failures there are only logged.

A payout that fails drops the claim and leaves the order ``delivered``
with commission untouched.  A payout that succeeds but whose commit loses
a race is logged at error level and surfaced with its transaction id; the
claim stays in place so nobody pays the seller again before an operator
has matched it by hand.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import SettlementDTO
from fulfillment.application.notifications import notify_quietly
from fulfillment.domain.exceptions import (
    ConcurrencyConflict,
    DomainException,
    EntityNotFoundError,
    PaymentFailure,
)
from fulfillment.domain.gateways import Notifier, PayoutDirectory, PayoutGateway, PayoutResult
from fulfillment.domain.model.order import Order
from fulfillment.domain.model.value_objects import Money
from fulfillment.domain.repository.order_repository import OrderRepository

logger = structlog.get_logger(__name__)


def payout_reference(order_id: str) -> str:
    """Idempotency reference handed to the payout provider."""
    return f"ORDER_{order_id}_PAYMENT"


class SettlementCoordinator:

    def __init__(
        self,
        order_repo: OrderRepository,
        payout: PayoutGateway,
        directory: PayoutDirectory,
        notifier: Notifier | None = None,
    ) -> None:
        self._order_repo = order_repo
        self._payout = payout
        self._directory = directory
        self._notifier = notifier

    def settle(self, order_id: str, actor: str = "platform") -> SettlementDTO:
        """Release the seller's net amount for a delivered order.

        Raises:
            PaymentFailure: payout already released, another settlement of
                the same order is running, or the provider failed.
            ConcurrencyConflict: the order changed between the read and the
                claim, or between the payout and the commit.
            IllegalTransition: the order is not delivered.
        """
        order = self._load(order_id)
        order.assert_settleable()
        seller_id = order.seller_id
        destination = self._directory.destination_for(seller_id)
        amount = order.net_amount

        self._claim(order, actor)
        try:
            result = self._release(order.id, destination, amount)
        except PaymentFailure as exc:
            logger.warning(
                "payout_failed", order_id=order.id, seller_id=seller_id, reason=str(exc)
            )
            self._abandon(order.id, actor, str(exc))
            raise

        order = self._commit(order_id, result.transaction_id, actor)
        logger.info(
            "settlement_committed",
            order_id=order.id, seller_id=seller_id, transaction_id=result.transaction_id,
            net_amount=str(amount), commission=str(order.commission_amount),
        )
        notify_quietly(self._notifier, [seller_id], order.events[-1])
        return SettlementDTO(
            order_id=order.id,
            transaction_id=result.transaction_id,
            seller_id=seller_id,
            destination=destination,
            net_amount=str(amount),
            commission_amount=str(order.commission_amount),
        )

    def handle(self, order_id: str, actor: str = "platform") -> SettlementDTO:
        return self.settle(order_id, actor)

    # --- Steps ------------------------------------------------------------------

    def _claim(self, order: Order, actor: str) -> None:
        order.begin_settlement(actor)
        try:
            self._order_repo.save(order)
        except ConcurrencyConflict:
            logger.warning("settlement_claim_lost", order_id=order.id)
            raise

    def _release(self, order_id: str, destination: str, amount: Money) -> PayoutResult:
        reference = payout_reference(order_id)
        if amount.is_zero:
            logger.info("zero_payout_skipped", order_id=order_id, reference=reference)
            return PayoutResult(transaction_id=reference)
        return self._payout.release(destination, amount, reference)

    def _abandon(self, order_id: str, actor: str, reason: str) -> None:
        # The payout failure is what the caller sees.  A claim left behind
        # here keeps the order from being settled again.
        try:
            order = self._load(order_id)
            order.abandon_settlement(actor, reason)
            self._order_repo.save(order)
        except DomainException as exc:
            logger.error("settlement_claim_not_cleared", order_id=order_id, error=str(exc))

    def _commit(self, order_id: str, transaction_id: str, actor: str) -> Order:
        try:
            order = self._load(order_id)
            order.settle(transaction_id, actor)
            self._order_repo.save(order)
        except ConcurrencyConflict as exc:
            logger.error(
                "settlement_commit_lost", order_id=order_id, transaction_id=transaction_id,
            )
            raise ConcurrencyConflict(
                order_id,
                exc.expected_version,
                exc.actual_version,
                message=(
                    f"Payout {transaction_id} for order {order_id} was released "
                    f"but the order changed before it could be marked settled"
                ),
            ) from exc
        except DomainException:
            logger.error(
                "settlement_commit_lost", order_id=order_id, transaction_id=transaction_id,
            )
            raise
        return order

    def _load(self, order_id: str) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")
        return order
