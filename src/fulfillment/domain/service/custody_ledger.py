"""Domain service: Delivery Custody Ledger.

Coordinates the cash an agent carries between the buyer's door and a
mobile-money deposit point.  The hard rule lives on ``CashLedger``: a
collection that would breach the agent's ceiling is refused.  Everything
this service adds on top (summaries, reconciliation against orders)
is advisory and never blocks an agent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

import structlog

from fulfillment.domain.exceptions import CeilingExceeded, ValidationError
from fulfillment.domain.model.delivery_agent import (
    DeliveryAgent,
    DepositEvidence,
    DepositRecord,
    DepositStatus,
)
from fulfillment.domain.model.order import Order, OrderStatus
from fulfillment.domain.model.value_objects import Money

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE = Money(Decimal("100"))
DEFAULT_RECENT_DEPOSITS = 5


@dataclass(frozen=True)
class CashSummary:
    agent_id: str
    current_balance: Money
    cash_limit: Money
    available_capacity: Money
    total_collected: Money
    total_deposited: Money
    last_deposit_at: datetime | None
    pending_deposits: int
    verified_deposits: int
    rejected_deposits: int
    recent_deposits: list[DepositRecord]


@dataclass(frozen=True)
class CollectionDiscrepancy:
    order_id: str
    expected: Money | None
    collected: Money | None
    reason: str


@dataclass(frozen=True)
class ReconciliationReport:
    agent_id: str
    deliveries_checked: int
    balance_consistent: bool
    discrepancies: list[CollectionDiscrepancy] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return self.balance_consistent and not self.discrepancies


class DeliveryCustodyLedger:

    def __init__(
        self,
        tolerance: Money = DEFAULT_TOLERANCE,
        recent_deposits: int = DEFAULT_RECENT_DEPOSITS,
    ) -> None:
        if recent_deposits < 0:
            raise ValidationError("Recent deposit window cannot be negative")
        self._tolerance = tolerance
        self._recent_deposits = recent_deposits

    # --- Mutations ------------------------------------------------------------

    def collect(self, agent: DeliveryAgent, amount: Money, order_id: str) -> None:
        """Record cash taken at the door; raises CeilingExceeded on a breach."""
        try:
            agent.collect_cash(order_id, amount)
        except CeilingExceeded as exc:
            logger.warning(
                "cash_ceiling_exceeded",
                agent_id=agent.id, order_id=order_id,
                balance=str(exc.balance), limit=str(exc.limit), amount=str(exc.amount),
            )
            raise
        logger.info(
            "cash_collected",
            agent_id=agent.id, order_id=order_id, amount=str(amount),
            balance=str(agent.cash.current_balance),
        )

    def deposit(
        self, agent: DeliveryAgent, amount: Money, evidence: DepositEvidence
    ) -> DepositRecord:
        """Append a pending deposit and free the agent's capacity at once."""
        deposit = agent.record_deposit(amount, evidence)
        logger.info(
            "deposit_recorded",
            agent_id=agent.id, deposit_id=deposit.id, amount=str(amount),
            balance=str(agent.cash.current_balance),
        )
        return deposit

    def verify_deposit(
        self,
        agent: DeliveryAgent,
        deposit_id: str,
        verifier: str,
        approve: bool = True,
    ) -> DepositRecord:
        """Settle a pending deposit; a rejection books a reversal entry."""
        deposit = agent.verify_deposit(deposit_id, verifier, approve)
        log = logger.info if approve else logger.warning
        log(
            "deposit_verified" if approve else "deposit_rejected",
            agent_id=agent.id, deposit_id=deposit.id, verifier=verifier,
            amount=str(deposit.amount), balance=str(agent.cash.current_balance),
        )
        return deposit

    # --- Queries --------------------------------------------------------------

    def summary(self, agent: DeliveryAgent) -> CashSummary:
        ledger = agent.cash
        recent = ledger.deposits[-self._recent_deposits:] if self._recent_deposits else []
        return CashSummary(
            agent_id=agent.id,
            current_balance=ledger.current_balance,
            cash_limit=ledger.cash_limit,
            available_capacity=ledger.available_capacity,
            total_collected=ledger.total_collected,
            total_deposited=ledger.total_deposited,
            last_deposit_at=ledger.last_deposit_at,
            pending_deposits=len(ledger.deposits_with_status(DepositStatus.PENDING)),
            verified_deposits=len(ledger.deposits_with_status(DepositStatus.VERIFIED)),
            rejected_deposits=len(ledger.deposits_with_status(DepositStatus.REJECTED)),
            recent_deposits=list(recent),
        )

    def reconcile(self, agent: DeliveryAgent, orders: list[Order]) -> ReconciliationReport:
        """Compare the cash each delivery brought in with what its order expects.

        Report-only: mismatches are logged and returned, nothing is raised.
        """
        by_id = {order.id: order for order in orders}
        discrepancies: list[CollectionDiscrepancy] = []
        checked = 0

        for delivery in agent.deliveries:
            order = by_id.get(delivery.order_id)
            if order is None:
                continue
            checked += 1
            collected = delivery.cash_collected

            if not order.requires_cash_collection:
                if collected is not None:
                    discrepancies.append(CollectionDiscrepancy(
                        order.id, None, collected, "cash collected on a prepaid order",
                    ))
                continue

            expected = order.total_amount
            if collected is None:
                if order.status in (OrderStatus.DELIVERED, OrderStatus.SETTLED):
                    discrepancies.append(CollectionDiscrepancy(
                        order.id, expected, None, "delivered without cash collection",
                    ))
                continue

            if abs(collected.amount - expected.amount) > self._tolerance.amount:
                discrepancies.append(CollectionDiscrepancy(
                    order.id, expected, collected,
                    f"collected amount differs from order total by more than {self._tolerance}",
                ))

        ledger = agent.cash
        balance_consistent = (
            ledger.current_balance.amount
            == ledger.total_collected.amount - ledger.total_deposited.amount
        )

        report = ReconciliationReport(
            agent_id=agent.id,
            deliveries_checked=checked,
            balance_consistent=balance_consistent,
            discrepancies=discrepancies,
        )
        if not report.is_clean:
            logger.warning(
                "custody_reconciliation_mismatch",
                agent_id=agent.id,
                discrepancies=len(discrepancies),
                balance_consistent=balance_consistent,
            )
        return report
