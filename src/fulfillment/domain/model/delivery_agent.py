"""DeliveryAgent aggregate: a courier with their deliveries and cash custody.

Each agent carries a ``CashLedger``: cash collected from buyers on behalf
of the platform and not yet deposited.  The ledger is append-only:
deposits are never removed, only moved from ``pending`` to ``verified`` or
``rejected``, and a rejection is compensated by a correction entry
rather than by editing the deposit.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.exceptions import (
    AlreadyFinal,
    CeilingExceeded,
    EntityNotFoundError,
    ValidationError,
)
from fulfillment.domain.model.order import DeliveryStatus
from fulfillment.domain.model.value_objects import DEFAULT_CURRENCY, GeoPoint, Money

DEFAULT_CASH_LIMIT = Money(Decimal("500000"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VehicleType(Enum):
    MOTORCYCLE = "motorcycle"
    BICYCLE = "bicycle"
    CAR = "car"
    VAN = "van"
    TRUCK = "truck"


class DepositStatus(Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DepositEvidence:
    """What the agent hands in to prove a deposit at a mobile-money agent."""

    agent_name: str = ""
    agent_phone: str = ""
    provider: str = ""
    transaction_reference: str = ""
    receipt_url: str = ""
    location: GeoPoint | None = None


@dataclass
class DepositRecord:
    id: str
    amount: Money
    deposited_at: datetime
    evidence: DepositEvidence = field(default_factory=DepositEvidence)
    status: DepositStatus = DepositStatus.PENDING
    verified_by: str | None = None
    verified_at: datetime | None = None

    @property
    def is_final(self) -> bool:
        return self.status is not DepositStatus.PENDING


@dataclass(frozen=True)
class LedgerCorrection:
    """Reversal entry restoring the balance for a rejected deposit."""

    deposit_id: str
    amount: Money
    reason: str
    recorded_at: datetime


@dataclass
class CashLedger:
    """Cash held by one agent.

    Invariants:
    - a collection never leaves ``current_balance`` above ``cash_limit``
    - ``current_balance == total_collected - total_deposited``
    """

    cash_limit: Money = DEFAULT_CASH_LIMIT
    current_balance: Money = field(default_factory=Money.zero)
    total_collected: Money = field(default_factory=Money.zero)
    total_deposited: Money = field(default_factory=Money.zero)
    last_deposit_at: datetime | None = None
    deposits: list[DepositRecord] = field(default_factory=list)
    corrections: list[LedgerCorrection] = field(default_factory=list)

    @property
    def available_capacity(self) -> Money:
        if self.current_balance >= self.cash_limit:
            return Money.zero(self.cash_limit.currency)
        return self.cash_limit - self.current_balance

    def can_collect(self, amount: Money) -> bool:
        return (self.current_balance + amount) <= self.cash_limit

    def collect(self, amount: Money) -> None:
        _assert_positive(amount, "Collected amount")
        if not self.can_collect(amount):
            raise CeilingExceeded(
                self.current_balance.amount, self.cash_limit.amount, amount.amount
            )
        self.current_balance = self.current_balance + amount
        self.total_collected = self.total_collected + amount

    def record_deposit(self, amount: Money, evidence: DepositEvidence) -> DepositRecord:
        """Credit the agent immediately; verification happens later."""
        _assert_positive(amount, "Deposit amount")
        if amount > self.current_balance:
            raise ValidationError(
                f"Insufficient cash balance: depositing {amount} "
                f"but only {self.current_balance} held"
            )
        deposit = DepositRecord(
            id=f"DEP-{uuid.uuid4().hex[:12].upper()}",
            amount=amount,
            deposited_at=_now(),
            evidence=evidence,
        )
        self.deposits.append(deposit)
        self.current_balance = self.current_balance - amount
        self.total_deposited = self.total_deposited + amount
        self.last_deposit_at = deposit.deposited_at
        return deposit

    def verify_deposit(self, deposit_id: str, verifier: str, approve: bool) -> DepositRecord:
        deposit = self.find_deposit(deposit_id)
        if deposit.is_final:
            raise AlreadyFinal(
                f"Deposit {deposit_id} is already {deposit.status.value}"
            )

        now = _now()
        deposit.verified_by = verifier
        deposit.verified_at = now
        if approve:
            deposit.status = DepositStatus.VERIFIED
            return deposit

        deposit.status = DepositStatus.REJECTED
        self.corrections.append(
            LedgerCorrection(
                deposit_id=deposit.id,
                amount=deposit.amount,
                reason=f"deposit rejected by {verifier}",
                recorded_at=now,
            )
        )
        self.current_balance = self.current_balance + deposit.amount
        self.total_deposited = self.total_deposited - deposit.amount
        return deposit

    def find_deposit(self, deposit_id: str) -> DepositRecord:
        for deposit in self.deposits:
            if deposit.id == deposit_id:
                return deposit
        raise EntityNotFoundError(f"Deposit '{deposit_id}' not found")

    def deposits_with_status(self, status: DepositStatus) -> list[DepositRecord]:
        return [d for d in self.deposits if d.status is status]


@dataclass
class AgentDelivery:
    """One order in an agent's hands: assigned -> pickup_confirmed -> in_transit -> delivered."""

    order_id: str
    assigned_at: datetime
    status: DeliveryStatus = DeliveryStatus.ASSIGNED
    expected_cash: Money | None = None
    cash_collected: Money | None = None
    pickup_confirmed_at: datetime | None = None
    delivered_at: datetime | None = None
    notes: str = ""

    @property
    def is_active(self) -> bool:
        return self.status is not DeliveryStatus.DELIVERED


@dataclass
class DeliveryAgent:
    """Aggregate root for a delivery agent.

    Use ``DeliveryAgent.onboard()`` for new agents.  Delivery entries stay
    in ``deliveries`` after completion as history; ``active_deliveries``
    only returns the open ones.
    """

    id: str
    name: str
    phone: str
    vehicle_type: VehicleType = VehicleType.MOTORCYCLE
    cash: CashLedger = field(default_factory=CashLedger)
    is_active: bool = True
    is_verified: bool = False
    verified_at: datetime | None = None
    deliveries: list[AgentDelivery] = field(default_factory=list)
    total_deliveries: int = 0
    successful_deliveries: int = 0
    onboarded_at: datetime = field(default_factory=_now)
    version: int = 0
    events: list[DomainEvent] = field(default_factory=list)

    # --- Factory --------------------------------------------------------------

    @staticmethod
    def onboard(
        agent_id: str,
        name: str,
        phone: str,
        vehicle_type: VehicleType = VehicleType.MOTORCYCLE,
        cash_limit: Money = DEFAULT_CASH_LIMIT,
    ) -> DeliveryAgent:
        if not agent_id or not agent_id.strip():
            raise ValidationError("Agent ID is required")
        if not name or not name.strip():
            raise ValidationError("Agent name is required")
        if not phone or not phone.strip():
            raise ValidationError("Agent phone number is required")
        if cash_limit.is_zero:
            raise ValidationError("Cash limit must be greater than zero")

        agent = DeliveryAgent(
            id=agent_id.strip(),
            name=name.strip(),
            phone=phone.strip(),
            vehicle_type=vehicle_type,
            cash=CashLedger(
                cash_limit=cash_limit,
                current_balance=Money.zero(cash_limit.currency),
                total_collected=Money.zero(cash_limit.currency),
                total_deposited=Money.zero(cash_limit.currency),
            ),
        )
        agent._record("agent_onboarded", actor=agent.id)
        return agent

    # --- Lifecycle ------------------------------------------------------------

    def verify(self, actor: str) -> None:
        if self.is_verified:
            raise ValidationError(f"Agent {self.id} is already verified")
        self.is_verified = True
        self.verified_at = _now()
        self._record("agent_verified", actor)

    def accept_delivery(self, order_id: str, expected_cash: Money | None = None) -> AgentDelivery:
        if not self.is_active:
            raise ValidationError(f"Agent {self.id} is not active")
        if not self.is_verified:
            raise ValidationError(f"Agent {self.id} has not been verified")
        if any(d.order_id == order_id for d in self.deliveries):
            raise ValidationError(f"Order {order_id} is already on agent {self.id}'s list")

        delivery = AgentDelivery(
            order_id=order_id, assigned_at=_now(), expected_cash=expected_cash
        )
        self.deliveries.append(delivery)
        self.total_deliveries += 1
        self._record("delivery_accepted", actor=self.id, order_id=order_id)
        return delivery

    def confirm_pickup(self, order_id: str) -> None:
        delivery = self._delivery_in(order_id, DeliveryStatus.ASSIGNED)
        delivery.status = DeliveryStatus.PICKUP_CONFIRMED
        delivery.pickup_confirmed_at = _now()
        self._record("pickup_confirmed", actor=self.id, order_id=order_id)

    def start_transit(self, order_id: str) -> None:
        delivery = self._delivery_in(order_id, DeliveryStatus.PICKUP_CONFIRMED)
        delivery.status = DeliveryStatus.IN_TRANSIT
        self._record("in_transit", actor=self.id, order_id=order_id)

    def complete_delivery(self, order_id: str) -> None:
        delivery = self._delivery_in(order_id, DeliveryStatus.IN_TRANSIT)
        delivery.status = DeliveryStatus.DELIVERED
        delivery.delivered_at = _now()
        self.successful_deliveries += 1
        self._record("delivered", actor=self.id, order_id=order_id)

    # --- Cash custody ---------------------------------------------------------

    def collect_cash(self, order_id: str, amount: Money) -> None:
        """Take cash from a buyer; rejected outright if it breaches the limit."""
        delivery = self.delivery_for(order_id)
        if delivery.cash_collected is not None:
            raise ValidationError(
                f"Cash for order {order_id} was already collected ({delivery.cash_collected})"
            )
        self.cash.collect(amount)
        delivery.cash_collected = amount
        self._record("cash_collected", actor=self.id, order_id=order_id, amount=str(amount))

    def record_deposit(self, amount: Money, evidence: DepositEvidence) -> DepositRecord:
        deposit = self.cash.record_deposit(amount, evidence)
        self._record(
            "cash_deposited", actor=self.id, deposit_id=deposit.id, amount=str(amount)
        )
        return deposit

    def verify_deposit(self, deposit_id: str, verifier: str, approve: bool = True) -> DepositRecord:
        deposit = self.cash.verify_deposit(deposit_id, verifier, approve)
        self._record(
            f"deposit_{deposit.status.value}", actor=verifier,
            deposit_id=deposit.id, amount=str(deposit.amount),
        )
        return deposit

    # --- Queries --------------------------------------------------------------

    @property
    def active_deliveries(self) -> list[AgentDelivery]:
        return [d for d in self.deliveries if d.is_active]

    @property
    def currency(self) -> str:
        return self.cash.cash_limit.currency if self.cash else DEFAULT_CURRENCY

    def delivery_for(self, order_id: str) -> AgentDelivery:
        for delivery in self.deliveries:
            if delivery.order_id == order_id:
                return delivery
        raise EntityNotFoundError(f"Order {order_id} is not assigned to agent {self.id}")

    # --- Internal helpers -----------------------------------------------------

    def _delivery_in(self, order_id: str, expected: DeliveryStatus) -> AgentDelivery:
        delivery = self.delivery_for(order_id)
        if delivery.status is not expected:
            raise ValidationError(
                f"Delivery of order {order_id} is {delivery.status.value}, "
                f"expected {expected.value}"
            )
        return delivery

    def _record(self, event_type: str, actor: str, order_id: str | None = None, **details) -> None:
        self.events.append(
            DomainEvent(event_type=event_type, order_id=order_id, actor=actor, details=details)
        )


def _assert_positive(amount: Money, label: str) -> None:
    if amount.is_zero:
        raise ValidationError(f"{label} must be greater than zero")
