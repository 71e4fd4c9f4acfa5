"""Order aggregate, the core of the domain.

The Order is an aggregate root that owns its line items, its money
breakdown and its audit trail.  Every status change goes through one of
the transition methods below; each validates its guard *before* touching
any field, so a refused transition leaves the order exactly as it was.

Lifecycle::

    pending -> confirmed -> in_transit -> delivered -> settled
    pending|confirmed -> cancelled
    delivered -> refunded
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.exceptions import (
    ConcurrencyConflict,
    IllegalTransition,
    PaymentFailure,
    ValidationError,
)
from fulfillment.domain.model.value_objects import (
    DEFAULT_CURRENCY,
    Money,
    PaymentChannel,
    Quantity,
    ShippingAddress,
)
from fulfillment.domain.service.money_policy import (
    DEFAULT_FEE_SCHEDULE,
    FeeSchedule,
    compute_settlement,
)


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    SETTLED = "settled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"  # capture sent to the provider
    COMPLETED = "completed"
    FAILED = "failed"
    RELEASING = "releasing"  # seller payout sent to the provider
    RELEASED = "released"
    REFUNDED = "refunded"


class DeliveryStatus(Enum):
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    PICKUP_CONFIRMED = "pickup_confirmed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


class CommissionStatus(Enum):
    PENDING = "pending"
    COLLECTED = "collected"
    PAID = "paid"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.SETTLED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)
# A handoff token may only be issued or redeemed inside this window.
HANDOFF_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT})

MAX_LINE_ITEMS = 50


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OrderLineItem:
    """Price snapshot of a seller's product at checkout time."""

    seller_id: str
    product_id: str
    product_name: str
    quantity: Quantity
    unit_price: Money  # locked at order-creation time

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity.value


@dataclass
class Order:
    """Aggregate root for marketplace orders.

    Use the ``Order.create()`` factory for new orders; it enforces all
    business rules and prices the order.  The ``__init__`` is intentionally
    simple so the repository can reconstitute persisted orders without
    re-validating.

    ``version`` is the optimistic-concurrency counter; repositories refuse
    to save an order whose version no longer matches the stored one.
    """

    id: str
    buyer_id: str
    items: list[OrderLineItem]
    shipping: ShippingAddress
    payment_channel: PaymentChannel
    category: str = ""
    delivery_fee: Money = field(default_factory=Money.zero)

    commission_percentage: int = 0
    commission_amount: Money = field(default_factory=Money.zero)
    commission_status: CommissionStatus = CommissionStatus.PENDING
    estimated_fee: Money = field(default_factory=Money.zero)
    net_amount: Money = field(default_factory=Money.zero)

    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_reference: str | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.UNASSIGNED
    assigned_agent_id: str | None = None
    cash_collected: Money | None = None
    payout_transaction_id: str | None = None

    created_at: datetime = field(default_factory=_now)
    paid_at: datetime | None = None
    handoff_issued_at: datetime | None = None
    assigned_at: datetime | None = None
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    settled_at: datetime | None = None
    payment_released_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None

    version: int = 0
    events: list[DomainEvent] = field(default_factory=list)

    # --- Factory (used for NEW orders only) -----------------------------------

    @staticmethod
    def create(
        order_id: str,
        buyer_id: str,
        items: list[OrderLineItem],
        shipping: ShippingAddress,
        payment_channel: PaymentChannel,
        category: str = "",
        delivery_fee: Money | None = None,
        fee_schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
    ) -> Order:
        """Create a new order, enforcing all invariants."""
        if not order_id or not order_id.strip():
            raise ValidationError("Order ID is required")
        if not buyer_id or not buyer_id.strip():
            raise ValidationError("Buyer ID is required")
        if not items:
            raise ValidationError("Order must contain at least one item")
        if len(items) > MAX_LINE_ITEMS:
            raise ValidationError(f"Maximum {MAX_LINE_ITEMS} items per order")

        currency = items[0].unit_price.currency
        if any(item.unit_price.currency != currency for item in items):
            raise ValidationError("All line items must share one currency")
        if any(not item.seller_id.strip() for item in items):
            raise ValidationError("Every line item needs a seller")

        order = Order(
            id=order_id.strip(),
            buyer_id=buyer_id.strip(),
            items=list(items),
            shipping=shipping,
            payment_channel=payment_channel,
            category=category.strip(),
            delivery_fee=delivery_fee or Money.zero(currency),
        )
        order._reprice(fee_schedule)
        order._record("order_created", actor=order.buyer_id, total=str(order.total_amount))
        return order

    # --- Re-pricing (pending, unpaid orders only) -----------------------------

    def change_payment_channel(
        self,
        channel: PaymentChannel,
        actor: str,
        fee_schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
    ) -> None:
        self._assert_repriceable()
        previous = self.payment_channel
        self.payment_channel = channel
        try:
            self._reprice(fee_schedule)
        except Exception:
            self.payment_channel = previous
            raise
        self._record(
            "payment_channel_changed", actor, previous=previous.value, channel=channel.value
        )

    def apply_delivery_fee(
        self,
        fee: Money,
        actor: str,
        fee_schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
    ) -> None:
        self._assert_repriceable()
        if fee.currency != self.currency:
            raise ValidationError(f"Delivery fee must be in {self.currency}")
        previous = self.delivery_fee
        self.delivery_fee = fee
        try:
            self._reprice(fee_schedule)
        except Exception:
            self.delivery_fee = previous
            raise
        self._record("delivery_fee_applied", actor, fee=str(fee))

    # --- State transitions ----------------------------------------------------

    def record_payment(self, succeeded: bool, reference: str | None, actor: str) -> None:
        """Apply the result of an external payment capture.

        A failed capture leaves the order pending so the buyer can retry.
        Cash-on-delivery orders are paid at the door, never here.
        """
        if self.payment_status is not PaymentStatus.PROCESSING:
            self.assert_payable()

        if succeeded:
            self.payment_status = PaymentStatus.COMPLETED
            self.payment_reference = reference
            self.paid_at = _now()
            self._record("payment_captured", actor, reference=reference)
        else:
            self.payment_status = PaymentStatus.FAILED
            self._record("payment_failed", actor, reference=reference)

    def assert_payable(self) -> None:
        """Raise unless a payment capture may be applied to this order."""
        if self.payment_channel is PaymentChannel.CASH_ON_DELIVERY:
            raise ValidationError("Cash-on-delivery orders are paid at delivery")
        if self.status is not OrderStatus.PENDING:
            raise IllegalTransition(
                self.status.value, PaymentStatus.COMPLETED.value,
                "payment can only be captured on pending orders",
            )
        if self.payment_status is PaymentStatus.COMPLETED:
            raise IllegalTransition(
                self.payment_status.value, PaymentStatus.COMPLETED.value,
                "payment already captured",
            )
        if self.payment_status is PaymentStatus.PROCESSING:
            raise PaymentFailure(f"Payment capture for order {self.id} is already in progress")

    def begin_capture(self, actor: str) -> None:
        """Claim the order for one capture before the provider is asked.

        Saved with the version check, so of two concurrent captures only
        one reaches the provider.
        """
        self.assert_payable()
        self.payment_status = PaymentStatus.PROCESSING
        self._record("payment_capture_started", actor)

    def abandon_capture(self, actor: str, reason: str = "") -> None:
        """Drop the capture claim after the provider call itself failed."""
        if self.payment_status is not PaymentStatus.PROCESSING:
            return
        self.payment_status = PaymentStatus.PENDING
        self._record("payment_capture_abandoned", actor, reason=reason)

    def confirm(self, actor: str) -> None:
        """Transition pending -> confirmed.

        Requires a completed payment unless cash is collected at delivery.
        """
        self._assert_status(OrderStatus.PENDING, OrderStatus.CONFIRMED)
        if (
            self.payment_status is not PaymentStatus.COMPLETED
            and self.payment_channel is not PaymentChannel.CASH_ON_DELIVERY
        ):
            raise IllegalTransition(
                self.status.value, OrderStatus.CONFIRMED.value,
                f"payment is {self.payment_status.value}, expected completed",
            )
        self.status = OrderStatus.CONFIRMED
        self._record("order_confirmed", actor)

    def mark_handoff_issued(self, actor: str) -> None:
        if self.status not in HANDOFF_STATUSES:
            raise ValidationError(
                f"Handoff tokens cannot be issued for {self.status.value} orders"
            )
        self.handoff_issued_at = _now()
        self._record("handoff_token_issued", actor)

    def assign_agent(self, agent_id: str, actor: str) -> None:
        """Hand the confirmed order to exactly one delivery agent."""
        if self.status is not OrderStatus.CONFIRMED:
            raise IllegalTransition(
                self.status.value, DeliveryStatus.ASSIGNED.value,
                "only confirmed orders can be assigned",
            )
        if self.assigned_agent_id is not None:
            raise ConcurrencyConflict(
                self.id,
                message=(
                    f"Order {self.id} is already assigned to agent "
                    f"{self.assigned_agent_id}"
                ),
            )
        self.assigned_agent_id = agent_id
        self.delivery_status = DeliveryStatus.ASSIGNED
        self.assigned_at = _now()
        self._record("agent_assigned", actor, agent_id=agent_id)

    def confirm_pickup(self, agent_id: str, actor: str) -> None:
        """Transition confirmed -> in_transit.

        The handoff token must already have been checked against this
        order (see ``HandoffTokenService.redeem``).
        """
        self._assert_status(OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT)
        if self.assigned_agent_id is None:
            raise IllegalTransition(
                self.status.value, OrderStatus.IN_TRANSIT.value,
                "no delivery agent assigned",
            )
        self._assert_assigned_agent(agent_id, OrderStatus.IN_TRANSIT)

        self.status = OrderStatus.IN_TRANSIT
        self.delivery_status = DeliveryStatus.IN_TRANSIT
        self.picked_up_at = _now()
        self._record("pickup_confirmed", actor, agent_id=agent_id)
        self._record("in_transit", actor, agent_id=agent_id)

    def record_cash_collection(self, agent_id: str, amount: Money, actor: str) -> None:
        """Note the cash the assigned agent took at the door.

        The agent's custody ledger must accept the same amount in the same
        unit of work; the caller persists both together.
        """
        if not self.requires_cash_collection:
            raise ValidationError(
                f"Order {self.id} is prepaid via {self.payment_channel.value}; "
                f"no cash should be collected"
            )
        if self.status is not OrderStatus.IN_TRANSIT:
            raise IllegalTransition(
                self.status.value, "cash_collected", "cash is collected while in transit"
            )
        self._assert_assigned_agent(agent_id, OrderStatus.DELIVERED)
        if self.cash_collected is not None:
            raise ValidationError(
                f"Cash for order {self.id} was already collected ({self.cash_collected})"
            )
        if amount.currency != self.currency:
            raise ValidationError(f"Collected cash must be in {self.currency}")

        self.cash_collected = amount
        self.payment_status = PaymentStatus.COMPLETED
        self.paid_at = _now()
        self._record("cash_collected", actor, agent_id=agent_id, amount=str(amount))

    def mark_delivered(self, agent_id: str, actor: str) -> None:
        """Transition in_transit -> delivered.

        Cash-on-delivery orders must have their collection recorded first.
        """
        self._assert_status(OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED)
        self._assert_assigned_agent(agent_id, OrderStatus.DELIVERED)
        if self.requires_cash_collection and self.cash_collected is None:
            raise IllegalTransition(
                self.status.value, OrderStatus.DELIVERED.value,
                "cash has not been collected",
            )

        self.status = OrderStatus.DELIVERED
        self.delivery_status = DeliveryStatus.DELIVERED
        self.delivered_at = _now()
        self._record("delivered", actor, agent_id=agent_id)

    def settle(self, transaction_id: str, actor: str) -> None:
        """Transition delivered -> settled after the seller payout succeeded.

        Accepts an order claimed by ``begin_settlement`` as well as an
        unclaimed one.
        """
        if self.payment_status is not PaymentStatus.RELEASING:
            self.assert_settleable()
        self._assert_status(OrderStatus.DELIVERED, OrderStatus.SETTLED)
        if not transaction_id:
            raise ValidationError("A payout transaction reference is required")

        now = _now()
        self.status = OrderStatus.SETTLED
        self.payment_status = PaymentStatus.RELEASED
        self.commission_status = CommissionStatus.COLLECTED
        self.payout_transaction_id = transaction_id
        self.payment_released_at = now
        self.settled_at = now
        self._record(
            "settled", actor,
            transaction_id=transaction_id,
            net_amount=str(self.net_amount),
            commission=str(self.commission_amount),
        )

    def assert_settleable(self) -> None:
        """Raise unless the seller payout may be released for this order."""
        if self.payment_status is PaymentStatus.RELEASED:
            raise PaymentFailure(f"Payout for order {self.id} was already released")
        if self.payment_status is PaymentStatus.RELEASING:
            raise PaymentFailure(f"Settlement of order {self.id} is already in progress")
        self._assert_status(OrderStatus.DELIVERED, OrderStatus.SETTLED)

    def begin_settlement(self, actor: str) -> None:
        """Claim the order for one payout before the provider is asked.

        The claim is persisted with the version check; a second settlement
        sees ``releasing`` and is refused without paying.
        """
        self.assert_settleable()
        self.payment_status = PaymentStatus.RELEASING
        self._record("settlement_started", actor)

    def abandon_settlement(self, actor: str, reason: str = "") -> None:
        """Drop the payout claim after the provider refused the release."""
        if self.payment_status is not PaymentStatus.RELEASING:
            return
        self.payment_status = PaymentStatus.COMPLETED
        self._record("settlement_abandoned", actor, reason=reason)

    def cancel(self, actor: str, reason: str = "") -> None:
        """Transition pending|confirmed -> cancelled.

        Only possible before any payment capture or agent assignment.
        """
        if self.status not in (OrderStatus.PENDING, OrderStatus.CONFIRMED):
            raise IllegalTransition(self.status.value, OrderStatus.CANCELLED.value)
        if self.payment_status is PaymentStatus.COMPLETED:
            raise IllegalTransition(
                self.status.value, OrderStatus.CANCELLED.value, "payment already captured"
            )
        if self.payment_status is PaymentStatus.PROCESSING:
            raise IllegalTransition(
                self.status.value, OrderStatus.CANCELLED.value, "payment capture in progress"
            )
        if self.assigned_agent_id is not None:
            raise IllegalTransition(
                self.status.value, OrderStatus.CANCELLED.value, "delivery agent already assigned"
            )
        self.status = OrderStatus.CANCELLED
        self.cancelled_at = _now()
        self._record("cancelled", actor, reason=reason)

    def refund(self, actor: str, reason: str = "") -> None:
        """Transition delivered -> refunded (exceptional)."""
        self._assert_status(OrderStatus.DELIVERED, OrderStatus.REFUNDED)
        if self.payment_status is PaymentStatus.RELEASING:
            raise IllegalTransition(
                self.status.value, OrderStatus.REFUNDED.value, "seller payout in progress"
            )
        self.status = OrderStatus.REFUNDED
        self.payment_status = PaymentStatus.REFUNDED
        self.refunded_at = _now()
        self._record("refunded", actor, reason=reason)

    # --- Computed properties --------------------------------------------------

    @property
    def currency(self) -> str:
        return self.items[0].unit_price.currency if self.items else DEFAULT_CURRENCY

    @property
    def subtotal(self) -> Money:
        result = Money.zero(self.currency)
        for item in self.items:
            result = result + item.line_total
        return result

    @property
    def total_amount(self) -> Money:
        return self.subtotal + self.delivery_fee

    @property
    def seller_id(self) -> str:
        """The seller who receives the payout."""
        return self.items[0].seller_id

    @property
    def seller_ids(self) -> list[str]:
        return list(dict.fromkeys(item.seller_id for item in self.items))

    @property
    def requires_cash_collection(self) -> bool:
        return self.payment_channel is PaymentChannel.CASH_ON_DELIVERY

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # --- Internal helpers -----------------------------------------------------

    def _reprice(self, fee_schedule: FeeSchedule) -> None:
        breakdown = compute_settlement(self.total_amount, self.payment_channel, fee_schedule)
        self.commission_percentage = breakdown.commission_percentage
        self.commission_amount = breakdown.commission_amount
        self.estimated_fee = breakdown.estimated_fee
        self.net_amount = breakdown.net_amount

    def _assert_repriceable(self) -> None:
        if self.status is not OrderStatus.PENDING:
            raise IllegalTransition(
                self.status.value, "repriced", "only pending orders can be repriced"
            )
        if self.payment_status in (PaymentStatus.PROCESSING, PaymentStatus.COMPLETED):
            raise ValidationError("Cannot reprice an order after payment capture")

    def _assert_status(self, expected: OrderStatus, attempted: OrderStatus) -> None:
        if self.status is not expected:
            raise IllegalTransition(
                self.status.value, attempted.value,
                f"expected {expected.value}",
            )

    def _assert_assigned_agent(self, agent_id: str, attempted: OrderStatus) -> None:
        if self.assigned_agent_id != agent_id:
            raise IllegalTransition(
                self.status.value, attempted.value,
                f"agent {agent_id} is not assigned to order {self.id}",
            )

    def _record(self, event_type: str, actor: str, **details) -> None:
        self.events.append(
            DomainEvent(event_type=event_type, order_id=self.id, actor=actor, details=details)
        )


def generate_order_id() -> str:
    """``ORD-<epoch millis>-<8 hex>``, unique without coordination."""
    millis = int(_now().timestamp() * 1000)
    return f"ORD-{millis}-{secrets.token_hex(4).upper()}"
