"""Data Transfer Objects: plain containers that cross layer boundaries.

DTOs carry data between the CLI and application layers without
exposing domain internals to the outside world.  Amounts travel as
strings so no Decimal or Money leaks out of the application layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from fulfillment.domain.model.delivery_agent import DeliveryAgent, DepositRecord
from fulfillment.domain.model.order import Order
from fulfillment.domain.service.custody_ledger import CashSummary, ReconciliationReport

_TIME_FORMAT = "%Y-%m-%d %H:%M UTC"


def _fmt(value: datetime | None) -> str | None:
    return None if value is None else value.strftime(_TIME_FORMAT)


# --- Inputs -------------------------------------------------------------------


@dataclass(frozen=True)
class OrderItemSpec:
    """Input: one product the buyer is ordering, price as seen at checkout."""

    seller_id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: str  # decimal string, e.g. "15000"


@dataclass(frozen=True)
class ShippingSpec:
    """Input: where the order is delivered."""

    full_name: str
    address: str
    city: str
    country: str
    phone: str
    longitude: float | None = None
    latitude: float | None = None


@dataclass(frozen=True)
class DepositEvidenceSpec:
    """Input: proof of a mobile-money deposit."""

    agent_name: str = ""
    agent_phone: str = ""
    provider: str = ""
    transaction_reference: str = ""
    receipt_url: str = ""
    longitude: float | None = None
    latitude: float | None = None


# --- Orders -------------------------------------------------------------------


@dataclass(frozen=True)
class OrderLineItemDTO:
    """Output: a single line item as displayed to the user."""

    seller_id: str
    product_name: str
    quantity: int
    unit_price: str  # formatted, e.g. "UGX 15,000"
    line_total: str


@dataclass(frozen=True)
class OrderDTO:
    """Output: a complete order as displayed to the user."""

    id: str
    buyer_id: str
    category: str
    status: str
    payment_status: str
    payment_channel: str
    delivery_status: str
    items: list[OrderLineItemDTO]
    subtotal: str
    delivery_fee: str
    total: str
    commission_percentage: int
    commission_amount: str
    commission_status: str
    estimated_fee: str
    net_amount: str
    assigned_agent_id: str | None
    cash_collected: str | None
    payout_transaction_id: str | None
    created_at: str
    delivered_at: str | None
    settled_at: str | None
    version: int


def order_to_dto(order: Order) -> OrderDTO:
    return OrderDTO(
        id=order.id,
        buyer_id=order.buyer_id,
        category=order.category,
        status=order.status.value,
        payment_status=order.payment_status.value,
        payment_channel=order.payment_channel.value,
        delivery_status=order.delivery_status.value,
        items=[
            OrderLineItemDTO(
                seller_id=item.seller_id,
                product_name=item.product_name,
                quantity=item.quantity.value,
                unit_price=str(item.unit_price),
                line_total=str(item.line_total),
            )
            for item in order.items
        ],
        subtotal=str(order.subtotal),
        delivery_fee=str(order.delivery_fee),
        total=str(order.total_amount),
        commission_percentage=order.commission_percentage,
        commission_amount=str(order.commission_amount),
        commission_status=order.commission_status.value,
        estimated_fee=str(order.estimated_fee),
        net_amount=str(order.net_amount),
        assigned_agent_id=order.assigned_agent_id,
        cash_collected=None if order.cash_collected is None else str(order.cash_collected),
        payout_transaction_id=order.payout_transaction_id,
        created_at=_fmt(order.created_at),
        delivered_at=_fmt(order.delivered_at),
        settled_at=_fmt(order.settled_at),
        version=order.version,
    )


@dataclass(frozen=True)
class HandoffTokenDTO:
    order_id: str
    payload: str  # what the buyer's QR code encodes
    issued_at: str


# --- Delivery agents ----------------------------------------------------------


@dataclass(frozen=True)
class AgentDTO:
    id: str
    name: str
    phone: str
    vehicle_type: str
    is_active: bool
    is_verified: bool
    cash_balance: str
    cash_limit: str
    active_deliveries: list[str]
    total_deliveries: int
    successful_deliveries: int


def agent_to_dto(agent: DeliveryAgent) -> AgentDTO:
    return AgentDTO(
        id=agent.id,
        name=agent.name,
        phone=agent.phone,
        vehicle_type=agent.vehicle_type.value,
        is_active=agent.is_active,
        is_verified=agent.is_verified,
        cash_balance=str(agent.cash.current_balance),
        cash_limit=str(agent.cash.cash_limit),
        active_deliveries=[d.order_id for d in agent.active_deliveries],
        total_deliveries=agent.total_deliveries,
        successful_deliveries=agent.successful_deliveries,
    )


@dataclass(frozen=True)
class DepositDTO:
    id: str
    agent_id: str
    amount: str
    status: str
    deposited_at: str
    provider: str
    transaction_reference: str
    verified_by: str | None = None
    verified_at: str | None = None


def deposit_to_dto(agent_id: str, deposit: DepositRecord) -> DepositDTO:
    return DepositDTO(
        id=deposit.id,
        agent_id=agent_id,
        amount=str(deposit.amount),
        status=deposit.status.value,
        deposited_at=_fmt(deposit.deposited_at),
        provider=deposit.evidence.provider,
        transaction_reference=deposit.evidence.transaction_reference,
        verified_by=deposit.verified_by,
        verified_at=_fmt(deposit.verified_at),
    )


@dataclass(frozen=True)
class CashSummaryDTO:
    agent_id: str
    current_balance: str
    cash_limit: str
    available_capacity: str
    total_collected: str
    total_deposited: str
    last_deposit_at: str | None
    pending_deposits: int
    verified_deposits: int
    rejected_deposits: int
    recent_deposits: list[DepositDTO] = field(default_factory=list)


def cash_summary_to_dto(summary: CashSummary) -> CashSummaryDTO:
    return CashSummaryDTO(
        agent_id=summary.agent_id,
        current_balance=str(summary.current_balance),
        cash_limit=str(summary.cash_limit),
        available_capacity=str(summary.available_capacity),
        total_collected=str(summary.total_collected),
        total_deposited=str(summary.total_deposited),
        last_deposit_at=_fmt(summary.last_deposit_at),
        pending_deposits=summary.pending_deposits,
        verified_deposits=summary.verified_deposits,
        rejected_deposits=summary.rejected_deposits,
        recent_deposits=[deposit_to_dto(summary.agent_id, d) for d in summary.recent_deposits],
    )


@dataclass(frozen=True)
class DiscrepancyDTO:
    order_id: str
    expected: str | None
    collected: str | None
    reason: str


@dataclass(frozen=True)
class ReconciliationDTO:
    agent_id: str
    deliveries_checked: int
    balance_consistent: bool
    is_clean: bool
    discrepancies: list[DiscrepancyDTO] = field(default_factory=list)


def reconciliation_to_dto(report: ReconciliationReport) -> ReconciliationDTO:
    return ReconciliationDTO(
        agent_id=report.agent_id,
        deliveries_checked=report.deliveries_checked,
        balance_consistent=report.balance_consistent,
        is_clean=report.is_clean,
        discrepancies=[
            DiscrepancyDTO(
                order_id=d.order_id,
                expected=None if d.expected is None else str(d.expected),
                collected=None if d.collected is None else str(d.collected),
                reason=d.reason,
            )
            for d in report.discrepancies
        ],
    )


# --- Settlement ---------------------------------------------------------------


@dataclass(frozen=True)
class SettlementDTO:
    order_id: str
    transaction_id: str
    seller_id: str
    destination: str
    net_amount: str
    commission_amount: str
