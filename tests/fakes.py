"""In-memory fakes for testing.

The fake repositories implement the same abstract interfaces as the JSON
repositories but keep everything in a dict.  Reads hand out deep copies
and ``save`` performs the same version check, so two handlers working on
the same aggregate behave as they would against real storage.
"""

from __future__ import annotations

import copy
import threading
from decimal import Decimal

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.exceptions import ConcurrencyConflict, PaymentFailure
from fulfillment.domain.gateways import (
    CaptureResult,
    CaptureStatus,
    Notifier,
    PaymentCapture,
    PayoutDirectory,
    PayoutGateway,
    PayoutResult,
)
from fulfillment.domain.model.delivery_agent import DeliveryAgent
from fulfillment.domain.model.order import Order, OrderLineItem, OrderStatus
from fulfillment.domain.model.value_objects import (
    Money,
    PaymentChannel,
    Quantity,
    ShippingAddress,
)
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)
from fulfillment.domain.repository.order_repository import OrderRepository
from fulfillment.domain.repository.unit_of_work import UnitOfWork


class _VersionedStore:
    """Dict of deep copies with compare-and-set writes."""

    def __init__(self) -> None:
        self.records: dict[str, object] = {}
        self.lock = threading.RLock()
        # Tests set this to make concurrent readers line up before writing.
        self.read_barrier: threading.Barrier | None = None

    def get(self, entity_id: str):
        with self.lock:
            found = self.records.get(entity_id)
            result = copy.deepcopy(found)
        if self.read_barrier is not None:
            self.read_barrier.wait(timeout=5)
        return result

    def check_version(self, entity) -> None:
        stored = self.records.get(entity.id)
        stored_version = stored.version if stored is not None else 0
        if stored_version != entity.version:
            raise ConcurrencyConflict(entity.id, entity.version, stored_version)

    def write(self, entity) -> None:
        entity.version += 1
        self.records[entity.id] = copy.deepcopy(entity)

    def save(self, entity) -> None:
        with self.lock:
            self.check_version(entity)
            self.write(entity)


class FakeOrderRepository(OrderRepository):

    def __init__(self, orders: list[Order] | None = None) -> None:
        self.store = _VersionedStore()
        self._next_id = 1
        for order in orders or []:
            self.save(order)

    def next_id(self) -> str:
        order_id = f"ORD-TEST-{self._next_id:04d}"
        self._next_id += 1
        return order_id

    def get_by_id(self, order_id: str) -> Order | None:
        return self.store.get(order_id)

    def list_orders(
        self,
        buyer_id: str | None = None,
        seller_id: str | None = None,
        status: OrderStatus | None = None,
        category: str | None = None,
    ) -> list[Order]:
        with self.store.lock:
            orders = [copy.deepcopy(o) for o in self.store.records.values()]
        matched = [
            o for o in orders
            if (buyer_id is None or o.buyer_id == buyer_id)
            and (seller_id is None or seller_id in o.seller_ids)
            and (status is None or o.status is status)
            and (category is None or o.category.lower() == category.lower())
        ]
        return sorted(matched, key=lambda o: o.created_at, reverse=True)

    def save(self, order: Order) -> None:
        self.store.save(order)


class LockstepOrderRepository(FakeOrderRepository):
    """The first read by each of ``parties`` callers returns once all have read.

    Later reads are not held, so every caller starts from the same version
    and only the first write can land.
    """

    def __init__(self, orders: list[Order] | None = None, parties: int = 2) -> None:
        super().__init__(orders)
        self._parties = parties
        self._barrier = threading.Barrier(parties)
        self._reads = 0
        self._reads_guard = threading.Lock()

    def get_by_id(self, order_id: str) -> Order | None:
        order = super().get_by_id(order_id)
        with self._reads_guard:
            self._reads += 1
            in_lockstep = self._reads <= self._parties
        if in_lockstep:
            self._barrier.wait(timeout=5)
        return order


class FakeDeliveryAgentRepository(DeliveryAgentRepository):

    def __init__(self, agents: list[DeliveryAgent] | None = None) -> None:
        self.store = _VersionedStore()
        for agent in agents or []:
            self.save(agent)

    def get_by_id(self, agent_id: str) -> DeliveryAgent | None:
        return self.store.get(agent_id)

    def list_all(self) -> list[DeliveryAgent]:
        with self.store.lock:
            return [copy.deepcopy(a) for a in self.store.records.values()]

    def get_by_deposit_id(self, deposit_id: str) -> DeliveryAgent | None:
        with self.store.lock:
            for agent in self.store.records.values():
                if any(d.id == deposit_id for d in agent.cash.deposits):
                    return copy.deepcopy(agent)
        return None

    def save(self, agent: DeliveryAgent) -> None:
        self.store.save(agent)


class FakeUnitOfWork(UnitOfWork):

    def __init__(
        self,
        orders: FakeOrderRepository | None = None,
        agents: FakeDeliveryAgentRepository | None = None,
    ) -> None:
        self.orders = orders or FakeOrderRepository()
        self.agents = agents or FakeDeliveryAgentRepository()
        self.commits = 0

    def commit(
        self,
        orders: list[Order] | None = None,
        agents: list[DeliveryAgent] | None = None,
    ) -> None:
        orders = orders or []
        agents = agents or []
        with self.orders.store.lock, self.agents.store.lock:
            for order in orders:
                self.orders.store.check_version(order)
            for agent in agents:
                self.agents.store.check_version(agent)
            for order in orders:
                self.orders.store.write(order)
            for agent in agents:
                self.agents.store.write(agent)
            self.commits += 1


# --- Gateways -----------------------------------------------------------------


class FakePaymentCapture(PaymentCapture):
    """Returns scripted outcomes in order; approves once the script runs out."""

    def __init__(
        self,
        outcomes: list[CaptureStatus] | None = None,
        fail_with: str | None = None,
    ) -> None:
        self._outcomes = list(outcomes or [])
        self._fail_with = fail_with
        self.calls: list[tuple[str, Money, PaymentChannel]] = []

    def authorize(self, order_id: str, amount: Money, channel: PaymentChannel) -> CaptureResult:
        self.calls.append((order_id, amount, channel))
        if self._fail_with:
            raise PaymentFailure(self._fail_with)
        status = self._outcomes.pop(0) if self._outcomes else CaptureStatus.COMPLETED
        return CaptureResult(status=status, reference=f"CAP-{len(self.calls)}")


class FakePayoutGateway(PayoutGateway):

    def __init__(self, fail_with: str | None = None, on_release=None) -> None:
        self._fail_with = fail_with
        self._on_release = on_release
        self.calls: list[tuple[str, Money, str]] = []
        self._lock = threading.Lock()

    def release(self, destination: str, amount: Money, reference: str) -> PayoutResult:
        with self._lock:
            self.calls.append((destination, amount, reference))
            number = len(self.calls)
        if self._on_release is not None:
            self._on_release()
        if self._fail_with:
            raise PaymentFailure(self._fail_with)
        return PayoutResult(transaction_id=f"TXN-{number:04d}")


class FakePayoutDirectory(PayoutDirectory):

    def destination_for(self, seller_id: str) -> str:
        return f"MM-{seller_id}"


class FakeNotifier(Notifier):

    def __init__(self, fail: bool = False) -> None:
        self._fail = fail
        self.sent: list[tuple[str, DomainEvent]] = []

    def notify(self, recipient: str, event: DomainEvent) -> None:
        if self._fail:
            raise ConnectionError("notification service unreachable")
        self.sent.append((recipient, event))


# --- Builders -----------------------------------------------------------------


def make_item(
    seller_id: str = "seller-1",
    price: str = "10000",
    qty: int = 1,
    name: str = "Maize flour",
) -> OrderLineItem:
    return OrderLineItem(
        seller_id=seller_id,
        product_id=f"prod-{name.lower().replace(' ', '-')}",
        product_name=name,
        quantity=Quantity(qty),
        unit_price=Money.of(price),
    )


def make_shipping() -> ShippingAddress:
    return ShippingAddress(
        full_name="Amina Nakato",
        address="Plot 12 Kampala Road",
        city="Kampala",
        country="Uganda",
        phone="+256700000001",
    )


def make_order(
    order_id: str = "ORD-1",
    channel: PaymentChannel = PaymentChannel.CASH_ON_DELIVERY,
    items: list[OrderLineItem] | None = None,
    buyer_id: str = "buyer-1",
    category: str = "groceries",
) -> Order:
    return Order.create(
        order_id=order_id,
        buyer_id=buyer_id,
        items=items or [make_item()],
        shipping=make_shipping(),
        payment_channel=channel,
        category=category,
    )


def make_agent(
    agent_id: str = "agent-1",
    cash_limit: str = "500000",
    verified: bool = True,
) -> DeliveryAgent:
    agent = DeliveryAgent.onboard(
        agent_id=agent_id,
        name="Okello John",
        phone="+256700000099",
        cash_limit=Money(Decimal(cash_limit)),
    )
    if verified:
        agent.verify(actor="ops")
    return agent
