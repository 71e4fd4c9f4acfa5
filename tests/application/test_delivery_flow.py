"""Integration tests for agents and the assign -> pickup -> deliver flow.

Uses in-memory fakes, no file I/O.
"""

import threading

import pytest

from fulfillment.application.assign_agent import AssignAgentHandler
from fulfillment.application.confirm_delivery import ConfirmDeliveryHandler
from fulfillment.application.confirm_pickup import ConfirmPickupHandler
from fulfillment.application.onboard_agent import OnboardAgentHandler
from fulfillment.application.record_cash_collection import RecordCashCollectionHandler
from fulfillment.application.verify_agent import VerifyAgentHandler
from fulfillment.domain.exceptions import (
    CeilingExceeded,
    ConcurrencyConflict,
    IllegalTransition,
    ValidationError,
)
from fulfillment.domain.model.order import DeliveryStatus, OrderStatus, PaymentStatus
from fulfillment.domain.model.value_objects import Money, PaymentChannel
from tests.fakes import (
    FakeDeliveryAgentRepository,
    FakeNotifier,
    FakeOrderRepository,
    FakeUnitOfWork,
    make_agent,
    make_item,
    make_order,
)

TOKEN = "ORDER_ORD-1_BUYER_buyer-1"


def _setup(
    channel: PaymentChannel = PaymentChannel.CASH_ON_DELIVERY,
    price: str = "10000",
    agents=None,
) -> FakeUnitOfWork:
    """A confirmed order ORD-1 plus verified agents, wired into a fake unit of work."""
    order = make_order("ORD-1", channel=channel, items=[make_item(price=price)])
    if channel is not PaymentChannel.CASH_ON_DELIVERY:
        order.record_payment(True, "CAP-1", actor="buyer-1")
    order.confirm(actor="ops")
    return FakeUnitOfWork(
        FakeOrderRepository([order]),
        FakeDeliveryAgentRepository(agents or [make_agent()]),
    )


def _dispatch(uow: FakeUnitOfWork, agent_id: str = "agent-1") -> None:
    AssignAgentHandler(uow).handle("ORD-1", agent_id, actor="ops")
    ConfirmPickupHandler(uow).handle("ORD-1", agent_id, TOKEN)


class _InterferingUnitOfWork(FakeUnitOfWork):
    """Another writer touches the agent right before the first ``times`` commits."""

    def __init__(self, base: FakeUnitOfWork, times: int) -> None:
        super().__init__(base.orders, base.agents)
        self._times = times
        self.attempts = 0

    def commit(self, orders=None, agents=None) -> None:
        self.attempts += 1
        if self.attempts <= self._times:
            for agent in agents or []:
                self.agents.save(self.agents.get_by_id(agent.id))
        super().commit(orders, agents)


class TestOnboarding:

    def test_onboard_then_verify(self):
        repo = FakeDeliveryAgentRepository()
        dto = OnboardAgentHandler(repo).handle("agent-7", "Okello", "+256700000099", "bicycle")
        assert dto.cash_limit == "UGX 500,000"
        assert not dto.is_verified
        dto = VerifyAgentHandler(repo).handle("agent-7", actor="ops")
        assert dto.is_verified

    def test_custom_cash_limit(self):
        dto = OnboardAgentHandler(FakeDeliveryAgentRepository()).handle(
            "agent-7", "Okello", "+256700000099", cash_limit="200000",
        )
        assert dto.cash_limit == "UGX 200,000"

    def test_duplicate_agent_rejected(self):
        repo = FakeDeliveryAgentRepository([make_agent("agent-7")])
        with pytest.raises(ValidationError, match="already exists"):
            OnboardAgentHandler(repo).handle("agent-7", "Okello", "+256700000099")

    def test_unknown_vehicle_rejected(self):
        with pytest.raises(ValidationError, match="vehicle type"):
            OnboardAgentHandler(FakeDeliveryAgentRepository()).handle(
                "agent-7", "Okello", "+256700000099", "hovercraft",
            )


class TestAssignAgent:

    def test_assign_updates_order_and_agent_together(self):
        uow = _setup()
        AssignAgentHandler(uow).handle("ORD-1", "agent-1", actor="ops")
        order = uow.orders.get_by_id("ORD-1")
        agent = uow.agents.get_by_id("agent-1")
        assert order.assigned_agent_id == "agent-1"
        assert agent.delivery_for("ORD-1").expected_cash == Money.of("10000")
        assert uow.commits == 1

    def test_unverified_agent_leaves_order_unassigned(self):
        uow = _setup(agents=[make_agent(verified=False)])
        with pytest.raises(ValidationError):
            AssignAgentHandler(uow).handle("ORD-1", "agent-1", actor="ops")
        assert uow.orders.get_by_id("ORD-1").assigned_agent_id is None

    def test_sequential_reassignment_is_a_conflict(self):
        uow = _setup(agents=[make_agent("agent-1"), make_agent("agent-2")])
        AssignAgentHandler(uow).handle("ORD-1", "agent-1", actor="ops")
        with pytest.raises(ConcurrencyConflict):
            AssignAgentHandler(uow).handle("ORD-1", "agent-2", actor="ops")
        assert uow.agents.get_by_id("agent-2").deliveries == []

    def test_concurrent_assignments_exactly_one_wins(self):
        uow = _setup(agents=[make_agent("agent-1"), make_agent("agent-2")])
        uow.orders.store.read_barrier = threading.Barrier(2)
        outcomes: dict[str, str] = {}

        def assign(agent_id: str) -> None:
            try:
                AssignAgentHandler(uow).handle("ORD-1", agent_id, actor="ops")
                outcomes[agent_id] = "assigned"
            except ConcurrencyConflict:
                outcomes[agent_id] = "conflict"

        threads = [threading.Thread(target=assign, args=(a,)) for a in ("agent-1", "agent-2")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        uow.orders.store.read_barrier = None

        assert sorted(outcomes.values()) == ["assigned", "conflict"]
        winner = next(a for a, outcome in outcomes.items() if outcome == "assigned")
        loser = next(a for a, outcome in outcomes.items() if outcome == "conflict")
        assert uow.orders.get_by_id("ORD-1").assigned_agent_id == winner
        assert uow.agents.get_by_id(loser).deliveries == []


class TestConfirmPickup:

    def test_valid_token_moves_both_in_transit(self):
        uow = _setup()
        _dispatch(uow)
        assert uow.orders.get_by_id("ORD-1").status is OrderStatus.IN_TRANSIT
        agent = uow.agents.get_by_id("agent-1")
        assert agent.delivery_for("ORD-1").status is DeliveryStatus.IN_TRANSIT

    def test_wrong_token_changes_nothing(self):
        uow = _setup()
        AssignAgentHandler(uow).handle("ORD-1", "agent-1", actor="ops")
        with pytest.raises(ValidationError, match="Invalid handoff token"):
            ConfirmPickupHandler(uow).handle("ORD-1", "agent-1", "ORDER_ORD-1_BUYER_mallory")
        assert uow.orders.get_by_id("ORD-1").status is OrderStatus.CONFIRMED
        agent = uow.agents.get_by_id("agent-1")
        assert agent.delivery_for("ORD-1").status is DeliveryStatus.ASSIGNED


class TestConfirmDelivery:

    def test_cash_on_delivery_collects_total(self):
        uow = _setup()
        _dispatch(uow)
        notifier = FakeNotifier()
        dto = ConfirmDeliveryHandler(uow, notifier=notifier).handle("ORD-1", "agent-1")
        assert dto.status == "delivered"
        assert dto.cash_collected == "UGX 10,000"
        order = uow.orders.get_by_id("ORD-1")
        assert order.payment_status is PaymentStatus.COMPLETED
        agent = uow.agents.get_by_id("agent-1")
        assert agent.cash.current_balance == Money.of("10000")
        assert agent.successful_deliveries == 1
        assert {recipient for recipient, _ in notifier.sent} == {"buyer-1", "seller-1"}

    def test_ceiling_breach_keeps_order_in_transit(self):
        loaded = make_agent()
        loaded.accept_delivery("ORD-0")
        loaded.collect_cash("ORD-0", Money.of("450000"))
        uow = _setup(price="60000", agents=[loaded])
        _dispatch(uow)

        with pytest.raises(CeilingExceeded):
            ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-1")

        order = uow.orders.get_by_id("ORD-1")
        assert order.status is OrderStatus.IN_TRANSIT
        assert order.cash_collected is None
        agent = uow.agents.get_by_id("agent-1")
        assert agent.cash.current_balance == Money.of("450000")
        assert agent.delivery_for("ORD-1").status is DeliveryStatus.IN_TRANSIT

    def test_prepaid_order_delivers_without_cash(self):
        uow = _setup(channel=PaymentChannel.CARD)
        _dispatch(uow)
        dto = ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-1")
        assert dto.status == "delivered"
        assert dto.cash_collected is None
        assert uow.agents.get_by_id("agent-1").cash.current_balance.is_zero

    def test_prepaid_order_refuses_cash(self):
        uow = _setup(channel=PaymentChannel.CARD)
        _dispatch(uow)
        with pytest.raises(ValidationError, match="prepaid"):
            ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-1", cash_amount="10000")
        assert uow.orders.get_by_id("ORD-1").status is OrderStatus.IN_TRANSIT

    def test_delivery_by_other_agent_rejected(self):
        uow = _setup(agents=[make_agent("agent-1"), make_agent("agent-2")])
        _dispatch(uow)
        with pytest.raises(IllegalTransition):
            ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-2")

    def test_second_confirmation_fails_the_guard(self):
        uow = _setup()
        _dispatch(uow)
        ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-1")
        with pytest.raises(IllegalTransition):
            ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-1")
        assert uow.agents.get_by_id("agent-1").cash.current_balance == Money.of("10000")

    def test_notification_failure_does_not_block(self):
        uow = _setup()
        _dispatch(uow)
        handler = ConfirmDeliveryHandler(uow, notifier=FakeNotifier(fail=True))
        dto = handler.handle("ORD-1", "agent-1")
        assert dto.status == "delivered"

    def test_lost_race_is_retried_from_fresh_read(self):
        base = _setup()
        _dispatch(base)
        uow = _InterferingUnitOfWork(base, times=1)
        dto = ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-1")
        assert dto.status == "delivered"
        assert uow.attempts == 2
        agent = uow.agents.get_by_id("agent-1")
        assert agent.cash.current_balance == Money.of("10000")
        assert agent.cash.total_collected == Money.of("10000")

    def test_retries_are_bounded(self):
        base = _setup()
        _dispatch(base)
        uow = _InterferingUnitOfWork(base, times=10)
        with pytest.raises(ConcurrencyConflict):
            ConfirmDeliveryHandler(uow, max_attempts=3).handle("ORD-1", "agent-1")
        assert uow.attempts == 3
        assert uow.orders.get_by_id("ORD-1").status is OrderStatus.IN_TRANSIT


class TestRecordCashCollection:

    def test_collect_then_deliver(self):
        uow = _setup()
        _dispatch(uow)
        dto = RecordCashCollectionHandler(uow).handle("ORD-1", "agent-1", amount="9950")
        assert dto.status == "in_transit"
        assert dto.cash_collected == "UGX 9,950"

        dto = ConfirmDeliveryHandler(uow).handle("ORD-1", "agent-1")
        assert dto.status == "delivered"
        assert uow.agents.get_by_id("agent-1").cash.current_balance == Money.of("9950")

    def test_collect_over_ceiling_saves_nothing(self):
        uow = _setup(agents=[make_agent(cash_limit="5000")])
        _dispatch(uow)
        with pytest.raises(CeilingExceeded):
            RecordCashCollectionHandler(uow).handle("ORD-1", "agent-1")
        assert uow.orders.get_by_id("ORD-1").cash_collected is None
        assert uow.agents.get_by_id("agent-1").cash.current_balance.is_zero

    def test_collect_before_pickup_rejected(self):
        uow = _setup()
        AssignAgentHandler(uow).handle("ORD-1", "agent-1", actor="ops")
        with pytest.raises(IllegalTransition):
            RecordCashCollectionHandler(uow).handle("ORD-1", "agent-1")
