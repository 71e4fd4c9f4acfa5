"""Unit tests for the delivery custody ledger service."""

import pytest

from fulfillment.domain.exceptions import CeilingExceeded
from fulfillment.domain.model.delivery_agent import DepositEvidence
from fulfillment.domain.model.value_objects import Money, PaymentChannel
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger
from tests.fakes import make_agent, make_item, make_order


def _cash_order_in_transit(order_id: str, price: str = "10000"):
    order = make_order(order_id=order_id, items=[make_item(price=price)])
    order.confirm(actor="ops")
    order.assign_agent("agent-1", actor="ops")
    order.confirm_pickup("agent-1", actor="agent-1")
    return order


class TestCollect:

    def test_collect_updates_balance(self):
        agent = make_agent()
        agent.accept_delivery("ORD-1")
        DeliveryCustodyLedger().collect(agent, Money.of("10000"), "ORD-1")
        assert agent.cash.current_balance == Money.of("10000")
        assert agent.delivery_for("ORD-1").cash_collected == Money.of("10000")

    def test_ceiling_breach_propagates(self):
        agent = make_agent(cash_limit="5000")
        agent.accept_delivery("ORD-1")
        with pytest.raises(CeilingExceeded):
            DeliveryCustodyLedger().collect(agent, Money.of("10000"), "ORD-1")
        assert agent.cash.current_balance.is_zero


class TestSummary:

    def test_counts_and_recent_window(self):
        agent = make_agent()
        agent.accept_delivery("ORD-1")
        ledger = DeliveryCustodyLedger(recent_deposits=2)
        ledger.collect(agent, Money.of("90000"), "ORD-1")
        deposits = [
            ledger.deposit(agent, Money.of("10000"), DepositEvidence(provider="MTN"))
            for _ in range(3)
        ]
        ledger.verify_deposit(agent, deposits[0].id, "ops")
        ledger.verify_deposit(agent, deposits[1].id, "ops", approve=False)

        summary = ledger.summary(agent)
        assert summary.current_balance == Money.of("70000")
        assert summary.available_capacity == Money.of("430000")
        assert (summary.pending_deposits, summary.verified_deposits, summary.rejected_deposits) == (1, 1, 1)
        assert [d.id for d in summary.recent_deposits] == [deposits[1].id, deposits[2].id]


class TestReconcile:

    def test_clean_when_collections_match(self):
        agent = make_agent()
        order = _cash_order_in_transit("ORD-1")
        agent.accept_delivery("ORD-1")
        DeliveryCustodyLedger().collect(agent, Money.of("10000"), "ORD-1")
        report = DeliveryCustodyLedger().reconcile(agent, [order])
        assert report.is_clean
        assert report.deliveries_checked == 1

    def test_small_gap_within_tolerance(self):
        agent = make_agent()
        order = _cash_order_in_transit("ORD-1")
        agent.accept_delivery("ORD-1")
        DeliveryCustodyLedger().collect(agent, Money.of("9900"), "ORD-1")
        assert DeliveryCustodyLedger().reconcile(agent, [order]).is_clean

    def test_gap_beyond_tolerance_reported(self):
        agent = make_agent()
        order = _cash_order_in_transit("ORD-1")
        agent.accept_delivery("ORD-1")
        DeliveryCustodyLedger().collect(agent, Money.of("9000"), "ORD-1")
        report = DeliveryCustodyLedger().reconcile(agent, [order])
        assert not report.is_clean
        assert report.discrepancies[0].order_id == "ORD-1"
        assert report.discrepancies[0].expected == Money.of("10000")
        assert report.discrepancies[0].collected == Money.of("9000")

    def test_cash_on_prepaid_order_reported(self):
        agent = make_agent()
        order = make_order(order_id="ORD-1", channel=PaymentChannel.CARD)
        agent.accept_delivery("ORD-1")
        agent.collect_cash("ORD-1", Money.of("10000"))
        report = DeliveryCustodyLedger().reconcile(agent, [order])
        assert report.discrepancies[0].reason == "cash collected on a prepaid order"

    def test_orders_not_on_agent_are_ignored(self):
        agent = make_agent()
        report = DeliveryCustodyLedger().reconcile(agent, [_cash_order_in_transit("ORD-9")])
        assert report.deliveries_checked == 0
        assert report.is_clean
