"""Tests for the JSON-file stores against a temporary directory."""

import json
import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from fulfillment.domain.exceptions import ConcurrencyConflict, EntityNotFoundError
from fulfillment.domain.model.delivery_agent import DepositEvidence
from fulfillment.domain.model.order import OrderStatus
from fulfillment.domain.model.value_objects import GeoPoint, Money, PaymentChannel
from fulfillment.infrastructure.gateways import JsonPayoutDirectory
from fulfillment.infrastructure.persistence.json_delivery_agent_repository import (
    JsonDeliveryAgentRepository,
)
from fulfillment.infrastructure.persistence.json_order_repository import (
    JsonOrderRepository,
)
from fulfillment.infrastructure.persistence.json_unit_of_work import JsonUnitOfWork
from tests.fakes import make_agent, make_item, make_order


@pytest.fixture
def orders(tmp_path):
    return JsonOrderRepository(tmp_path / "orders.json")


@pytest.fixture
def agents(tmp_path):
    return JsonDeliveryAgentRepository(tmp_path / "agents.json")


# ── Orders ───────────────────────────────────────────────────────


class TestJsonOrderRepository:

    def test_round_trip_keeps_money_and_events(self, orders):
        order = make_order(
            "ORD-1",
            channel=PaymentChannel.MOBILE_MONEY,
            items=[
                make_item(price="12500", qty=2),
                make_item("seller-2", price="999", name="Beans"),
            ],
        )
        order.record_payment(True, "CAP-1", actor="buyer-1")
        order.confirm(actor="ops")
        orders.save(order)

        loaded = orders.get_by_id("ORD-1")
        assert loaded.version == 1
        assert loaded.status is OrderStatus.CONFIRMED
        assert loaded.total_amount == order.total_amount
        assert loaded.net_amount == order.net_amount
        assert loaded.seller_ids == ["seller-1", "seller-2"]
        assert [e.event_type for e in loaded.events] == [e.event_type for e in order.events]
        assert loaded.paid_at == order.paid_at

    def test_amounts_are_stored_as_strings(self, orders, tmp_path):
        orders.save(make_order("ORD-1"))
        raw = json.loads((tmp_path / "orders.json").read_text())
        assert isinstance(raw[0]["net_amount"], str)

    def test_missing_order_is_none(self, orders):
        assert orders.get_by_id("ORD-404") is None

    def test_stale_write_rejected(self, orders):
        orders.save(make_order("ORD-1"))
        first = orders.get_by_id("ORD-1")
        second = orders.get_by_id("ORD-1")
        first.cancel(actor="buyer-1")
        orders.save(first)

        second.confirm(actor="ops")
        with pytest.raises(ConcurrencyConflict):
            orders.save(second)
        assert orders.get_by_id("ORD-1").status is OrderStatus.CANCELLED

    def test_list_filters(self, orders):
        orders.save(make_order("ORD-1", buyer_id="buyer-1"))
        orders.save(make_order("ORD-2", buyer_id="buyer-2", category="electronics"))
        assert [o.id for o in orders.list_orders(buyer_id="buyer-2")] == ["ORD-2"]
        assert [o.id for o in orders.list_orders(category="ELECTRONICS")] == ["ORD-2"]
        assert len(orders.list_orders(seller_id="seller-1")) == 2

    def test_generated_ids_are_unique(self, orders):
        assert orders.next_id() != orders.next_id()


# ── Agents ───────────────────────────────────────────────────────


class TestJsonDeliveryAgentRepository:

    def test_round_trip_keeps_ledger(self, agents):
        agent = make_agent()
        agent.accept_delivery("ORD-1", expected_cash=Money.of("10000"))
        agent.collect_cash("ORD-1", Money.of("10000"))
        evidence = DepositEvidence(provider="MTN", location=GeoPoint(32.58, 0.31))
        deposit = agent.record_deposit(Money.of("4000"), evidence)
        agent.verify_deposit(deposit.id, verifier="ops", approve=False)
        agents.save(agent)

        loaded = agents.get_by_id("agent-1")
        assert loaded.cash.current_balance == Money.of("10000")
        assert loaded.cash.corrections[0].amount == Money.of("4000")
        assert loaded.cash.deposits[0].evidence.location == GeoPoint(32.58, 0.31)
        assert loaded.delivery_for("ORD-1").cash_collected == Money.of("10000")

    def test_find_by_deposit_id(self, agents):
        agent = make_agent()
        agent.accept_delivery("ORD-1")
        agent.collect_cash("ORD-1", Money.of("10000"))
        deposit = agent.record_deposit(Money.of("4000"), DepositEvidence())
        agents.save(agent)
        agents.save(make_agent("agent-2"))

        assert agents.get_by_deposit_id(deposit.id).id == "agent-1"
        assert agents.get_by_deposit_id("DEP-404") is None


# ── Unit of work ─────────────────────────────────────────────────


class TestJsonUnitOfWork:

    def test_commits_both_aggregates(self, orders, agents):
        order = make_order("ORD-1")
        order.confirm(actor="ops")
        orders.save(order)
        agents.save(make_agent())
        uow = JsonUnitOfWork(orders, agents)

        order = orders.get_by_id("ORD-1")
        agent = agents.get_by_id("agent-1")
        order.assign_agent(agent.id, actor="ops")
        agent.accept_delivery(order.id)
        uow.commit(orders=[order], agents=[agent])

        assert orders.get_by_id("ORD-1").assigned_agent_id == "agent-1"
        assert agents.get_by_id("agent-1").version == 2

    def test_stale_agent_blocks_order_write(self, orders, agents):
        order = make_order("ORD-1")
        order.confirm(actor="ops")
        orders.save(order)
        agents.save(make_agent())
        uow = JsonUnitOfWork(orders, agents)

        order = orders.get_by_id("ORD-1")
        agent = agents.get_by_id("agent-1")
        agents.save(agents.get_by_id("agent-1"))

        order.assign_agent(agent.id, actor="ops")
        agent.accept_delivery(order.id)
        with pytest.raises(ConcurrencyConflict):
            uow.commit(orders=[order], agents=[agent])
        assert orders.get_by_id("ORD-1").assigned_agent_id is None
        assert orders.get_by_id("ORD-1").version == 1


# ── Payout directory ─────────────────────────────────────────────


class TestJsonPayoutDirectory:

    def test_register_then_look_up(self, tmp_path):
        directory = JsonPayoutDirectory(tmp_path / "payout_destinations.json")
        directory.register("seller-1", "MTN:256700000123")
        assert directory.destination_for("seller-1") == "MTN:256700000123"

    def test_unknown_seller(self, tmp_path):
        directory = JsonPayoutDirectory(tmp_path / "payout_destinations.json")
        with pytest.raises(EntityNotFoundError, match="seller-9"):
            directory.destination_for("seller-9")


# ── Separate processes ───────────────────────────────────────────

SRC_DIR = Path(__file__).resolve().parents[2] / "src"

# Loads agent-1, waits until every writer has loaded it, then saves with a
# pause between the version check and the write.
_SAVE_AGENT_SCRIPT = textwrap.dedent("""
    import sys
    import time
    from pathlib import Path

    from fulfillment.domain.exceptions import ConcurrencyConflict
    from fulfillment.infrastructure.persistence import json_store
    from fulfillment.infrastructure.persistence.json_delivery_agent_repository import (
        JsonDeliveryAgentRepository,
    )

    data_dir, name, writers = Path(sys.argv[1]), sys.argv[2], int(sys.argv[3])
    check_version = json_store.JsonStore.check_version

    def slow_check_version(self, records, entity_id, version):
        check_version(self, records, entity_id, version)
        time.sleep(1)

    json_store.JsonStore.check_version = slow_check_version
    repo = JsonDeliveryAgentRepository(data_dir / "agents.json")
    agent = repo.get_by_id("agent-1")

    (data_dir / f"{name}.ready").touch()
    deadline = time.monotonic() + 10
    while len(list(data_dir.glob("*.ready"))) < writers and time.monotonic() < deadline:
        time.sleep(0.01)

    try:
        repo.save(agent)
    except ConcurrencyConflict:
        print("conflict")
    else:
        print("saved")
""")


class TestCrossProcessWrites:

    def test_only_one_process_saves_a_stale_agent(self, agents, tmp_path):
        agents.save(make_agent())
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(
            p for p in (str(SRC_DIR), env.get("PYTHONPATH", "")) if p
        )

        writers = [
            subprocess.Popen(
                [sys.executable, "-c", _SAVE_AGENT_SCRIPT, str(tmp_path), f"writer-{n}", "2"],
                stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, env=env,
            )
            for n in range(2)
        ]
        outcomes = []
        for writer in writers:
            out, err = writer.communicate(timeout=30)
            assert writer.returncode == 0, err
            outcomes.append(out.strip())

        assert sorted(outcomes) == ["conflict", "saved"]
        assert agents.get_by_id("agent-1").version == 2
