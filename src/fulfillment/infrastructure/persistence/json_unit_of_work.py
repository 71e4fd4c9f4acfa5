"""JSON-file-backed implementation of UnitOfWork."""

from __future__ import annotations

from fulfillment.domain.model.delivery_agent import DeliveryAgent
from fulfillment.domain.model.order import Order
from fulfillment.domain.repository.unit_of_work import UnitOfWork
from fulfillment.infrastructure.persistence.json_delivery_agent_repository import (
    JsonDeliveryAgentRepository,
)
from fulfillment.infrastructure.persistence.json_order_repository import (
    JsonOrderRepository,
)


class JsonUnitOfWork(UnitOfWork):

    def __init__(
        self,
        orders: JsonOrderRepository,
        agents: JsonDeliveryAgentRepository,
    ) -> None:
        self.orders = orders
        self.agents = agents

    def commit(
        self,
        orders: list[Order] | None = None,
        agents: list[DeliveryAgent] | None = None,
    ) -> None:
        orders = orders or []
        agents = agents or []
        order_store = self.orders.store
        agent_store = self.agents.store

        # Always lock orders before agents so two commits cannot deadlock.
        with order_store.lock, agent_store.lock:
            order_records = order_store.load_raw()
            agent_records = agent_store.load_raw()

            # Phase 1: every version must still match
            for order in orders:
                order_store.check_version(order_records, order.id, order.version)
            for agent in agents:
                agent_store.check_version(agent_records, agent.id, agent.version)

            # Phase 2: write
            for order in orders:
                self.orders.write(order_records, order)
            for agent in agents:
                self.agents.write(agent_records, agent)
            if orders:
                order_store.persist_raw(order_records)
            if agents:
                agent_store.persist_raw(agent_records)
