"""Application service: Reconcile Agent Collections use case (query).

Loads every order an agent has handled and compares it with the cash the
agent's ledger recorded.  Mismatches are reported, never corrected.
"""

from __future__ import annotations

from fulfillment.application.dto import ReconciliationDTO, reconciliation_to_dto
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)
from fulfillment.domain.repository.order_repository import OrderRepository
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger


class ReconcileCollectionsHandler:

    def __init__(
        self,
        agent_repo: DeliveryAgentRepository,
        order_repo: OrderRepository,
        ledger: DeliveryCustodyLedger | None = None,
    ) -> None:
        self._agent_repo = agent_repo
        self._order_repo = order_repo
        self._ledger = ledger or DeliveryCustodyLedger()

    def handle(self, agent_id: str) -> ReconciliationDTO:
        agent = self._agent_repo.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")

        orders = []
        for delivery in agent.deliveries:
            order = self._order_repo.get_by_id(delivery.order_id)
            if order is not None:
                orders.append(order)
        return reconciliation_to_dto(self._ledger.reconcile(agent, orders))
