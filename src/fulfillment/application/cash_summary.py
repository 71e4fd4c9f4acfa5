"""Application service: Agent Cash Summary use case (query)."""

from __future__ import annotations

from fulfillment.application.dto import CashSummaryDTO, cash_summary_to_dto
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger


class CashSummaryHandler:

    def __init__(
        self,
        agent_repo: DeliveryAgentRepository,
        ledger: DeliveryCustodyLedger | None = None,
    ) -> None:
        self._agent_repo = agent_repo
        self._ledger = ledger or DeliveryCustodyLedger()

    def handle(self, agent_id: str) -> CashSummaryDTO:
        agent = self._agent_repo.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")
        return cash_summary_to_dto(self._ledger.summary(agent))
