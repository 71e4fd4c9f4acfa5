"""Application service: Record Cash Deposit use case.

The agent reports a mobile-money deposit.  The balance drops at once so
the agent can keep collecting; an operator verifies the deposit later.
"""

from __future__ import annotations

from fulfillment.application.dto import DepositDTO, DepositEvidenceSpec, deposit_to_dto
from fulfillment.application.retry import conflict_retrying
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.model.delivery_agent import DepositEvidence
from fulfillment.domain.model.value_objects import GeoPoint, Money
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger


class RecordDepositHandler:

    def __init__(
        self,
        agent_repo: DeliveryAgentRepository,
        ledger: DeliveryCustodyLedger | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._agent_repo = agent_repo
        self._ledger = ledger or DeliveryCustodyLedger()
        self._max_attempts = max_attempts

    def handle(
        self,
        agent_id: str,
        amount: str,
        evidence: DepositEvidenceSpec | None = None,
    ) -> DepositDTO:
        evidence = evidence or DepositEvidenceSpec()
        location = None
        if evidence.longitude is not None and evidence.latitude is not None:
            location = GeoPoint(evidence.longitude, evidence.latitude)
        proof = DepositEvidence(
            agent_name=evidence.agent_name,
            agent_phone=evidence.agent_phone,
            provider=evidence.provider,
            transaction_reference=evidence.transaction_reference,
            receipt_url=evidence.receipt_url,
            location=location,
        )
        return conflict_retrying(self._max_attempts)(self._apply, agent_id, amount, proof)

    def _apply(self, agent_id: str, amount: str, proof: DepositEvidence) -> DepositDTO:
        agent = self._agent_repo.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")

        deposit = self._ledger.deposit(agent, Money.of(amount, agent.currency), proof)
        self._agent_repo.save(agent)
        return deposit_to_dto(agent.id, deposit)
