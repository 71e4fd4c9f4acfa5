"""Application service: Verify Cash Deposit use case.

An operator approves or rejects a pending deposit.  Rejection restores
the agent's balance by the deposit's amount through a correction entry.
"""

from __future__ import annotations

from fulfillment.application.dto import DepositDTO, deposit_to_dto
from fulfillment.application.retry import conflict_retrying
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger


class VerifyDepositHandler:

    def __init__(
        self,
        agent_repo: DeliveryAgentRepository,
        ledger: DeliveryCustodyLedger | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._agent_repo = agent_repo
        self._ledger = ledger or DeliveryCustodyLedger()
        self._max_attempts = max_attempts

    def handle(self, deposit_id: str, verifier: str, approve: bool = True) -> DepositDTO:
        return conflict_retrying(self._max_attempts)(
            self._apply, deposit_id, verifier, approve
        )

    def _apply(self, deposit_id: str, verifier: str, approve: bool) -> DepositDTO:
        agent = self._agent_repo.get_by_deposit_id(deposit_id)
        if agent is None:
            raise EntityNotFoundError(f"Deposit '{deposit_id}' not found")

        deposit = self._ledger.verify_deposit(agent, deposit_id, verifier, approve)
        self._agent_repo.save(agent)
        return deposit_to_dto(agent.id, deposit)
