"""Application service: Verify Delivery Agent use case.

Only verified agents can be assigned deliveries.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import AgentDTO, agent_to_dto
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)

logger = structlog.get_logger(__name__)


class VerifyAgentHandler:

    def __init__(self, agent_repo: DeliveryAgentRepository) -> None:
        self._agent_repo = agent_repo

    def handle(self, agent_id: str, actor: str) -> AgentDTO:
        agent = self._agent_repo.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")

        agent.verify(actor)
        self._agent_repo.save(agent)

        logger.info("agent_verified", agent_id=agent.id, actor=actor)
        return agent_to_dto(agent)
