"""Application service: Confirm Pickup use case.

The agent scans the buyer's handoff token at the seller's premises.  The
token is checked against the order as stored right now; on success the
order goes ``in_transit`` and the agent's delivery entry follows.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import OrderDTO, order_to_dto
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.unit_of_work import UnitOfWork
from fulfillment.domain.service.handoff_token import HandoffTokenService

logger = structlog.get_logger(__name__)


class ConfirmPickupHandler:

    def __init__(self, uow: UnitOfWork, tokens: HandoffTokenService | None = None) -> None:
        self._uow = uow
        self._tokens = tokens or HandoffTokenService()

    def handle(self, order_id: str, agent_id: str, token: str) -> OrderDTO:
        order = self._uow.orders.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")
        agent = self._uow.agents.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")

        self._tokens.redeem(token, order, agent.id)
        agent.confirm_pickup(order.id)
        agent.start_transit(order.id)
        self._uow.commit(orders=[order], agents=[agent])

        logger.info(
            "order_transition", order_id=order.id, status=order.status.value, agent_id=agent.id,
        )
        return order_to_dto(order)
