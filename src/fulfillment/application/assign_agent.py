"""Application service: Assign Delivery Agent use case.

Touches two aggregates, the Order and the DeliveryAgent, so both are
committed through one UnitOfWork.  There is no retry: when two callers
race to assign the same order, the loser gets ConcurrencyConflict and
must look at the order again before deciding anything.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import OrderDTO, order_to_dto
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)


class AssignAgentHandler:

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    def handle(self, order_id: str, agent_id: str, actor: str) -> OrderDTO:
        order = self._uow.orders.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")
        agent = self._uow.agents.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")

        # Order guards first: it refuses re-assignment before the agent is touched.
        order.assign_agent(agent.id, actor)
        agent.accept_delivery(
            order.id,
            expected_cash=order.total_amount if order.requires_cash_collection else None,
        )
        self._uow.commit(orders=[order], agents=[agent])

        logger.info(
            "order_transition",
            order_id=order.id, delivery_status=order.delivery_status.value,
            agent_id=agent.id, actor=actor,
        )
        return order_to_dto(order)
