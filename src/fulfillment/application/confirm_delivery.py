"""Application service: Confirm Delivery use case.

For cash-on-delivery orders the cash collection (unless it was already
recorded) and the ``delivered`` transition are one unit: if the agent's
cash ledger refuses the amount, the order stays ``in_transit`` and
neither aggregate is written.

A lost version race is retried from a fresh read, so a delivery that
somebody else already confirmed fails the state guard instead of being
applied twice.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import OrderDTO, order_to_dto
from fulfillment.application.notifications import notify_quietly
from fulfillment.application.record_cash_collection import collect_for_order
from fulfillment.application.retry import conflict_retrying
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.gateways import Notifier
from fulfillment.domain.model.order import Order
from fulfillment.domain.repository.unit_of_work import UnitOfWork
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger

logger = structlog.get_logger(__name__)


class ConfirmDeliveryHandler:

    def __init__(
        self,
        uow: UnitOfWork,
        ledger: DeliveryCustodyLedger | None = None,
        notifier: Notifier | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._uow = uow
        self._ledger = ledger or DeliveryCustodyLedger()
        self._notifier = notifier
        self._max_attempts = max_attempts

    def handle(self, order_id: str, agent_id: str, cash_amount: str | None = None) -> OrderDTO:
        """Mark the order delivered by its assigned agent.

        Args:
            order_id: The order being handed to the buyer.
            agent_id: The agent confirming; must be the assigned one.
            cash_amount: Cash taken at the door. Defaults to the order
                total for cash-on-delivery orders whose collection was
                not recorded yet; must be omitted for prepaid orders.
        """
        order = conflict_retrying(self._max_attempts)(
            self._apply, order_id, agent_id, cash_amount
        )

        logger.info(
            "order_transition",
            order_id=order.id, status=order.status.value, agent_id=agent_id,
            cash_collected=None if order.cash_collected is None else str(order.cash_collected),
        )
        notify_quietly(self._notifier, [order.buyer_id, *order.seller_ids], order.events[-1])
        return order_to_dto(order)

    def _apply(self, order_id: str, agent_id: str, cash_amount: str | None) -> Order:
        order = self._uow.orders.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")
        agent = self._uow.agents.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")

        if cash_amount is not None or (
            order.requires_cash_collection and order.cash_collected is None
        ):
            collect_for_order(self._ledger, order, agent, cash_amount)

        order.mark_delivered(agent.id, actor=agent.id)
        agent.complete_delivery(order.id)
        self._uow.commit(orders=[order], agents=[agent])
        return order
