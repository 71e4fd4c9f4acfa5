"""Application service: Record Cash Collection use case.

The agent takes cash at the door of a cash-on-delivery order before the
delivery itself is confirmed.  The order's collection and the agent's
custody ledger are committed together; a collection that would push the
agent over their cash limit is refused and nothing is saved.
"""

from __future__ import annotations

from fulfillment.application.dto import OrderDTO, order_to_dto
from fulfillment.application.retry import conflict_retrying
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.model.delivery_agent import DeliveryAgent
from fulfillment.domain.model.order import Order
from fulfillment.domain.model.value_objects import Money
from fulfillment.domain.repository.unit_of_work import UnitOfWork
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger


def collect_for_order(
    ledger: DeliveryCustodyLedger,
    order: Order,
    agent: DeliveryAgent,
    amount: str | None,
) -> Money:
    """Apply one cash collection to both aggregates, in memory only.

    ``amount`` defaults to the order total.  Raises CeilingExceeded when
    the agent's ledger refuses it; the caller then must not commit.
    """
    cash = order.total_amount if amount is None else Money.of(amount, order.currency)
    order.record_cash_collection(agent.id, cash, actor=agent.id)
    ledger.collect(agent, cash, order.id)
    return cash


class RecordCashCollectionHandler:

    def __init__(
        self,
        uow: UnitOfWork,
        ledger: DeliveryCustodyLedger | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._uow = uow
        self._ledger = ledger or DeliveryCustodyLedger()
        self._max_attempts = max_attempts

    def handle(self, order_id: str, agent_id: str, amount: str | None = None) -> OrderDTO:
        order = conflict_retrying(self._max_attempts)(self._apply, order_id, agent_id, amount)
        return order_to_dto(order)

    def _apply(self, order_id: str, agent_id: str, amount: str | None) -> Order:
        order = self._uow.orders.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")
        agent = self._uow.agents.get_by_id(agent_id)
        if agent is None:
            raise EntityNotFoundError(f"Agent {agent_id} not found")

        collect_for_order(self._ledger, order, agent, amount)
        self._uow.commit(orders=[order], agents=[agent])
        return order
