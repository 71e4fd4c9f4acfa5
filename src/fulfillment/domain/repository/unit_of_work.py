"""Atomic persistence of several aggregates.

Assigning an agent, confirming pickup and confirming a cash-on-delivery
order each change an Order *and* a DeliveryAgent.  Either both writes
land or neither does, so these go through ``UnitOfWork.commit``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from fulfillment.domain.model.delivery_agent import DeliveryAgent
from fulfillment.domain.model.order import Order
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)
from fulfillment.domain.repository.order_repository import OrderRepository


class UnitOfWork(ABC):

    orders: OrderRepository
    agents: DeliveryAgentRepository

    @abstractmethod
    def commit(
        self,
        orders: list[Order] | None = None,
        agents: list[DeliveryAgent] | None = None,
    ) -> None:
        """Check every version first, then write everything.

        Raises ConcurrencyConflict without writing anything if any
        aggregate is stale.
        """
