"""Abstract repository for Order aggregate."""

from __future__ import annotations

from abc import ABC, abstractmethod

from fulfillment.domain.model.order import Order, OrderStatus


class OrderRepository(ABC):

    @abstractmethod
    def next_id(self) -> str:
        """Generate a new, globally unique order ID."""

    @abstractmethod
    def get_by_id(self, order_id: str) -> Order | None:
        """Return an order by its ID, or None if not found."""

    @abstractmethod
    def list_orders(
        self,
        buyer_id: str | None = None,
        seller_id: str | None = None,
        status: OrderStatus | None = None,
        category: str | None = None,
    ) -> list[Order]:
        """Return orders matching every given filter, newest first."""

    @abstractmethod
    def save(self, order: Order) -> None:
        """Persist a new or updated order.

        Compare-and-set: the stored version must equal ``order.version``
        (a new order must not exist yet).  On success ``order.version`` is
        incremented; otherwise ConcurrencyConflict is raised and nothing
        is written.
        """
