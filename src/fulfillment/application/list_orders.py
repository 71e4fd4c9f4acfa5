"""Application service: List Orders use case (query)."""

from __future__ import annotations

from fulfillment.application.dto import OrderDTO, order_to_dto
from fulfillment.domain.exceptions import ValidationError
from fulfillment.domain.model.order import OrderStatus
from fulfillment.domain.repository.order_repository import OrderRepository


class ListOrdersHandler:

    def __init__(self, order_repo: OrderRepository) -> None:
        self._order_repo = order_repo

    def handle(
        self,
        buyer_id: str | None = None,
        seller_id: str | None = None,
        status: str | None = None,
        category: str | None = None,
    ) -> list[OrderDTO]:
        """Return matching orders, newest first. Filters combine with AND."""
        orders = self._order_repo.list_orders(
            buyer_id=buyer_id,
            seller_id=seller_id,
            status=None if status is None else _parse_status(status),
            category=category,
        )
        return [order_to_dto(order) for order in orders]


def _parse_status(raw: str) -> OrderStatus:
    try:
        return OrderStatus(raw.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(
            f"Unknown order status '{raw}'. Expected one of: {allowed}"
        ) from exc
