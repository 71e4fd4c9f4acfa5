"""Application service: Refund Order use case.

Marks a delivered order refunded.  Moving the money back to the buyer is
the payment provider's job and happens outside this engine.
"""

from __future__ import annotations

import structlog

from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.order_repository import OrderRepository

logger = structlog.get_logger(__name__)


class RefundOrderHandler:

    def __init__(self, order_repo: OrderRepository) -> None:
        self._order_repo = order_repo

    def handle(self, order_id: str, actor: str, reason: str = "") -> None:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")

        order.refund(actor, reason)
        self._order_repo.save(order)

        logger.warning(
            "order_transition",
            order_id=order.id, status=order.status.value, actor=actor, reason=reason,
        )
