"""Application service: Confirm Order use case.

Moves a paid (or cash-on-delivery) order to ``confirmed`` and issues the
buyer's handoff token in the same save.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import HandoffTokenDTO
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.order_repository import OrderRepository
from fulfillment.domain.service.handoff_token import HandoffTokenService

logger = structlog.get_logger(__name__)


class ConfirmOrderHandler:

    def __init__(
        self,
        order_repo: OrderRepository,
        tokens: HandoffTokenService | None = None,
    ) -> None:
        self._order_repo = order_repo
        self._tokens = tokens or HandoffTokenService()

    def handle(self, order_id: str, actor: str) -> HandoffTokenDTO:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")

        order.confirm(actor)
        token = self._tokens.issue(order, order.buyer_id)
        self._order_repo.save(order)

        logger.info("order_transition", order_id=order.id, status=order.status.value, actor=actor)
        return HandoffTokenDTO(
            order_id=order.id,
            payload=token.payload,
            issued_at=token.issued_at.strftime("%Y-%m-%d %H:%M UTC"),
        )
