"""Application service: Issue Handoff Token use case.

Re-issues the QR payload to the buyer on file, e.g. after they lost the
one handed out at confirmation.  The payload never changes for an order.
"""

from __future__ import annotations

from fulfillment.application.dto import HandoffTokenDTO
from fulfillment.domain.exceptions import EntityNotFoundError
from fulfillment.domain.repository.order_repository import OrderRepository
from fulfillment.domain.service.handoff_token import HandoffTokenService


class IssueHandoffTokenHandler:

    def __init__(
        self,
        order_repo: OrderRepository,
        tokens: HandoffTokenService | None = None,
    ) -> None:
        self._order_repo = order_repo
        self._tokens = tokens or HandoffTokenService()

    def handle(self, order_id: str, buyer_id: str) -> HandoffTokenDTO:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(f"Order {order_id} not found")

        token = self._tokens.issue(order, buyer_id)
        self._order_repo.save(order)

        return HandoffTokenDTO(
            order_id=order.id,
            payload=token.payload,
            issued_at=token.issued_at.strftime("%Y-%m-%d %H:%M UTC"),
        )
