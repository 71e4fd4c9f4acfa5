"""Domain service: Handoff Token.

The buyer shows a QR code encoding ``ORDER_<orderId>_BUYER_<buyerId>``;
the delivery agent scans it at pickup.  The payload is a pure function of
two immutable order fields, so re-issuing yields the same token and old
copies stay valid while the pair is unchanged.

The token is NOT signed.  Anyone who learns the order id and buyer id can
forge it, so it only proves "this artifact names the right pair".  It is
always re-checked against the order as currently stored, never cached.
A signed, time-boxed alternative (HMAC over order id + buyer id + expiry)
is described in DESIGN.md and deliberately not substituted here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from fulfillment.domain.exceptions import ValidationError
from fulfillment.domain.model.order import HANDOFF_STATUSES, Order

logger = structlog.get_logger(__name__)

_PAYLOAD_PATTERN = re.compile(r"^ORDER_(?P<order_id>.+?)_BUYER_(?P<buyer_id>.+)$")


@dataclass(frozen=True)
class HandoffToken:
    order_id: str
    buyer_id: str
    issued_at: datetime

    @property
    def payload(self) -> str:
        return encode_payload(self.order_id, self.buyer_id)


def encode_payload(order_id: str, buyer_id: str) -> str:
    return f"ORDER_{order_id}_BUYER_{buyer_id}"


def decode_payload(payload: str) -> tuple[str, str] | None:
    """Split a scanned payload into (order_id, buyer_id), or None if malformed."""
    match = _PAYLOAD_PATTERN.match(payload.strip())
    if match is None:
        return None
    return match.group("order_id"), match.group("buyer_id")


class HandoffTokenService:

    def issue(self, order: Order, buyer_id: str) -> HandoffToken:
        """Issue (or re-issue) the handoff token for ``order``.

        Only the buyer on file may receive it, and only while the order
        is confirmed or in transit.
        """
        if buyer_id != order.buyer_id:
            raise ValidationError(
                f"Buyer {buyer_id} is not the buyer of order {order.id}"
            )
        order.mark_handoff_issued(actor=buyer_id)
        return HandoffToken(
            order_id=order.id,
            buyer_id=order.buyer_id,
            issued_at=order.handoff_issued_at or datetime.now(timezone.utc),
        )

    def verify(self, token: str, order: Order) -> bool:
        """True iff ``token`` names ``order``'s current order/buyer pair
        and the order is in the handoff window."""
        return self.rejection_reason(token, order) is None

    def rejection_reason(self, token: str, order: Order) -> str | None:
        """Name what is wrong with ``token`` for ``order``, or None if it is valid.

        One of ``malformed``, ``order``, ``buyer``, ``order,buyer`` or
        ``status``.
        """
        if token and token.strip() == encode_payload(order.id, order.buyer_id):
            return None if order.status in HANDOFF_STATUSES else "status"

        decoded = decode_payload(token or "")
        if decoded is None:
            return "malformed"
        order_id, buyer_id = decoded
        mismatched = [
            name for name, scanned, stored in (
                ("order", order_id, order.id),
                ("buyer", buyer_id, order.buyer_id),
            )
            if scanned != stored
        ]
        return ",".join(mismatched) or "malformed"

    def redeem(self, token: str, order: Order, agent_id: str) -> None:
        """Check the scanned token and move the order into transit."""
        reason = self.rejection_reason(token, order)
        if reason is not None:
            logger.warning(
                "handoff_token_rejected", order_id=order.id, agent_id=agent_id,
                status=order.status.value, mismatch=reason,
            )
            raise ValidationError(f"Invalid handoff token for order {order.id}")
        order.confirm_pickup(agent_id, actor=agent_id)
