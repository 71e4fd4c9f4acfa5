"""Fire-and-forget notification dispatch for handlers."""

from __future__ import annotations

import structlog

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.gateways import Notifier

logger = structlog.get_logger(__name__)


def notify_quietly(notifier: Notifier | None, recipients: list[str], event: DomainEvent) -> None:
    """Send ``event`` to each recipient; a failing send is logged and skipped.

    Called only after the state change is committed, so a notification
    outage can never undo or block a transition.
    """
    if notifier is None:
        return
    for recipient in dict.fromkeys(recipients):
        try:
            notifier.notify(recipient, event)
        except Exception:
            logger.warning(
                "notification_failed",
                recipient=recipient, event_type=event.event_type, order_id=event.order_id,
                exc_info=True,
            )
