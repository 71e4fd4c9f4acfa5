"""Audit events emitted by every state transition.

Events are appended to the owning aggregate and never edited; the
reconciliation process reads them back to explain how an order (or an
agent's cash balance) reached its current state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class DomainEvent:
    event_type: str
    order_id: str | None
    actor: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "order_id": self.order_id,
            "actor": self.actor,
            "occurred_at": self.occurred_at.isoformat(),
            "details": dict(self.details),
        }

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> DomainEvent:
        return DomainEvent(
            event_type=raw["event_type"],
            order_id=raw.get("order_id"),
            actor=raw["actor"],
            occurred_at=datetime.fromisoformat(raw["occurred_at"]),
            details=dict(raw.get("details", {})),
        )
