"""JSON-file-backed implementation of DeliveryAgentRepository."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.model.delivery_agent import (
    AgentDelivery,
    CashLedger,
    DeliveryAgent,
    DepositEvidence,
    DepositRecord,
    DepositStatus,
    LedgerCorrection,
    VehicleType,
)
from fulfillment.domain.model.order import DeliveryStatus
from fulfillment.domain.model.value_objects import GeoPoint, Money
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)
from fulfillment.infrastructure.persistence.json_store import (
    JsonStore,
    dt_from_raw,
    dt_to_raw,
    money_from_raw,
    money_to_raw,
)


class JsonDeliveryAgentRepository(DeliveryAgentRepository):

    def __init__(self, file_path: Path) -> None:
        self._store = JsonStore(file_path)

    # --- DeliveryAgentRepository interface ------------------------------------

    def get_by_id(self, agent_id: str) -> DeliveryAgent | None:
        raw = JsonStore.find(self._store.load_raw(), agent_id)
        return None if raw is None else self._to_domain(raw)

    def list_all(self) -> list[DeliveryAgent]:
        return [self._to_domain(raw) for raw in self._store.load_raw()]

    def get_by_deposit_id(self, deposit_id: str) -> DeliveryAgent | None:
        for raw in self._store.load_raw():
            if any(d["id"] == deposit_id for d in raw["cash"]["deposits"]):
                return self._to_domain(raw)
        return None

    def save(self, agent: DeliveryAgent) -> None:
        with self._store.lock:
            records = self._store.load_raw()
            self._store.check_version(records, agent.id, agent.version)
            self.write(records, agent)
            self._store.persist_raw(records)

    # --- Used by JsonUnitOfWork -----------------------------------------------

    @property
    def store(self) -> JsonStore:
        return self._store

    def write(self, records: list[dict], agent: DeliveryAgent) -> None:
        agent.version += 1
        JsonStore.upsert(records, self._to_raw(agent))

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(agent: DeliveryAgent) -> dict:
        cash = agent.cash
        return {
            "id": agent.id,
            "version": agent.version,
            "name": agent.name,
            "phone": agent.phone,
            "vehicle_type": agent.vehicle_type.value,
            "is_active": agent.is_active,
            "is_verified": agent.is_verified,
            "verified_at": dt_to_raw(agent.verified_at),
            "onboarded_at": agent.onboarded_at.isoformat(),
            "currency": agent.currency,
            "stats": {
                "total_deliveries": agent.total_deliveries,
                "successful_deliveries": agent.successful_deliveries,
            },
            "cash": {
                "cash_limit": money_to_raw(cash.cash_limit),
                "current_balance": money_to_raw(cash.current_balance),
                "total_collected": money_to_raw(cash.total_collected),
                "total_deposited": money_to_raw(cash.total_deposited),
                "last_deposit_at": dt_to_raw(cash.last_deposit_at),
                "deposits": [
                    {
                        "id": d.id,
                        "amount": money_to_raw(d.amount),
                        "deposited_at": d.deposited_at.isoformat(),
                        "status": d.status.value,
                        "verified_by": d.verified_by,
                        "verified_at": dt_to_raw(d.verified_at),
                        "evidence": {
                            "agent_name": d.evidence.agent_name,
                            "agent_phone": d.evidence.agent_phone,
                            "provider": d.evidence.provider,
                            "transaction_reference": d.evidence.transaction_reference,
                            "receipt_url": d.evidence.receipt_url,
                            "location": (
                                [d.evidence.location.longitude, d.evidence.location.latitude]
                                if d.evidence.location else None
                            ),
                        },
                    }
                    for d in cash.deposits
                ],
                "corrections": [
                    {
                        "deposit_id": c.deposit_id,
                        "amount": money_to_raw(c.amount),
                        "reason": c.reason,
                        "recorded_at": c.recorded_at.isoformat(),
                    }
                    for c in cash.corrections
                ],
            },
            "deliveries": [
                {
                    "order_id": d.order_id,
                    "status": d.status.value,
                    "assigned_at": d.assigned_at.isoformat(),
                    "pickup_confirmed_at": dt_to_raw(d.pickup_confirmed_at),
                    "delivered_at": dt_to_raw(d.delivered_at),
                    "expected_cash": money_to_raw(d.expected_cash),
                    "cash_collected": money_to_raw(d.cash_collected),
                    "notes": d.notes,
                }
                for d in agent.deliveries
            ],
            "events": [event.to_dict() for event in agent.events],
        }

    @staticmethod
    def _to_domain(raw: dict) -> DeliveryAgent:
        currency = raw["currency"]
        cash_raw = raw["cash"]
        deposits = []
        for d in cash_raw["deposits"]:
            ev = d["evidence"]
            loc = ev.get("location")
            deposits.append(
                DepositRecord(
                    id=d["id"],
                    amount=Money(Decimal(d["amount"]), currency),
                    deposited_at=dt_from_raw(d["deposited_at"]),
                    status=DepositStatus(d["status"]),
                    verified_by=d.get("verified_by"),
                    verified_at=dt_from_raw(d.get("verified_at")),
                    evidence=DepositEvidence(
                        agent_name=ev.get("agent_name", ""),
                        agent_phone=ev.get("agent_phone", ""),
                        provider=ev.get("provider", ""),
                        transaction_reference=ev.get("transaction_reference", ""),
                        receipt_url=ev.get("receipt_url", ""),
                        location=GeoPoint(loc[0], loc[1]) if loc else None,
                    ),
                )
            )
        cash = CashLedger(
            cash_limit=money_from_raw(cash_raw["cash_limit"], currency),
            current_balance=money_from_raw(cash_raw["current_balance"], currency),
            total_collected=money_from_raw(cash_raw["total_collected"], currency),
            total_deposited=money_from_raw(cash_raw["total_deposited"], currency),
            last_deposit_at=dt_from_raw(cash_raw.get("last_deposit_at")),
            deposits=deposits,
            corrections=[
                LedgerCorrection(
                    deposit_id=c["deposit_id"],
                    amount=Money(Decimal(c["amount"]), currency),
                    reason=c["reason"],
                    recorded_at=dt_from_raw(c["recorded_at"]),
                )
                for c in cash_raw.get("corrections", [])
            ],
        )
        deliveries = [
            AgentDelivery(
                order_id=d["order_id"],
                status=DeliveryStatus(d["status"]),
                assigned_at=dt_from_raw(d["assigned_at"]),
                pickup_confirmed_at=dt_from_raw(d.get("pickup_confirmed_at")),
                delivered_at=dt_from_raw(d.get("delivered_at")),
                expected_cash=money_from_raw(d.get("expected_cash"), currency),
                cash_collected=money_from_raw(d.get("cash_collected"), currency),
                notes=d.get("notes", ""),
            )
            for d in raw.get("deliveries", [])
        ]
        stats = raw.get("stats", {})
        return DeliveryAgent(
            id=raw["id"],
            version=raw["version"],
            name=raw["name"],
            phone=raw["phone"],
            vehicle_type=VehicleType(raw["vehicle_type"]),
            cash=cash,
            is_active=raw.get("is_active", True),
            is_verified=raw.get("is_verified", False),
            verified_at=dt_from_raw(raw.get("verified_at")),
            deliveries=deliveries,
            total_deliveries=stats.get("total_deliveries", 0),
            successful_deliveries=stats.get("successful_deliveries", 0),
            onboarded_at=dt_from_raw(raw["onboarded_at"]),
            events=[DomainEvent.from_dict(e) for e in raw.get("events", [])],
        )
