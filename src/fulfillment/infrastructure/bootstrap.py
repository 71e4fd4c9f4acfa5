"""Composition root: wires concrete implementations to domain interfaces.

This is the only place in the codebase that knows about *all* layers.
Every other module depends only on abstractions.
"""

from __future__ import annotations

from decimal import Decimal

from fulfillment.config import Settings, get_settings
from fulfillment.domain.model.value_objects import Money
from fulfillment.domain.service.custody_ledger import DeliveryCustodyLedger
from fulfillment.infrastructure.gateways import JsonPayoutDirectory, LoggingNotifier
from fulfillment.infrastructure.persistence.json_delivery_agent_repository import (
    JsonDeliveryAgentRepository,
)
from fulfillment.infrastructure.persistence.json_order_repository import (
    JsonOrderRepository,
)
from fulfillment.infrastructure.persistence.json_unit_of_work import JsonUnitOfWork


def _settings(settings: Settings | None) -> Settings:
    return settings or get_settings()


def order_repository(settings: Settings | None = None) -> JsonOrderRepository:
    return JsonOrderRepository(_settings(settings).data_dir / "orders.json")


def agent_repository(settings: Settings | None = None) -> JsonDeliveryAgentRepository:
    return JsonDeliveryAgentRepository(_settings(settings).data_dir / "agents.json")


def unit_of_work(settings: Settings | None = None) -> JsonUnitOfWork:
    return JsonUnitOfWork(order_repository(settings), agent_repository(settings))


def payout_directory(settings: Settings | None = None) -> JsonPayoutDirectory:
    return JsonPayoutDirectory(_settings(settings).data_dir / "payout_destinations.json")


def notifier() -> LoggingNotifier:
    return LoggingNotifier()


def custody_ledger(settings: Settings | None = None) -> DeliveryCustodyLedger:
    settings = _settings(settings)
    return DeliveryCustodyLedger(
        tolerance=Money(Decimal(settings.cash_tolerance), settings.currency),
        recent_deposits=settings.recent_deposits_window,
    )


def default_cash_limit(settings: Settings | None = None) -> Money:
    settings = _settings(settings)
    return Money(Decimal(settings.default_cash_limit), settings.currency)
