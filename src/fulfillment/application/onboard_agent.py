"""Application service: Onboard Delivery Agent use case."""

from __future__ import annotations

import structlog

from fulfillment.application.dto import AgentDTO, agent_to_dto
from fulfillment.domain.exceptions import ValidationError
from fulfillment.domain.model.delivery_agent import (
    DEFAULT_CASH_LIMIT,
    DeliveryAgent,
    VehicleType,
)
from fulfillment.domain.model.value_objects import Money
from fulfillment.domain.repository.delivery_agent_repository import (
    DeliveryAgentRepository,
)

logger = structlog.get_logger(__name__)


class OnboardAgentHandler:

    def __init__(
        self,
        agent_repo: DeliveryAgentRepository,
        default_cash_limit: Money = DEFAULT_CASH_LIMIT,
    ) -> None:
        self._agent_repo = agent_repo
        self._default_cash_limit = default_cash_limit

    def handle(
        self,
        agent_id: str,
        name: str,
        phone: str,
        vehicle_type: str = VehicleType.MOTORCYCLE.value,
        cash_limit: str | None = None,
    ) -> AgentDTO:
        """Register a new, not yet verified agent with an empty cash ledger."""
        if self._agent_repo.get_by_id(agent_id.strip()) is not None:
            raise ValidationError(f"Agent '{agent_id}' already exists")

        limit = (
            self._default_cash_limit
            if cash_limit is None
            else Money.of(cash_limit, self._default_cash_limit.currency)
        )
        agent = DeliveryAgent.onboard(
            agent_id=agent_id,
            name=name,
            phone=phone,
            vehicle_type=_parse_vehicle(vehicle_type),
            cash_limit=limit,
        )
        self._agent_repo.save(agent)

        logger.info("agent_onboarded", agent_id=agent.id, cash_limit=str(limit))
        return agent_to_dto(agent)


def _parse_vehicle(raw: str) -> VehicleType:
    try:
        return VehicleType(raw.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(v.value for v in VehicleType)
        raise ValidationError(
            f"Unknown vehicle type '{raw}'. Expected one of: {allowed}"
        ) from exc
