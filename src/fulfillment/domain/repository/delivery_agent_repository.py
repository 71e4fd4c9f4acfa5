"""Abstract repository for DeliveryAgent aggregate."""

from __future__ import annotations

from abc import ABC, abstractmethod

from fulfillment.domain.model.delivery_agent import DeliveryAgent


class DeliveryAgentRepository(ABC):

    @abstractmethod
    def get_by_id(self, agent_id: str) -> DeliveryAgent | None:
        """Return an agent by ID, or None if not found."""

    @abstractmethod
    def list_all(self) -> list[DeliveryAgent]:
        """Return every onboarded agent."""

    @abstractmethod
    def save(self, agent: DeliveryAgent) -> None:
        """Persist a new or updated agent, with the same version check as orders."""

    @abstractmethod
    def get_by_deposit_id(self, deposit_id: str) -> DeliveryAgent | None:
        """Return the agent whose cash ledger holds ``deposit_id``, or None."""
