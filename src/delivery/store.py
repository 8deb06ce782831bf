"""Delivery store port and its Protean repository implementation.

The orchestrator only sees ``DeliveryStore``; which database sits behind the
repositories is decided by the domain configuration (memory in tests,
PostgreSQL in production).
"""

from abc import ABC, abstractmethod
from datetime import datetime

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from delivery.delivery.attempt import DispatchAttempt
from delivery.delivery.delivery import Delivery, UpdateSource
from delivery.errors import DeliveryNotFound


class DeliveryStore(ABC):
    """Persistence boundary for deliveries and dispatch attempts."""

    @abstractmethod
    def get(self, delivery_id: str) -> Delivery: ...

    @abstractmethod
    def save(self, delivery: Delivery) -> None: ...

    @abstractmethod
    def append_update(
        self,
        delivery_id: str,
        description: str,
        source: UpdateSource,
        raw_status: str | None = None,
        location: str | None = None,
        reported_at: datetime | None = None,
    ) -> Delivery:
        """Append a flagged entry to a delivery's history without changing its status."""
        ...

    @abstractmethod
    def find_active_by_order(self, order_id: str) -> Delivery | None: ...

    @abstractmethod
    def find_by_order(self, order_id: str) -> list[Delivery]: ...

    @abstractmethod
    def find_by_tracking_id(self, provider_id: str, tracking_id: str) -> Delivery | None: ...

    @abstractmethod
    def find_active(self, provider_ids: list[str] | None = None) -> list[Delivery]: ...

    @abstractmethod
    def find_by_status(self, status: str) -> list[Delivery]: ...

    @abstractmethod
    def search(self, status: str | None = None, provider_id: str | None = None) -> list[Delivery]: ...

    @abstractmethod
    def next_attempt_number(self, order_id: str) -> int: ...

    @abstractmethod
    def save_attempt(self, attempt: DispatchAttempt) -> None: ...

    @abstractmethod
    def find_in_flight_attempts(self, order_id: str) -> list[DispatchAttempt]: ...

    @abstractmethod
    def find_failed_attempts(self) -> list[DispatchAttempt]: ...


class RepositoryDeliveryStore(DeliveryStore):
    """``DeliveryStore`` backed by the domain's repositories.

    Must be used inside an active domain context.
    """

    @property
    def _deliveries(self):
        return current_domain.repository_for(Delivery)

    @property
    def _attempts(self):
        return current_domain.repository_for(DispatchAttempt)

    def get(self, delivery_id: str) -> Delivery:
        try:
            return self._deliveries.get(delivery_id)
        except ObjectNotFoundError:
            raise DeliveryNotFound(f"Delivery {delivery_id} does not exist") from None

    def save(self, delivery: Delivery) -> None:
        self._deliveries.add(delivery)

    def append_update(
        self,
        delivery_id: str,
        description: str,
        source: UpdateSource,
        raw_status: str | None = None,
        location: str | None = None,
        reported_at: datetime | None = None,
    ) -> Delivery:
        dlv = self.get(delivery_id)
        dlv.record_anomaly(
            description,
            source=source,
            raw_status=raw_status,
            location=location,
            reported_at=reported_at,
        )
        self.save(dlv)
        return dlv

    def find_active_by_order(self, order_id: str) -> Delivery | None:
        return self._deliveries.find_active_by_order(order_id)

    def find_by_order(self, order_id: str) -> list[Delivery]:
        return self._deliveries.find_by_order(order_id)

    def find_by_tracking_id(self, provider_id: str, tracking_id: str) -> Delivery | None:
        return self._deliveries.find_by_tracking_id(provider_id, tracking_id)

    def find_active(self, provider_ids: list[str] | None = None) -> list[Delivery]:
        return self._deliveries.find_active(provider_ids)

    def find_by_status(self, status: str) -> list[Delivery]:
        return self._deliveries.find_by_status(status)

    def search(self, status: str | None = None, provider_id: str | None = None) -> list[Delivery]:
        return self._deliveries.search(status=status, provider_id=provider_id)

    def next_attempt_number(self, order_id: str) -> int:
        return self._attempts.next_attempt_number(order_id)

    def save_attempt(self, attempt: DispatchAttempt) -> None:
        self._attempts.add(attempt)

    def find_in_flight_attempts(self, order_id: str) -> list[DispatchAttempt]:
        return self._attempts.find_in_flight(order_id)

    def find_failed_attempts(self) -> list[DispatchAttempt]:
        return self._attempts.find_failed()
