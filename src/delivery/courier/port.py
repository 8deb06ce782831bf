"""Courier port — abstract interface for third-party courier integrations.

All courier adapters implement this interface. The orchestrator programs
against the port; adapters are registered per provider id in the
``ProviderRegistry``.

Ordinary courier-side failures while creating a delivery come back as a
failed ``CourierResponse`` rather than an exception, so the caller can tell
a transient failure (retry later) from a rejection (fix the request).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Party:
    """One end of a shipment: the vendor at pickup or the customer at drop-off."""

    name: str
    phone: str
    address: str
    city: str | None = None
    suburb: str | None = None
    building: str | None = None
    postal_code: str | None = None


@dataclass(frozen=True)
class DeliveryRequest:
    """Everything a courier needs to accept a shipment."""

    order_id: str
    idempotency_key: str
    pickup: Party
    dropoff: Party
    package_description: str
    special_instructions: str | None = None
    weight_kg: float | None = None
    declared_value: float | None = None


@dataclass(frozen=True)
class CourierResponse:
    """Result of a shipment creation attempt."""

    success: bool
    tracking_id: str | None = None
    estimated_pickup: datetime | None = None
    estimated_delivery: datetime | None = None
    error: str | None = None
    transient: bool = False


@dataclass(frozen=True)
class CourierStatus:
    """A courier's view of one shipment, in the courier's own vocabulary."""

    tracking_id: str
    status: str
    description: str
    timestamp: datetime
    location: str | None = None
    estimated_delivery: datetime | None = None


@dataclass(frozen=True)
class CourierQuote:
    """Delivery price estimate."""

    success: bool
    amount: float | None = None
    currency: str | None = None
    estimated_delivery: datetime | None = None
    quote_id: str | None = None
    error: str | None = None
    error_code: str | None = None


class CourierAPIProvider(ABC):
    """Abstract interface for courier adapters."""

    provider_id: str

    @abstractmethod
    def create_delivery(self, request: DeliveryRequest) -> CourierResponse:
        """Submit a shipment to the courier. Exactly one network submission per call."""
        ...

    @abstractmethod
    def get_delivery_status(self, tracking_id: str) -> CourierStatus:
        """Fetch the courier's current status for a shipment.

        Raises:
            CourierTransportError: the courier could not be reached or failed (retryable).
            CourierStatusNotFound: the courier does not know the tracking id.
        """
        ...

    @abstractmethod
    def cancel_delivery(self, tracking_id: str) -> bool:
        """Ask the courier to cancel. False means the courier declined or does not support it.

        Raises:
            CourierTransportError: the courier could not be reached.
        """
        ...

    @abstractmethod
    def request_quote(self, request: DeliveryRequest) -> CourierQuote:
        """Estimate the delivery price for a request."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a webhook callback is authentic."""
        ...
