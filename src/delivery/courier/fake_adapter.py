"""Fake courier adapter — deterministic courier for testing and development.

Generates mock tracking ids and reports whatever status it was told to.
Configurable success/failure/latency behavior for integration testing; every
call is recorded in ``calls``.
"""

import hashlib
import hmac
import time
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from delivery.config import PROVIDER_PROFILES, ProviderProfile
from delivery.courier.port import CourierAPIProvider, CourierQuote, CourierResponse, CourierStatus, DeliveryRequest
from delivery.errors import CourierStatusNotFound, CourierTransportError


class FakeCourier(CourierAPIProvider):
    """Fake courier that accepts every shipment by default."""

    def __init__(self, provider_id: str = "fake", profile: ProviderProfile | None = None):
        self.provider_id = provider_id
        self.profile = profile or PROVIDER_PROFILES.get(provider_id) or ProviderProfile(provider_id, provider_id)
        self.calls: list[tuple] = []
        self.shipments: dict[str, str] = {}
        self.webhook_secret: str | None = None
        self.configure()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Courier unavailable",
        transient: bool = True,
        delay_seconds: float = 0.0,
        cancel_acknowledged: bool = True,
        reachable: bool = True,
    ):
        """Configure the fake courier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.transient = transient
        self.delay_seconds = delay_seconds
        self.cancel_acknowledged = cancel_acknowledged
        self.reachable = reachable

    def set_status(self, tracking_id: str, status: str) -> None:
        """Script the status the courier will report for a shipment."""
        self.shipments[tracking_id] = status

    def calls_to(self, operation: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == operation]

    def _wait(self) -> None:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)

    def create_delivery(self, request: DeliveryRequest) -> CourierResponse:
        self.calls.append(("create_delivery", request.order_id, request.idempotency_key))
        self._wait()
        if not self.should_succeed:
            return CourierResponse(success=False, error=self.failure_reason, transient=self.transient)

        tracking_id = f"{self.provider_id.upper()}-{uuid4().hex[:12].upper()}"
        self.shipments[tracking_id] = "pending"
        now = datetime.now(UTC)
        return CourierResponse(
            success=True,
            tracking_id=tracking_id,
            estimated_pickup=now + timedelta(hours=2),
            estimated_delivery=now + timedelta(hours=self.profile.estimated_delivery_hours),
        )

    def get_delivery_status(self, tracking_id: str) -> CourierStatus:
        self.calls.append(("get_delivery_status", tracking_id))
        self._wait()
        if not self.reachable:
            raise CourierTransportError(self.provider_id, self.failure_reason)
        if tracking_id not in self.shipments:
            raise CourierStatusNotFound(self.provider_id, tracking_id)

        status = self.shipments[tracking_id]
        return CourierStatus(
            tracking_id=tracking_id,
            status=status,
            description=f"Shipment {status}",
            location="Nairobi Hub",
            timestamp=datetime.now(UTC),
        )

    def cancel_delivery(self, tracking_id: str) -> bool:
        self.calls.append(("cancel_delivery", tracking_id))
        self._wait()
        if not self.reachable:
            raise CourierTransportError(self.provider_id, self.failure_reason)
        if self.cancel_acknowledged:
            self.shipments[tracking_id] = "cancelled"
        return self.cancel_acknowledged

    def request_quote(self, request: DeliveryRequest) -> CourierQuote:
        self.calls.append(("request_quote", request.order_id))
        return CourierQuote(
            success=True,
            amount=self.profile.base_rate,
            currency=self.profile.currency,
            estimated_delivery=datetime.now(UTC) + timedelta(hours=self.profile.estimated_delivery_hours),
            quote_id=f"FAKE-{uuid4().hex[:8].upper()}",
        )

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        # Without a secret the fake courier accepts any signature
        if self.webhook_secret is None:
            return True
        expected = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)
