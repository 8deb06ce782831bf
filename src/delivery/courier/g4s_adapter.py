"""G4S courier adapter.

Bearer-token API with snake_case payloads. G4S honours an ``Idempotency-Key``
header on shipment creation, so a retried submission for the same order
attempt is not booked twice.
"""

from datetime import UTC, datetime

import httpx
import structlog

from delivery.config import ProviderProfile
from delivery.courier.http import HttpCourierAPI, parse_timestamp
from delivery.courier.port import CourierResponse, CourierStatus, DeliveryRequest

logger = structlog.get_logger(__name__)


class G4SCourierAPI(HttpCourierAPI):
    def __init__(
        self,
        profile: ProviderProfile,
        api_key: str,
        base_url: str = "https://api.g4s.co.ke",
        webhook_secret: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            profile,
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            webhook_secret=webhook_secret,
            timeout=timeout,
            transport=transport,
        )

    def create_delivery(self, request: DeliveryRequest) -> CourierResponse:
        payload = {
            "reference": request.order_id,
            "pickup_address": request.pickup.address,
            "pickup_contact_name": request.pickup.name,
            "vendor_phone": request.pickup.phone,
            "delivery_address": request.dropoff.address,
            "recipient_name": request.dropoff.name,
            "customer_phone": request.dropoff.phone,
            "package_description": request.package_description,
            "special_instructions": request.special_instructions,
            "weight": request.weight_kg,
            "declared_value": request.declared_value,
        }
        result = self._submit("/deliveries", payload, headers={"Idempotency-Key": request.idempotency_key})
        if isinstance(result, CourierResponse):
            return result

        data = self._read_created(result, request.order_id)
        if isinstance(data, CourierResponse):
            return data
        tracking_id = data.get("tracking_id")
        if not tracking_id:
            return CourierResponse(success=False, error="G4S accepted the shipment without a tracking id")

        logger.info("G4S shipment created", order_id=request.order_id, tracking_id=tracking_id)
        return CourierResponse(
            success=True,
            tracking_id=str(tracking_id),
            estimated_pickup=parse_timestamp(data.get("estimated_pickup")),
            estimated_delivery=parse_timestamp(data.get("estimated_delivery")),
        )

    def get_delivery_status(self, tracking_id: str) -> CourierStatus:
        response = self._request("GET", f"/deliveries/{tracking_id}/status")
        data = self._read_status(response, tracking_id)
        return CourierStatus(
            tracking_id=tracking_id,
            status=str(data.get("status", "")),
            description=data.get("description") or "",
            location=data.get("location"),
            timestamp=parse_timestamp(data.get("timestamp")) or datetime.now(UTC),
            estimated_delivery=parse_timestamp(data.get("estimated_delivery")),
        )

    def cancel_delivery(self, tracking_id: str) -> bool:
        response = self._request("POST", f"/deliveries/{tracking_id}/cancel")
        if not response.is_success:
            logger.info(
                "G4S declined cancellation",
                tracking_id=tracking_id,
                status_code=response.status_code,
            )
        return response.is_success
