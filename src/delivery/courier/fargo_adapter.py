"""Fargo courier adapter (Fargo API v1).

``ApiKey`` auth plus a credentials block in every shipment request. Fargo
wants plain suburb names, so administrative suffixes that come out of address
autocomplete ("Woodley/Kenyatta Golf Course Ward") are stripped before
submission. Fargo v1 exposes no cancellation endpoint.
"""

import re
from datetime import UTC, datetime, timedelta

import httpx
import structlog

from delivery.config import FargoSettings, ProviderProfile
from delivery.courier.http import HttpCourierAPI, parse_timestamp
from delivery.courier.port import CourierQuote, CourierResponse, CourierStatus, DeliveryRequest, Party

logger = structlog.get_logger(__name__)

FARGO_BASE_URLS = {
    "production": "https://api.fargocourier.co.ke/v1",
    "uat": "https://api-uat.fargocourier.co.ke/v1",
}

# Fargo rejects shipper references longer than this
SHIPPER_REFERENCE_MAX_LENGTH = 30

_SUBURB_SUFFIXES = re.compile(
    r"\s+(ward|division|location|sub-location|sub location|district|constituency)$",
    re.IGNORECASE,
)


def clean_suburb(raw: str | None) -> str | None:
    """Reduce an autocomplete suburb to the bare name Fargo expects."""
    if not raw:
        return None
    cleaned = raw.split("/")[0].strip()
    cleaned = cleaned.split(",")[0].strip()
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = _SUBURB_SUFFIXES.sub("", cleaned).strip()
    return cleaned or None


class FargoCourierAPI(HttpCourierAPI):
    def __init__(
        self,
        profile: ProviderProfile,
        settings: FargoSettings,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        environment = settings.environment.lower()
        base_url = settings.base_url or FARGO_BASE_URLS.get(environment, FARGO_BASE_URLS["production"])
        super().__init__(
            profile,
            base_url=base_url,
            headers={"Authorization": f"ApiKey {settings.api_key}"},
            webhook_secret=settings.webhook_secret,
            timeout=timeout,
            transport=transport,
        )
        self._settings = settings

    def _party(self, party: Party) -> dict | None:
        city = party.city or self._settings.default_city
        suburb = clean_suburb(party.suburb)
        if not city or not suburb:
            return None
        return {
            "name": party.name,
            "address": party.address,
            "building": party.building,
            "postalCode": party.postal_code,
            "city": city,
            "suburb": suburb,
            "phone": party.phone,
        }

    def build_payload(self, request: DeliveryRequest) -> dict | None:
        """Fargo shipment request body, or None when a location is incomplete."""
        sender = self._party(request.pickup)
        recipient = self._party(request.dropoff)
        if sender is None or recipient is None:
            return None

        length, breadth, height = self._settings.parcel_dimensions_cm
        return {
            "credentials": {
                "username": self._settings.username,
                "password": self._settings.password,
            },
            "sender": sender,
            "recipient": recipient,
            "parcelDetails": [
                {
                    "weight": request.weight_kg or self._settings.default_weight_kg,
                    "length": length,
                    "breadth": breadth,
                    "height": height,
                    "description": request.package_description,
                    "quantity": 1,
                }
            ],
            "shipperReference": request.idempotency_key[-SHIPPER_REFERENCE_MAX_LENGTH:],
        }

    def create_delivery(self, request: DeliveryRequest) -> CourierResponse:
        payload = self.build_payload(request)
        if payload is None:
            return CourierResponse(
                success=False,
                error="City and suburb are required for pickup and drop-off",
            )

        result = self._submit("/shipmentRequest", payload)
        if isinstance(result, CourierResponse):
            return result

        data = self._read_created(result, request.order_id)
        if isinstance(data, CourierResponse):
            return data
        tracking_id = data.get("trackingNumber")
        if not tracking_id:
            return CourierResponse(success=False, error="Fargo accepted the shipment without a tracking number")

        logger.info("Fargo shipment created", order_id=request.order_id, tracking_id=tracking_id)
        # Fargo's creation response carries no ETAs; fall back to the profile's service window
        now = datetime.now(UTC)
        return CourierResponse(
            success=True,
            tracking_id=str(tracking_id),
            estimated_pickup=now,
            estimated_delivery=now + timedelta(hours=self.profile.estimated_delivery_hours),
        )

    def get_delivery_status(self, tracking_id: str) -> CourierStatus:
        response = self._request("GET", f"/shipments/{tracking_id}")
        data = self._read_status(response, tracking_id)
        status = str(data.get("status", ""))
        recipient = data.get("recipient")
        return CourierStatus(
            tracking_id=tracking_id,
            status=status,
            description=f"Shipment Status: {status}",
            location=recipient.get("city") if isinstance(recipient, dict) else None,
            timestamp=parse_timestamp(data.get("updatedAt")) or datetime.now(UTC),
        )

    def cancel_delivery(self, tracking_id: str) -> bool:
        logger.warning("Fargo API v1 has no cancellation endpoint", tracking_id=tracking_id)
        return False

    def request_quote(self, request: DeliveryRequest) -> CourierQuote:
        if not request.dropoff.city or not request.dropoff.suburb:
            return CourierQuote(
                success=False,
                error="City and suburb are required for Fargo Courier",
                error_code="INVALID_LOCATION",
            )
        return super().request_quote(request)
