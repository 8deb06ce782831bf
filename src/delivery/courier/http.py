"""Shared plumbing for HTTP courier adapters.

Wraps an ``httpx.Client`` so that transport failures and timeouts surface as
``CourierTransportError`` and every adapter verifies webhooks the same way
(HMAC-SHA256 of the raw body with the provider's shared secret).
"""

import hashlib
import hmac
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import httpx
import structlog

from delivery.config import ProviderProfile
from delivery.courier.port import CourierAPIProvider, CourierQuote, CourierResponse, DeliveryRequest
from delivery.errors import CourierRejected, CourierStatusNotFound, CourierTransportError

logger = structlog.get_logger(__name__)


def parse_timestamp(value) -> datetime | None:
    """Parse a courier timestamp; naive values are taken as UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparseable courier timestamp", value=str(value))
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in (408, 429)


def error_message(response: httpx.Response) -> str:
    """Best-effort human readable error from a courier response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return f"HTTP {response.status_code}: {body[key]}"
    return f"HTTP {response.status_code}: {response.reason_phrase}"


class HttpCourierAPI(CourierAPIProvider):
    """Base class for couriers spoken to over HTTP/JSON."""

    def __init__(
        self,
        profile: ProviderProfile,
        base_url: str,
        headers: dict[str, str],
        webhook_secret: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.provider_id = profile.provider_id
        self.profile = profile
        self.base_url = base_url.rstrip("/")
        self._webhook_secret = webhook_secret
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise CourierTransportError(self.provider_id, f"timed out calling {method} {path}") from exc
        except httpx.TransportError as exc:
            raise CourierTransportError(self.provider_id, f"could not reach courier: {exc}") from exc

    def _json_object(self, response: httpx.Response) -> dict | None:
        """The response body as a JSON object, or ``None`` when it is anything else."""
        try:
            body = response.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    def _read_created(self, response: httpx.Response, order_id: str) -> dict | CourierResponse:
        """Body of an accepted shipment, or a failed ``CourierResponse`` when it cannot be read.

        The courier answered 2xx, so a shipment may exist on its side.
        """
        data = self._json_object(response)
        if data is not None:
            return data
        logger.error(
            "Unreadable courier response to accepted shipment, check the courier for a booking",
            provider=self.provider_id,
            order_id=order_id,
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
        )
        return CourierResponse(
            success=False,
            error=f"unreadable courier response (HTTP {response.status_code}); shipment may exist with {self.provider_id}",
            transient=False,
        )

    def _read_status(self, response: httpx.Response, tracking_id: str) -> dict:
        """Body of a status lookup; 404 and other failures raise the matching error."""
        if response.status_code == 404:
            raise CourierStatusNotFound(self.provider_id, tracking_id)
        if not response.is_success:
            if is_transient_status(response.status_code):
                raise CourierTransportError(self.provider_id, error_message(response))
            raise CourierRejected(self.provider_id, error_message(response))
        data = self._json_object(response)
        if data is None:
            raise CourierTransportError(
                self.provider_id, f"unreadable status response for {tracking_id} (HTTP {response.status_code})"
            )
        return data

    def _submit(self, path: str, payload: dict, headers: dict[str, str] | None = None) -> httpx.Response | CourierResponse:
        """POST a shipment; a failure is returned as a failed ``CourierResponse``."""
        try:
            response = self._request("POST", path, json=payload, headers=headers)
        except CourierTransportError as exc:
            logger.warning("Courier submission failed in transport", provider=self.provider_id, error=str(exc))
            return CourierResponse(success=False, error=str(exc), transient=True)

        if response.is_success:
            return response

        message = error_message(response)
        logger.warning(
            "Courier refused shipment",
            provider=self.provider_id,
            status_code=response.status_code,
            error=message,
        )
        return CourierResponse(success=False, error=message, transient=is_transient_status(response.status_code))

    def request_quote(self, request: DeliveryRequest) -> CourierQuote:
        amount = self.profile.base_rate + self.profile.per_kg_rate * (request.weight_kg or 0.0)
        return CourierQuote(
            success=True,
            amount=round(amount, 2),
            currency=self.profile.currency,
            estimated_delivery=datetime.now(UTC) + timedelta(hours=self.profile.estimated_delivery_hours),
            quote_id=f"EST-{uuid4().hex[:12].upper()}",
        )

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        if not self._webhook_secret or not signature:
            return False
        expected = hmac.new(self._webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        if signature.startswith("sha256="):
            signature = signature[len("sha256=") :]
        return hmac.compare_digest(expected, signature)
