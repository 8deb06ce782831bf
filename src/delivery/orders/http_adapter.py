"""HTTP order gateway — talks to the order service over its internal REST API."""

import httpx
import structlog

from delivery.courier.port import Party
from delivery.errors import OrderCallbackError, OrderNotFound
from delivery.orders.port import OrderGateway, OrderSnapshot, OrderStatus

logger = structlog.get_logger(__name__)


def _party(data: dict | None) -> Party:
    data = data or {}
    return Party(
        name=data.get("name") or "",
        phone=data.get("phone") or "",
        address=data.get("address") or "",
        city=data.get("city"),
        suburb=data.get("suburb"),
        building=data.get("building"),
        postal_code=data.get("postal_code"),
    )


def _float(value) -> float | None:
    return float(value) if value not in (None, "") else None


class HttpOrderGateway(OrderGateway):
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url.rstrip("/"), timeout=httpx.Timeout(timeout), transport=transport)

    def close(self) -> None:
        self._client.close()

    def load_order(self, order_id: str) -> OrderSnapshot:
        try:
            response = self._client.get(f"/orders/{order_id}")
        except httpx.HTTPError as exc:
            raise OrderCallbackError(f"Could not load order {order_id}: {exc}") from exc
        if response.status_code == 404:
            raise OrderNotFound(f"Order {order_id} does not exist")
        if not response.is_success:
            raise OrderCallbackError(f"Could not load order {order_id}: HTTP {response.status_code}")

        data = response.json()
        return OrderSnapshot(
            order_id=str(data.get("id", order_id)),
            status=data["status"],
            vendor=_party(data.get("vendor")),
            customer=_party(data.get("customer")),
            total_amount=float(data.get("total_amount") or 0.0),
            delivery_fee=_float(data.get("delivery_fee")),
            courier_id=data.get("courier_id"),
            package_description=data.get("package_description") or "",
            weight_kg=_float(data.get("weight_kg")),
            special_instructions=data.get("special_instructions"),
        )

    def _update(self, order_id: str, payload: dict) -> None:
        try:
            response = self._client.put(f"/orders/{order_id}/delivery-status", json=payload)
        except httpx.HTTPError as exc:
            raise OrderCallbackError(f"Order service unreachable for {order_id}: {exc}") from exc
        if not response.is_success:
            raise OrderCallbackError(f"Order service refused update for {order_id}: HTTP {response.status_code}")
        logger.info("Order delivery status updated", order_id=order_id, status=payload["status"])

    def mark_order_dispatched(self, order_id: str, delivery_id: str) -> None:
        self._update(order_id, {"status": OrderStatus.DISPATCHED.value, "delivery_id": delivery_id})

    def mark_order_delivered(self, order_id: str) -> None:
        self._update(order_id, {"status": OrderStatus.DELIVERED.value})

    def mark_order_delivery_failed(self, order_id: str, reason: str) -> None:
        self._update(order_id, {"status": OrderStatus.DELIVERY_FAILED.value, "reason": reason})

    def mark_order_awaiting_dispatch(self, order_id: str, reason: str) -> None:
        self._update(order_id, {"status": OrderStatus.AWAITING_DISPATCH.value, "reason": reason})
