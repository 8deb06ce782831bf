"""Integration tests for the HTTP order gateway, against a mocked order service."""

import json

import httpx
import pytest
from delivery.errors import OrderCallbackError, OrderNotFound
from delivery.orders.http_adapter import HttpOrderGateway

ORDER = {
    "id": "ord-700",
    "status": "ready_for_dispatch",
    "total_amount": "4200.50",
    "delivery_fee": 250,
    "courier_id": "fargo_courier",
    "package_description": "Sufuria set",
    "weight_kg": None,
    "vendor": {"name": "Jiko Supplies", "phone": "+254700000009", "address": "Luthuli Ave", "city": "Nairobi"},
    "customer": {"name": "Wanjiru", "phone": "+254722000003", "address": "Ngong Rd 5", "suburb": "Kilimani Ward"},
}


def _gateway(handler):
    requests = []

    def record(request):
        requests.append(request)
        return handler(request)

    return HttpOrderGateway("https://orders.test/internal/", transport=httpx.MockTransport(record)), requests


class TestLoadOrder:
    def test_parses_snapshot(self):
        gateway, requests = _gateway(lambda r: httpx.Response(200, json=ORDER))

        order = gateway.load_order("ord-700")

        assert requests[0].url.path == "/internal/orders/ord-700"
        assert order.dispatchable
        assert order.total_amount == 4200.5
        assert order.delivery_fee == 250.0
        assert order.weight_kg is None
        assert order.courier_id == "fargo_courier"
        assert order.vendor.city == "Nairobi"
        assert order.customer.suburb == "Kilimani Ward"

    def test_missing_order(self):
        gateway, _ = _gateway(lambda r: httpx.Response(404))
        with pytest.raises(OrderNotFound):
            gateway.load_order("ord-missing")

    def test_order_service_down(self):
        gateway, _ = _gateway(lambda r: httpx.Response(500))
        with pytest.raises(OrderCallbackError):
            gateway.load_order("ord-700")


class TestWriteBacks:
    def test_mark_dispatched(self):
        gateway, requests = _gateway(lambda r: httpx.Response(204))
        gateway.mark_order_dispatched("ord-700", "dlv-1")

        sent = requests[0]
        assert sent.method == "PUT"
        assert sent.url.path == "/internal/orders/ord-700/delivery-status"
        assert json.loads(sent.content) == {"status": "dispatched", "delivery_id": "dlv-1"}

    def test_mark_delivery_failed(self):
        gateway, requests = _gateway(lambda r: httpx.Response(200))
        gateway.mark_order_delivery_failed("ord-700", "Recipient not available")
        assert json.loads(requests[0].content) == {"status": "delivery_failed", "reason": "Recipient not available"}

    def test_mark_awaiting_dispatch(self):
        gateway, requests = _gateway(lambda r: httpx.Response(204))
        gateway.mark_order_awaiting_dispatch("ord-700", "Reassignment to g4s failed")
        assert json.loads(requests[0].content) == {"status": "awaiting_dispatch", "reason": "Reassignment to g4s failed"}

    def test_refused_update_raises(self):
        gateway, _ = _gateway(lambda r: httpx.Response(409))
        with pytest.raises(OrderCallbackError):
            gateway.mark_order_delivered("ord-700")

    def test_unreachable_service_raises(self):
        def boom(request):
            raise httpx.ConnectError("down", request=request)

        gateway, _ = _gateway(boom)
        with pytest.raises(OrderCallbackError):
            gateway.mark_order_delivered("ord-700")
