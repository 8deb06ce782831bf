from datetime import UTC, datetime

import pytest
from delivery.config import DeliverySettings
from delivery.courier.fake_adapter import FakeCourier
from delivery.courier.port import Party
from delivery.courier.registry import ProviderRegistry
from delivery.orchestrator import DeliveryOrchestrator
from delivery.orders.fake_adapter import FakeOrderGateway
from delivery.orders.port import OrderSnapshot
from delivery.store import RepositoryDeliveryStore
from delivery.wiring import reset_orchestrator, set_orchestrator
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def delivery_bed():
    from delivery.domain import delivery

    bed = DomainFixture(delivery)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(delivery_bed):
    with delivery_bed.domain_context():
        yield


VENDOR = Party(
    name="Mama Mboga Stores",
    phone="+254700000001",
    address="Moi Avenue 12",
    city="Nairobi",
    suburb="CBD",
    building="Kimathi House",
)

CUSTOMER = Party(
    name="Achieng Otieno",
    phone="+254711000002",
    address="Argwings Kodhek Road 4",
    city="Nairobi",
    suburb="Woodley/Kenyatta Golf Course Ward",
    postal_code="00100",
)


def _order(order_id, status, courier_id, **overrides) -> OrderSnapshot:
    fields = {
        "order_id": order_id,
        "status": status,
        "vendor": VENDOR,
        "customer": CUSTOMER,
        "total_amount": 3500.0,
        "delivery_fee": 200.0,
        "courier_id": courier_id,
        "package_description": "2x kikoi, 1x kiondo",
        "weight_kg": 1.5,
        "special_instructions": "Call on arrival",
    }
    fields.update(overrides)
    return OrderSnapshot(**fields)


@pytest.fixture()
def make_order(orders):
    """Register an order with the fake order gateway."""

    def _make(order_id="ord-001", status="paid", courier_id="g4s", **overrides):
        return orders.add_order(_order(order_id, status, courier_id, **overrides))

    return _make


@pytest.fixture()
def g4s():
    return FakeCourier("g4s")


@pytest.fixture()
def fargo():
    return FakeCourier("fargo_courier")


@pytest.fixture()
def registry(g4s, fargo):
    registry = ProviderRegistry()
    registry.register(g4s)
    registry.register(fargo)
    return registry


@pytest.fixture()
def orders():
    return FakeOrderGateway()


@pytest.fixture()
def settings():
    return DeliverySettings(
        enabled_providers=["g4s", "fargo_courier"],
        courier_timeout_seconds=1.0,
        courier_max_workers=4,
    )


@pytest.fixture()
def orchestrator(registry, orders, settings):
    orch = DeliveryOrchestrator(
        registry=registry,
        store=RepositoryDeliveryStore(),
        orders=orders,
        settings=settings,
    )
    set_orchestrator(orch)
    yield orch
    reset_orchestrator()


@pytest.fixture()
def dispatched(orchestrator, make_order):
    """A paid order dispatched to g4s; returns the delivery."""
    make_order("ord-dispatched")
    return orchestrator.dispatch("ord-dispatched")


@pytest.fixture()
def advance(orchestrator):
    """Feed courier webhooks for a delivery in order; returns the reloaded delivery."""

    def _advance(dlv, *statuses):
        for status in statuses:
            orchestrator.ingest_status(
                dlv.provider_id,
                dlv.tracking_id,
                status,
                occurred_at=datetime.now(UTC),
            )
        return orchestrator.get_delivery(str(dlv.id))

    return _advance
