"""Orchestrator factory.

Provides get_orchestrator() / set_orchestrator() so the API, event handlers
and polling job share one orchestrator built from the environment, and tests
can swap in one wired with fake couriers and a fake order gateway.
"""

import structlog

from delivery.config import DeliverySettings
from delivery.courier import build_registry
from delivery.orchestrator import DeliveryOrchestrator
from delivery.orders.fake_adapter import FakeOrderGateway
from delivery.orders.http_adapter import HttpOrderGateway
from delivery.orders.port import OrderGateway
from delivery.store import RepositoryDeliveryStore

logger = structlog.get_logger(__name__)

_current_orchestrator: DeliveryOrchestrator | None = None


def build_order_gateway(settings: DeliverySettings) -> OrderGateway:
    if settings.order_service_url:
        return HttpOrderGateway(settings.order_service_url, timeout=settings.courier_timeout_seconds)
    logger.warning("ORDER_SERVICE_URL not set, using in-memory order gateway")
    return FakeOrderGateway()


def build_orchestrator(settings: DeliverySettings | None = None) -> DeliveryOrchestrator:
    settings = settings or DeliverySettings.from_env()
    registry = build_registry(settings)
    logger.info("Courier providers configured", providers=registry.provider_ids())
    return DeliveryOrchestrator(
        registry=registry,
        store=RepositoryDeliveryStore(),
        orders=build_order_gateway(settings),
        settings=settings,
    )


def get_orchestrator() -> DeliveryOrchestrator:
    """Return the current orchestrator, building it from the environment on first use."""
    global _current_orchestrator
    if _current_orchestrator is None:
        _current_orchestrator = build_orchestrator()
    return _current_orchestrator


def set_orchestrator(orchestrator: DeliveryOrchestrator) -> None:
    """Override the active orchestrator (useful for tests)."""
    global _current_orchestrator
    _current_orchestrator = orchestrator


def reset_orchestrator() -> None:
    """Drop the current orchestrator; the next call rebuilds it."""
    global _current_orchestrator
    if _current_orchestrator is not None:
        _current_orchestrator.shutdown()
        _current_orchestrator.registry.close()
    _current_orchestrator = None
