"""Application tests for the status polling job."""

import pytest
from delivery.courier.fake_adapter import FakeCourier
from delivery.courier.registry import ProviderRegistry
from delivery.errors import CourierStatusNotFound, CourierTransportError
from delivery.orchestrator import DeliveryOrchestrator, IngestOutcome
from delivery.polling import StatusPoller
from delivery.store import RepositoryDeliveryStore


@pytest.fixture()
def poller(orchestrator):
    return StatusPoller(orchestrator, max_attempts=3, backoff_min=0.01, backoff_max=0.02)


@pytest.fixture()
def fargo_delivery(orchestrator, make_order):
    make_order("ord-400", courier_id="fargo_courier")
    return orchestrator.dispatch("ord-400")


class TestPollDelivery:
    def test_applies_courier_status(self, orchestrator, fargo_delivery, fargo):
        fargo.set_status(fargo_delivery.tracking_id, "collected")

        result = orchestrator.poll_delivery(str(fargo_delivery.id))

        assert result.outcome == IngestOutcome.APPLIED
        dlv = orchestrator.get_delivery(str(fargo_delivery.id))
        assert dlv.status == "picked_up"
        assert dlv.history[-1].source == "courier_poll"
        assert dlv.history[-1].location == "Nairobi Hub"

    def test_terminal_delivery_is_not_polled(self, orchestrator, fargo_delivery, fargo):
        orchestrator.record_manual_status(str(fargo_delivery.id), "delivered")
        assert orchestrator.poll_delivery(str(fargo_delivery.id)) is None
        assert fargo.calls_to("get_delivery_status") == []

    def test_unknown_tracking_id_raises(self, orchestrator, fargo_delivery, fargo):
        fargo.shipments.clear()
        with pytest.raises(CourierStatusNotFound):
            orchestrator.poll_delivery(str(fargo_delivery.id))


class TestPollCycle:
    def test_polls_only_couriers_without_webhooks(self, poller, orchestrator, fargo_delivery, dispatched, g4s, fargo):
        fargo.set_status(fargo_delivery.tracking_id, "in_warehouse")

        summary = poller.poll_once()

        assert summary.checked == 1
        assert summary.applied == 1
        assert g4s.calls_to("get_delivery_status") == []
        assert orchestrator.get_delivery(str(fargo_delivery.id)).status == "in_transit"

    def test_unchanged_status_is_counted(self, poller, fargo_delivery, fargo):
        fargo.set_status(fargo_delivery.tracking_id, "collected")
        poller.poll_once()

        summary = poller.poll_once()

        assert summary.applied == 0
        assert summary.unchanged == 1

    def test_transient_errors_are_retried(self, poller, orchestrator, fargo_delivery, fargo, monkeypatch):
        fargo.set_status(fargo_delivery.tracking_id, "collected")
        real = fargo.get_delivery_status
        failures = iter([CourierTransportError("fargo_courier", "HTTP 502: Bad Gateway")])

        def flaky(tracking_id):
            error = next(failures, None)
            if error is not None:
                raise error
            return real(tracking_id)

        monkeypatch.setattr(fargo, "get_delivery_status", flaky)

        summary = poller.poll_once()

        assert summary.applied == 1
        assert summary.failed == 0

    def test_unreachable_courier_is_reported_not_raised(self, poller, fargo_delivery, fargo):
        fargo.configure(reachable=False)

        summary = poller.poll_once()

        assert summary.failed == 1
        assert str(fargo_delivery.id) in summary.failures
        assert len(fargo.calls_to("get_delivery_status")) == 3

    def test_no_polled_couriers(self, orders, settings):
        registry = ProviderRegistry()
        registry.register(FakeCourier("g4s"))
        orchestrator = DeliveryOrchestrator(registry, RepositoryDeliveryStore(), orders, settings=settings)
        try:
            assert StatusPoller(orchestrator).poll_once().checked == 0
        finally:
            orchestrator.shutdown()
