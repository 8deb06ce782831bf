"""Domain tests for the Delivery aggregate: opening, advancement, history."""

from datetime import UTC, datetime, timedelta

import pytest
from delivery.delivery.delivery import Delivery, UpdateSource
from delivery.delivery.events import (
    DeliveryAnomalyRecorded,
    DeliveryCancelled,
    DeliveryDelivered,
    DeliveryDispatched,
    DeliveryFailed,
    DeliveryStatusChanged,
    DeliverySuperseded,
)
from delivery.errors import StatusRegression
from delivery.status.lifecycle import DeliveryStatus
from protean.exceptions import ValidationError


def _open(**overrides):
    fields = {
        "order_id": "ord-001",
        "provider_id": "g4s",
        "attempt": 1,
        "idempotency_key": "ord-001:1",
        "tracking_id": "G4S-0001",
        "pickup_address": "Kimathi House, Moi Avenue 12, CBD, Nairobi",
        "delivery_address": "Argwings Kodhek Road 4, Woodley, Nairobi",
        "courier_name": "G4S Courier",
        "delivery_fee": 200.0,
    }
    fields.update(overrides)
    return Delivery.open(**fields)


def _events_of(dlv, kind):
    return [e for e in dlv._events if isinstance(e, kind)]


class TestOpen:
    def test_starts_pending(self):
        dlv = _open()
        assert dlv.status == DeliveryStatus.PENDING.value
        assert dlv.is_active

    def test_records_first_update(self):
        dlv = _open()
        assert len(dlv.history) == 1
        first = dlv.history[0]
        assert first.sequence == 1
        assert first.status == "pending"
        assert first.source == UpdateSource.SYSTEM.value
        assert "G4S Courier" in first.description

    def test_raises_dispatched_event(self):
        dlv = _open()
        [event] = _events_of(dlv, DeliveryDispatched)
        assert event.delivery_id == str(dlv.id)
        assert event.order_id == "ord-001"
        assert event.tracking_id == "G4S-0001"
        assert event.attempt == 1


class TestApplyStatus:
    def test_advances_and_appends_update(self):
        dlv = _open()
        assert dlv.apply_status(DeliveryStatus.PICKED_UP, location="CBD", raw_status="picked_up") is True
        assert dlv.status == "picked_up"
        assert dlv.last_raw_status == "picked_up"
        assert [u.status for u in dlv.history] == ["pending", "picked_up"]
        assert dlv.history[-1].location == "CBD"

    def test_sets_pickup_time(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.PICKED_UP)
        assert dlv.actual_pickup_time is not None

    def test_replay_of_current_status_is_a_no_op(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.IN_TRANSIT)
        events_before = len(dlv._events)

        assert dlv.apply_status(DeliveryStatus.IN_TRANSIT) is False
        assert len(dlv.history) == 2
        assert len(dlv._events) == events_before

    def test_backwards_move_raises_regression(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.IN_TRANSIT)

        with pytest.raises(StatusRegression) as exc:
            dlv.apply_status(DeliveryStatus.PENDING)

        assert exc.value.current == "in_transit"
        assert exc.value.incoming == "pending"
        assert dlv.status == "in_transit"
        assert [u.status for u in dlv.history] == ["pending", "in_transit"]

    def test_terminal_status_is_final(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.DELIVERED)
        with pytest.raises(StatusRegression):
            dlv.apply_status(DeliveryStatus.FAILED)

    def test_raises_status_changed_event(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.OUT_FOR_DELIVERY, source=UpdateSource.COURIER_POLL)
        [event] = _events_of(dlv, DeliveryStatusChanged)
        assert event.previous_status == "pending"
        assert event.status == "out_for_delivery"
        assert event.source == "courier_poll"

    def test_delivered_records_time_and_event(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.PICKED_UP)
        dlv.apply_status(DeliveryStatus.DELIVERED)
        assert dlv.actual_delivery_time is not None
        [event] = _events_of(dlv, DeliveryDelivered)
        assert event.picked_up_at == dlv.actual_pickup_time

    def test_failed_records_reason(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.FAILED, description="Recipient unreachable")
        assert dlv.failure_reason == "Recipient unreachable"
        [event] = _events_of(dlv, DeliveryFailed)
        assert event.reason == "Recipient unreachable"

    def test_update_timestamps_never_decrease(self):
        dlv = _open()
        future = datetime.now(UTC) + timedelta(minutes=5)
        dlv.history[0].timestamp = future

        dlv.apply_status(DeliveryStatus.PICKED_UP)

        timestamps = [u.timestamp for u in dlv.history]
        assert timestamps == sorted(timestamps)

    def test_courier_reported_time_is_kept_separately(self):
        dlv = _open()
        reported = datetime(2024, 3, 1, 9, 30)
        dlv.apply_status(DeliveryStatus.PICKED_UP, reported_at=reported)
        assert dlv.history[-1].reported_at == reported.replace(tzinfo=UTC)


class TestCancel:
    def test_cancel_active_delivery(self):
        dlv = _open()
        dlv.cancel("Customer changed their mind")
        assert dlv.status == "cancelled"
        assert dlv.failure_reason == "Customer changed their mind"
        [event] = _events_of(dlv, DeliveryCancelled)
        assert event.reason == "Customer changed their mind"

    def test_cannot_cancel_terminal_delivery(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.DELIVERED)
        with pytest.raises(ValidationError) as exc:
            dlv.cancel("Too late")
        assert "Cannot cancel delivery in delivered state" in exc.value.messages["status"]


class TestAnomaly:
    def test_flagged_update_keeps_status(self):
        dlv = _open()
        dlv.apply_status(DeliveryStatus.IN_TRANSIT)

        dlv.record_anomaly("Unmapped courier status 'held'", source=UpdateSource.COURIER_WEBHOOK, raw_status="held")

        assert dlv.status == "in_transit"
        last = dlv.history[-1]
        assert last.flagged is True
        assert last.status == "in_transit"
        assert last.raw_status == "held"
        [event] = _events_of(dlv, DeliveryAnomalyRecorded)
        assert event.raw_status == "held"


class TestSupersede:
    def test_links_terminal_delivery_to_successor(self):
        dlv = _open()
        dlv.cancel("Reassigned")
        dlv.supersede("dlv-new")
        assert dlv.superseded_by == "dlv-new"
        assert dlv.history[-1].description == "Superseded by delivery dlv-new"
        [event] = _events_of(dlv, DeliverySuperseded)
        assert event.superseded_by == "dlv-new"

    def test_active_delivery_cannot_be_superseded(self):
        dlv = _open()
        with pytest.raises(ValidationError):
            dlv.supersede("dlv-new")

    def test_supersede_only_once(self):
        dlv = _open()
        dlv.cancel("Reassigned")
        dlv.supersede("dlv-new")
        with pytest.raises(ValidationError):
            dlv.supersede("dlv-newer")
