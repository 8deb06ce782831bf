"""Delivery tracking — customer-facing view of an order's current delivery.

Keyed by order id. After a reassignment, events from the superseded
delivery are ignored so the customer only ever sees the current courier.
Failure text is customer language; internal error kinds never reach it.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from delivery.config import PROVIDER_PROFILES
from delivery.delivery.delivery import Delivery
from delivery.delivery.events import (
    DeliveryCancelled,
    DeliveryDelivered,
    DeliveryDispatched,
    DeliveryFailed,
    DeliveryStatusChanged,
)
from delivery.domain import delivery
from delivery.status.lifecycle import CUSTOMER_LABELS, DeliveryStatus


@delivery.projection
class DeliveryTrackingView:
    order_id = Identifier(identifier=True, required=True)
    delivery_id = Identifier(required=True)
    courier_name = String()
    tracking_id = String()
    status = String(required=True)
    status_label = String(required=True)
    current_location = String()
    failure_message = String(max_length=600)
    estimated_delivery = DateTime()
    delivered_at = DateTime()
    updated_at = DateTime()


def _courier_name(provider_id: str) -> str:
    profile = PROVIDER_PROFILES.get(provider_id)
    return profile.name if profile else provider_id


def _current_view(event):
    """The order's view, or None when the event belongs to a superseded delivery."""
    try:
        view = current_domain.repository_for(DeliveryTrackingView).get(event.order_id)
    except ObjectNotFoundError:
        return None
    if str(view.delivery_id) != str(event.delivery_id):
        return None
    return view


@delivery.projector(projector_for=DeliveryTrackingView, aggregates=[Delivery])
class DeliveryTrackingProjector:
    @on(DeliveryDispatched)
    def on_delivery_dispatched(self, event):
        current_domain.repository_for(DeliveryTrackingView).add(
            DeliveryTrackingView(
                order_id=event.order_id,
                delivery_id=event.delivery_id,
                courier_name=_courier_name(event.provider_id),
                tracking_id=event.tracking_id,
                status=DeliveryStatus.PENDING.value,
                status_label=CUSTOMER_LABELS[DeliveryStatus.PENDING],
                estimated_delivery=event.estimated_delivery,
                updated_at=event.dispatched_at,
            )
        )

    @on(DeliveryStatusChanged)
    def on_delivery_status_changed(self, event):
        view = _current_view(event)
        if view is None:
            return
        view.status = event.status
        view.status_label = CUSTOMER_LABELS[DeliveryStatus(event.status)]
        if event.location:
            view.current_location = event.location
        view.updated_at = event.changed_at
        current_domain.repository_for(DeliveryTrackingView).add(view)

    @on(DeliveryDelivered)
    def on_delivery_delivered(self, event):
        view = _current_view(event)
        if view is None:
            return
        view.delivered_at = event.delivered_at
        current_domain.repository_for(DeliveryTrackingView).add(view)

    @on(DeliveryFailed)
    def on_delivery_failed(self, event):
        view = _current_view(event)
        if view is None:
            return
        view.failure_message = f"Delivery failed — {event.reason}" if event.reason else "Delivery failed"
        current_domain.repository_for(DeliveryTrackingView).add(view)

    @on(DeliveryCancelled)
    def on_delivery_cancelled(self, event):
        view = _current_view(event)
        if view is None:
            return
        view.failure_message = "Delivery cancelled"
        current_domain.repository_for(DeliveryTrackingView).add(view)
