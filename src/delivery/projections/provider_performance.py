"""Provider performance — courier reliability view for operators."""

from datetime import UTC, datetime

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, Integer
from protean.utils.globals import current_domain

from delivery.delivery.attempt import DispatchAttempt
from delivery.delivery.delivery import Delivery
from delivery.delivery.events import (
    DeliveryCancelled,
    DeliveryDelivered,
    DeliveryDispatched,
    DeliveryFailed,
    DispatchFailed,
)
from delivery.domain import delivery
from delivery.errors import DuplicateDispatch


@delivery.projection
class ProviderPerformanceView:
    """Delivery outcomes aggregated per courier."""

    provider_id = Identifier(identifier=True, required=True)
    dispatched_count = Integer(default=0)
    dispatch_failure_count = Integer(default=0)
    delivered_count = Integer(default=0)
    failed_count = Integer(default=0)
    cancelled_count = Integer(default=0)
    timed_deliveries = Integer(default=0)
    total_delivery_minutes = Float(default=0.0)
    average_delivery_minutes = Float()
    updated_at = DateTime()


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def _view_for(provider_id: str) -> ProviderPerformanceView:
    repo = current_domain.repository_for(ProviderPerformanceView)
    try:
        return repo.get(provider_id)
    except ObjectNotFoundError:
        return ProviderPerformanceView(
            provider_id=provider_id,
            dispatched_count=0,
            dispatch_failure_count=0,
            delivered_count=0,
            failed_count=0,
            cancelled_count=0,
            timed_deliveries=0,
            total_delivery_minutes=0.0,
        )


@delivery.projector(projector_for=ProviderPerformanceView, aggregates=[Delivery, DispatchAttempt])
class ProviderPerformanceProjector:
    @on(DeliveryDispatched)
    def on_delivery_dispatched(self, event):
        view = _view_for(event.provider_id)
        view.dispatched_count = (view.dispatched_count or 0) + 1
        view.updated_at = event.dispatched_at
        current_domain.repository_for(ProviderPerformanceView).add(view)

    @on(DispatchFailed)
    def on_dispatch_failed(self, event):
        if event.error_kind == DuplicateDispatch.__name__:
            # Lost a concurrent dispatch race; the courier was never called
            return
        view = _view_for(event.provider_id)
        view.dispatch_failure_count = (view.dispatch_failure_count or 0) + 1
        view.updated_at = event.failed_at
        current_domain.repository_for(ProviderPerformanceView).add(view)

    @on(DeliveryDelivered)
    def on_delivery_delivered(self, event):
        view = _view_for(event.provider_id)
        view.delivered_count = (view.delivered_count or 0) + 1
        if event.picked_up_at:
            minutes = (_aware(event.delivered_at) - _aware(event.picked_up_at)).total_seconds() / 60
            view.timed_deliveries = (view.timed_deliveries or 0) + 1
            view.total_delivery_minutes = (view.total_delivery_minutes or 0.0) + minutes
            view.average_delivery_minutes = view.total_delivery_minutes / view.timed_deliveries
        view.updated_at = event.delivered_at
        current_domain.repository_for(ProviderPerformanceView).add(view)

    @on(DeliveryFailed)
    def on_delivery_failed(self, event):
        view = _view_for(event.provider_id)
        view.failed_count = (view.failed_count or 0) + 1
        view.updated_at = event.failed_at
        current_domain.repository_for(ProviderPerformanceView).add(view)

    @on(DeliveryCancelled)
    def on_delivery_cancelled(self, event):
        view = _view_for(event.provider_id)
        view.cancelled_count = (view.cancelled_count or 0) + 1
        view.updated_at = event.cancelled_at
        current_domain.repository_for(ProviderPerformanceView).add(view)
