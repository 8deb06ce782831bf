"""Delivery domain events — immutable facts about courier deliveries.

All events are past tense, versioned, and carry enough data for the
tracking and provider performance projectors.
"""

from protean.fields import DateTime, Identifier, Integer, String

from delivery.domain import delivery


@delivery.event(part_of="Delivery")
class DeliveryDispatched:
    """A courier accepted a shipment and a delivery was opened for the order."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_id = String(required=True)
    tracking_id = String(required=True)
    attempt = Integer(required=True)
    estimated_delivery = DateTime()
    dispatched_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryStatusChanged:
    """The courier reported forward progress on a delivery."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_id = String(required=True)
    previous_status = String(required=True)
    status = String(required=True)
    description = String(max_length=500)
    location = String(max_length=200)
    source = String(required=True)
    changed_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryDelivered:
    """The parcel reached the customer."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_id = String(required=True)
    picked_up_at = DateTime()
    delivered_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryFailed:
    """The courier gave up on the delivery."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_id = String(required=True)
    reason = String(max_length=500)
    failed_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryCancelled:
    """The delivery was cancelled by an operator or customer."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_id = String(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryAnomalyRecorded:
    """The courier sent something that could not be applied (unmapped code, denied cancellation)."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_id = String(required=True)
    raw_status = String(max_length=100)
    description = String(max_length=500)
    recorded_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliverySuperseded:
    """The delivery was replaced by a new one with another courier."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    superseded_by = Identifier(required=True)
    superseded_at = DateTime(required=True)


@delivery.event(part_of="DispatchAttempt")
class DispatchFailed:
    """A courier submission failed; the order is still awaiting dispatch."""

    __version__ = 1

    attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_id = String(required=True)
    attempt = Integer(required=True)
    error_kind = String(required=True)
    error_message = String(max_length=500)
    failed_at = DateTime(required=True)
