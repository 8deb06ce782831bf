"""Cross-domain event contracts for Ordering domain events.

These classes define the event shape for consumption by the Delivery
domain. They are registered as external events via
domain.register_external_event() with matching __type__ strings so
Protean's stream deserialization works correctly.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Identifier, String


class OrderReadyForDispatch(BaseEvent):
    """A paid order is packed and waiting for a courier."""

    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = String()  # courier chosen at checkout
    ready_at = DateTime(required=True)


class OrderCancelled(BaseEvent):
    """An order was cancelled."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    cancelled_at = DateTime(required=True)
