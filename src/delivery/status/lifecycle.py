"""Normalized delivery lifecycle.

The internal vocabulary every courier status is mapped onto, with an
explicit total order used for advancement-only status changes.

    pending → pickup_scheduled → picked_up → in_transit → out_for_delivery → delivered
    any non-terminal status → {failed, cancelled}
"""

from enum import Enum


class DeliveryStatus(Enum):
    PENDING = "pending"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def advances_to(self, other: "DeliveryStatus") -> bool:
        """True when moving from this status to ``other`` is forward progress."""
        if self.is_terminal:
            return False
        if other.is_terminal:
            return True
        return other.rank > self.rank


# Terminal statuses share the highest rank: none of them may follow another.
_RANK = {
    DeliveryStatus.PENDING: 0,
    DeliveryStatus.PICKUP_SCHEDULED: 1,
    DeliveryStatus.PICKED_UP: 2,
    DeliveryStatus.IN_TRANSIT: 3,
    DeliveryStatus.OUT_FOR_DELIVERY: 4,
    DeliveryStatus.DELIVERED: 5,
    DeliveryStatus.FAILED: 5,
    DeliveryStatus.CANCELLED: 5,
}

TERMINAL_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(s for s in DeliveryStatus if s not in TERMINAL_STATUSES)

# Customer-facing labels for the tracking page
CUSTOMER_LABELS = {
    DeliveryStatus.PENDING: "Preparing for pickup",
    DeliveryStatus.PICKUP_SCHEDULED: "Courier pickup scheduled",
    DeliveryStatus.PICKED_UP: "Picked up by courier",
    DeliveryStatus.IN_TRANSIT: "In transit",
    DeliveryStatus.OUT_FOR_DELIVERY: "Out for delivery",
    DeliveryStatus.DELIVERED: "Delivered",
    DeliveryStatus.FAILED: "Delivery failed",
    DeliveryStatus.CANCELLED: "Delivery cancelled",
}
