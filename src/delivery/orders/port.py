"""Order gateway port — the delivery context's narrow view of the order subsystem.

The delivery context reads an order snapshot when dispatching and writes back
four outcomes: dispatched, delivered, delivery failed, and back to awaiting
dispatch when a reassignment leaves the order without a courier.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from delivery.courier.port import Party


class OrderStatus(Enum):
    PAID = "paid"
    CONFIRMED = "confirmed"
    READY_FOR_PICKUP = "ready_for_pickup"
    READY_FOR_DISPATCH = "ready_for_dispatch"
    AWAITING_DISPATCH = "awaiting_dispatch"
    DISPATCHED = "dispatched"
    IN_DELIVERY = "in_delivery"
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"
    CANCELLED = "cancelled"


DISPATCHABLE_STATUSES = frozenset(
    {
        OrderStatus.PAID.value,
        OrderStatus.CONFIRMED.value,
        OrderStatus.READY_FOR_PICKUP.value,
        OrderStatus.READY_FOR_DISPATCH.value,
        OrderStatus.AWAITING_DISPATCH.value,
    }
)


@dataclass(frozen=True)
class OrderSnapshot:
    """The order fields dispatch needs."""

    order_id: str
    status: str
    vendor: Party
    customer: Party
    total_amount: float
    delivery_fee: float | None = None
    courier_id: str | None = None
    package_description: str = ""
    weight_kg: float | None = None
    special_instructions: str | None = None

    @property
    def dispatchable(self) -> bool:
        return self.status in DISPATCHABLE_STATUSES


class OrderGateway(ABC):
    """Abstract order subsystem interface."""

    @abstractmethod
    def load_order(self, order_id: str) -> OrderSnapshot:
        """Return the order snapshot.

        Raises:
            OrderNotFound: the order subsystem does not know the order.
        """
        ...

    @abstractmethod
    def mark_order_dispatched(self, order_id: str, delivery_id: str) -> None: ...

    @abstractmethod
    def mark_order_delivered(self, order_id: str) -> None: ...

    @abstractmethod
    def mark_order_delivery_failed(self, order_id: str, reason: str) -> None: ...

    @abstractmethod
    def mark_order_awaiting_dispatch(self, order_id: str, reason: str) -> None:
        """The order has no active delivery again and needs a new dispatch."""
        ...