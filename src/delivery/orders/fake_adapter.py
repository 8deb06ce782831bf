"""Fake order gateway — in-memory orders for testing and development.

Records every write-back in ``calls`` and applies it to the stored order so
tests can assert on the order's coarse status.
"""

from dataclasses import replace

from delivery.errors import OrderCallbackError, OrderNotFound
from delivery.orders.port import OrderGateway, OrderSnapshot, OrderStatus


class FakeOrderGateway(OrderGateway):
    def __init__(self):
        self.orders: dict[str, OrderSnapshot] = {}
        self.calls: list[tuple] = []
        self.fail_callbacks = False

    def add_order(self, order: OrderSnapshot) -> OrderSnapshot:
        self.orders[order.order_id] = order
        return order

    def status_of(self, order_id: str) -> str:
        return self.orders[order_id].status

    def load_order(self, order_id: str) -> OrderSnapshot:
        try:
            return self.orders[order_id]
        except KeyError:
            raise OrderNotFound(f"Order {order_id} does not exist") from None

    def _set_status(self, order_id: str, status: OrderStatus) -> None:
        if self.fail_callbacks:
            raise OrderCallbackError(f"Order service unavailable for {order_id}")
        if order_id in self.orders:
            self.orders[order_id] = replace(self.orders[order_id], status=status.value)

    def mark_order_dispatched(self, order_id: str, delivery_id: str) -> None:
        self.calls.append(("mark_order_dispatched", order_id, delivery_id))
        self._set_status(order_id, OrderStatus.DISPATCHED)

    def mark_order_delivered(self, order_id: str) -> None:
        self.calls.append(("mark_order_delivered", order_id))
        self._set_status(order_id, OrderStatus.DELIVERED)

    def mark_order_delivery_failed(self, order_id: str, reason: str) -> None:
        self.calls.append(("mark_order_delivery_failed", order_id, reason))
        self._set_status(order_id, OrderStatus.DELIVERY_FAILED)

    def mark_order_awaiting_dispatch(self, order_id: str, reason: str) -> None:
        self.calls.append(("mark_order_awaiting_dispatch", order_id, reason))
        self._set_status(order_id, OrderStatus.AWAITING_DISPATCH)
