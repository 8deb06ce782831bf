"""Inbound cross-domain event handler — Delivery reacts to Ordering events.

OrderReadyForDispatch dispatches the shipment to the courier chosen at
checkout; OrderCancelled tries to stop the order's active delivery.
Delivery failures are logged with their kind and left for operators in the
dispatch failures view; they are never retried from here.

Cross-domain events are imported from shared.events module and registered
as external events via delivery.register_external_event().
"""

import structlog
from protean.utils.mixins import handle
from shared.events.ordering import OrderCancelled, OrderReadyForDispatch

from delivery.delivery.delivery import Delivery
from delivery.domain import delivery
from delivery.errors import DeliveryError, DuplicateDispatch
from delivery.wiring import get_orchestrator

logger = structlog.get_logger(__name__)

# Register external events so Protean can deserialize them
delivery.register_external_event(OrderReadyForDispatch, "Ordering.OrderReadyForDispatch.v1")
delivery.register_external_event(OrderCancelled, "Ordering.OrderCancelled.v1")


@delivery.event_handler(part_of=Delivery, stream_category="ordering::order")
class OrderEventHandler:
    """Reacts to events from the Ordering domain."""

    @handle(OrderReadyForDispatch)
    def on_order_ready_for_dispatch(self, event: OrderReadyForDispatch) -> None:
        order_id = str(event.order_id)
        try:
            dlv = get_orchestrator().dispatch(order_id, provider_id=event.courier_id or None)
        except DuplicateDispatch:
            logger.info("Order already dispatched", order_id=order_id)
            return
        except DeliveryError as exc:
            logger.error(
                "Dispatch for ready order failed",
                order_id=order_id,
                error_kind=type(exc).__name__,
                error=str(exc),
            )
            return

        logger.info("Order dispatched from ready event", order_id=order_id, delivery_id=str(dlv.id))

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        """Try to stop the active delivery when the customer cancels the order."""
        result = get_orchestrator().cancel_for_order(str(event.order_id), reason=event.reason)
        logger.info(
            "Delivery cancellation processed for cancelled order",
            order_id=str(event.order_id),
            outcome=result.outcome.value,
        )
