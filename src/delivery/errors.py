"""Delivery error taxonomy.

Every failure the orchestrator can surface to a caller is one of these.
Aggregate rule violations that are plain caller mistakes still raise
Protean's ``ValidationError`` like the rest of the domain model.
"""


class DeliveryError(Exception):
    """Base class for delivery orchestration failures."""


class ProviderNotSupported(DeliveryError):
    """The requested courier provider id has no registered adapter."""

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"Courier provider {provider_id!r} is not supported")


class CourierConfigurationError(DeliveryError):
    """A courier is enabled but its configuration is incomplete or invalid."""


class StatusTableError(CourierConfigurationError):
    """A provider status table maps to an unknown status or collides on a key."""


class CourierTransportError(DeliveryError):
    """The courier could not be reached, timed out, or answered with a 5xx.

    Retryable: the courier may or may not have seen the request.
    """

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"{provider_id}: {message}")


class CourierRejected(DeliveryError):
    """The courier refused the request (validation, auth, unknown area)."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"{provider_id}: {message}")


class CourierStatusNotFound(DeliveryError):
    """The courier has no shipment with the given tracking id."""

    def __init__(self, provider_id: str, tracking_id: str) -> None:
        self.provider_id = provider_id
        self.tracking_id = tracking_id
        super().__init__(f"{provider_id}: no shipment with tracking id {tracking_id!r}")


class StatusRegression(DeliveryError):
    """An incoming status would move a delivery backwards or out of a terminal state."""

    def __init__(self, delivery_id: str, current: str, incoming: str) -> None:
        self.delivery_id = delivery_id
        self.current = current
        self.incoming = incoming
        super().__init__(f"Delivery {delivery_id} is {current}; refusing to move to {incoming}")


class DuplicateDispatch(DeliveryError):
    """The order already has an active delivery or a dispatch in flight."""

    def __init__(self, order_id: str, reason: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} cannot be dispatched again: {reason}")


class DeliveryNotFound(DeliveryError):
    """No delivery matches the given id or courier tracking id."""


class OrderNotFound(DeliveryError):
    """The order subsystem does not know the order."""


class OrderNotDispatchable(DeliveryError):
    """The order is not in a state that allows courier dispatch."""

    def __init__(self, order_id: str, status: str) -> None:
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is {status} and cannot be dispatched")


class OrderCallbackError(DeliveryError):
    """Writing a delivery outcome back to the order subsystem failed."""
