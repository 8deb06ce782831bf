"""Delivery orchestrator — drives an order from ready-for-dispatch to a terminal delivery.

States:
    NONE → DISPATCHING (in-flight DispatchAttempt) → pending → pickup_scheduled
    → picked_up → in_transit → out_for_delivery → delivered
    any non-terminal status → {failed, cancelled}

Every mutation for an order runs under that order's lock within this process;
across processes, the unique idempotency key of each dispatch attempt keeps
dispatch at most once. Courier calls run in a bounded worker pool and are
abandoned after ``courier_timeout_seconds``; a timeout is a transient
``CourierTransportError``. Status changes only ever move forward, which keeps
webhooks and polling safe to run side by side.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import structlog
from protean.exceptions import DatabaseError, ValidationError

from delivery.config import DeliverySettings
from delivery.courier.port import CourierQuote, CourierStatus, DeliveryRequest, Party
from delivery.courier.registry import ProviderRegistry
from delivery.delivery.attempt import DispatchAttempt, TriggeredBy
from delivery.delivery.delivery import Delivery, UpdateSource
from delivery.errors import (
    CourierRejected,
    CourierTransportError,
    DeliveryNotFound,
    DuplicateDispatch,
    OrderNotDispatchable,
    StatusRegression,
)
from delivery.locks import OrderLocks
from delivery.orders.port import OrderGateway, OrderSnapshot
from delivery.status.lifecycle import DeliveryStatus
from delivery.status.normalizer import StatusNormalizer
from delivery.store import DeliveryStore

logger = structlog.get_logger(__name__)


class IngestOutcome(Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    REGRESSION = "regression"
    UNMAPPED = "unmapped"


class CancellationOutcome(Enum):
    ACKNOWLEDGED = "acknowledged"
    DECLINED = "declined"
    UNREACHABLE = "unreachable"
    NOT_ATTEMPTED = "not_attempted"
    NO_ACTIVE_DELIVERY = "no_active_delivery"


@dataclass(frozen=True)
class IngestResult:
    delivery_id: str
    outcome: IngestOutcome
    status: str


@dataclass(frozen=True)
class ReassignmentResult:
    previous: Delivery
    current: Delivery
    cancellation: CancellationOutcome


@dataclass(frozen=True)
class CancellationResult:
    order_id: str
    outcome: CancellationOutcome
    delivery_id: str | None = None


def format_address(party: Party) -> str:
    parts = [party.building, party.address, party.suburb, party.city]
    return ", ".join(p for p in parts if p)


_CANCELLATION_NOTES = {
    CancellationOutcome.ACKNOWLEDGED: "courier acknowledged cancellation",
    CancellationOutcome.DECLINED: "courier declined cancellation",
    CancellationOutcome.UNREACHABLE: "courier unreachable, cancellation not confirmed",
    CancellationOutcome.NOT_ATTEMPTED: "no courier cancellation needed",
}


class DeliveryOrchestrator:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: DeliveryStore,
        orders: OrderGateway,
        normalizer: StatusNormalizer | None = None,
        settings: DeliverySettings | None = None,
        locks: OrderLocks | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.orders = orders
        self.normalizer = normalizer or StatusNormalizer()
        self.settings = settings or DeliverySettings()
        self.locks = locks or OrderLocks()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.courier_max_workers,
            thread_name_prefix="courier",
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # -------------------------------------------------------------------
    # Courier calls
    # -------------------------------------------------------------------
    def _call_courier(self, provider_id: str, fn, *args):
        """Run a blocking courier call, giving up after the configured timeout."""
        timeout = self.settings.courier_timeout_seconds
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            raise CourierTransportError(provider_id, f"no response within {timeout}s") from None

    def _build_request(self, order: OrderSnapshot, key: str) -> DeliveryRequest:
        return DeliveryRequest(
            order_id=order.order_id,
            idempotency_key=key,
            pickup=order.vendor,
            dropoff=order.customer,
            package_description=order.package_description,
            special_instructions=order.special_instructions,
            weight_kg=order.weight_kg,
            declared_value=order.total_amount,
        )

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def dispatch(
        self,
        order_id: str,
        provider_id: str | None = None,
        triggered_by: str = TriggeredBy.SYSTEM.value,
    ) -> Delivery:
        """Submit the order's shipment to a courier and open a delivery for it.

        Raises:
            DuplicateDispatch: the order has an active delivery or a dispatch in flight.
            ProviderNotSupported: no adapter is registered for the provider.
            OrderNotDispatchable: the order is not ready for dispatch.
            CourierTransportError: the courier was unreachable or timed out.
            CourierRejected: the courier refused the shipment.
        """
        with self.locks.hold(order_id):
            self._assert_not_dispatched(order_id)
            order = self.orders.load_order(order_id)
            if not order.dispatchable:
                raise OrderNotDispatchable(order_id, order.status)
            return self._dispatch(order, provider_id or order.courier_id, triggered_by)

    def _assert_not_dispatched(self, order_id: str) -> None:
        active = self.store.find_active_by_order(order_id)
        if active is not None:
            logger.info("Duplicate dispatch rejected", order_id=order_id, delivery_id=str(active.id))
            raise DuplicateDispatch(order_id, f"delivery {active.id} is {active.status}")

        stale_after = timedelta(seconds=self.settings.dispatch_stale_after_seconds)
        for attempt in self.store.find_in_flight_attempts(order_id):
            if not attempt.is_stale(stale_after):
                logger.info("Duplicate dispatch rejected", order_id=order_id, attempt=attempt.attempt)
                raise DuplicateDispatch(order_id, f"dispatch attempt {attempt.attempt} is in flight")
            attempt.abandon()
            self.store.save_attempt(attempt)
            logger.warning(
                "Stale dispatch attempt abandoned",
                order_id=order_id,
                attempt=attempt.attempt,
                provider=attempt.provider_id,
            )

    def _dispatch(self, order: OrderSnapshot, provider_id: str | None, triggered_by: str) -> Delivery:
        if not provider_id:
            raise ValidationError({"provider_id": [f"No courier chosen for order {order.order_id}"]})
        adapter = self.registry.resolve(provider_id)
        profile = self.registry.profile(provider_id)

        attempt = DispatchAttempt.start(
            order_id=order.order_id,
            attempt=self.store.next_attempt_number(order.order_id),
            provider_id=provider_id,
            triggered_by=triggered_by,
        )
        self._claim(attempt)
        log = logger.bind(order_id=order.order_id, provider=provider_id, attempt=attempt.attempt)
        log.info("Dispatching order to courier")

        request = self._build_request(order, attempt.idempotency_key)
        try:
            response = self._call_courier(provider_id, adapter.create_delivery, request)
        except CourierTransportError as exc:
            self._record_dispatch_failure(attempt, CourierTransportError.__name__, str(exc))
            raise
        except Exception as exc:
            self._record_dispatch_failure(attempt, type(exc).__name__, str(exc))
            raise

        if not response.success:
            if response.transient:
                error = CourierTransportError(provider_id, response.error or "transient courier failure")
            else:
                error = CourierRejected(provider_id, response.error or "shipment refused")
            self._record_dispatch_failure(attempt, type(error).__name__, str(error))
            raise error

        dlv = Delivery.open(
            order_id=order.order_id,
            provider_id=provider_id,
            attempt=attempt.attempt,
            idempotency_key=attempt.idempotency_key,
            tracking_id=response.tracking_id,
            pickup_address=format_address(order.vendor),
            delivery_address=format_address(order.customer),
            courier_name=profile.name,
            delivery_fee=order.delivery_fee,
            weight_kg=order.weight_kg,
            declared_value=order.total_amount,
            package_description=order.package_description,
            special_instructions=order.special_instructions,
            customer_phone=order.customer.phone,
            vendor_phone=order.vendor.phone,
            estimated_pickup_time=response.estimated_pickup,
            estimated_delivery_time=response.estimated_delivery,
        )
        self.store.save(dlv)
        attempt.succeed(str(dlv.id))
        self.store.save_attempt(attempt)
        log.info("Order dispatched", delivery_id=str(dlv.id), tracking_id=response.tracking_id)

        try:
            self.orders.mark_order_dispatched(order.order_id, str(dlv.id))
        except Exception as exc:
            log.error("Order dispatch write-back failed", delivery_id=str(dlv.id), error=str(exc))
        return dlv

    def _claim(self, attempt: DispatchAttempt) -> None:
        """Record a new attempt, yielding to any concurrent attempt for the same order.

        Order locks only serialize one process. Across processes the store
        refuses a second attempt with the same idempotency key, and an attempt
        that finds an older attempt in flight (or an active delivery) once it
        is recorded steps aside, so only one courier submission is made.
        """
        order_id = str(attempt.order_id)
        try:
            self.store.save_attempt(attempt)
        except ValidationError as exc:
            if "idempotency_key" not in exc.messages:
                raise
            raise DuplicateDispatch(order_id, f"dispatch attempt {attempt.attempt} is already recorded") from exc
        except DatabaseError as exc:
            raise DuplicateDispatch(order_id, f"dispatch attempt {attempt.attempt} could not be recorded") from exc

        rival = next(
            (a for a in self.store.find_in_flight_attempts(order_id) if a.attempt < attempt.attempt),
            None,
        )
        active = self.store.find_active_by_order(order_id)
        if rival is None and active is None:
            return

        reason = f"dispatch attempt {rival.attempt} is in flight" if rival else f"delivery {active.id} is {active.status}"
        attempt.fail(DuplicateDispatch.__name__, reason)
        self.store.save_attempt(attempt)
        logger.info("Concurrent dispatch lost the race", order_id=order_id, attempt=attempt.attempt, reason=reason)
        raise DuplicateDispatch(order_id, reason)

    def _record_dispatch_failure(self, attempt: DispatchAttempt, error_kind: str, message: str) -> None:
        attempt.fail(error_kind, message)
        self.store.save_attempt(attempt)
        logger.error(
            "Dispatch failed, order left awaiting dispatch",
            order_id=str(attempt.order_id),
            provider=attempt.provider_id,
            attempt=attempt.attempt,
            error_kind=error_kind,
            error=message,
        )

    # -------------------------------------------------------------------
    # Status ingestion
    # -------------------------------------------------------------------
    def ingest_status(
        self,
        provider_id: str,
        tracking_id: str,
        raw_status: str,
        location: str | None = None,
        occurred_at: datetime | None = None,
        description: str | None = None,
        source: UpdateSource = UpdateSource.COURIER_WEBHOOK,
    ) -> IngestResult:
        """Apply a courier-reported status if it moves the delivery forward."""
        self.registry.resolve(provider_id)
        normalized = self.normalizer.normalize(provider_id, raw_status)

        found = self.store.find_by_tracking_id(provider_id, tracking_id)
        if found is None:
            raise DeliveryNotFound(f"No {provider_id} delivery with tracking id {tracking_id}")

        with self.locks.hold(found.order_id):
            dlv = self.store.get(str(found.id))
            if not normalized.known:
                logger.warning(
                    "Unmapped courier status recorded for review",
                    delivery_id=str(dlv.id),
                    provider=provider_id,
                    raw_status=raw_status,
                )
                dlv = self.store.append_update(
                    str(dlv.id),
                    f"Unmapped courier status {raw_status!r}" + (f": {description}" if description else ""),
                    source=source,
                    raw_status=raw_status,
                    location=location,
                    reported_at=occurred_at,
                )
                return IngestResult(str(dlv.id), IngestOutcome.UNMAPPED, dlv.status)

            return self._apply(
                dlv,
                normalized.status,
                description=description,
                source=source,
                location=location,
                raw_status=raw_status,
                reported_at=occurred_at,
            )

    def record_manual_status(
        self,
        delivery_id: str,
        status: str,
        description: str | None = None,
        location: str | None = None,
    ) -> IngestResult:
        """Admin status change, subject to the same advancement rule as couriers."""
        try:
            target = DeliveryStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown delivery status {status!r}"]}) from None

        dlv = self.store.get(delivery_id)
        with self.locks.hold(dlv.order_id):
            dlv = self.store.get(delivery_id)
            return self._apply(dlv, target, description=description, source=UpdateSource.MANUAL, location=location)

    def _apply(self, dlv: Delivery, target: DeliveryStatus, **update) -> IngestResult:
        try:
            applied = dlv.apply_status(target, **update)
        except StatusRegression as exc:
            logger.warning(
                "Status regression ignored",
                delivery_id=str(dlv.id),
                provider=dlv.provider_id,
                current=exc.current,
                incoming=exc.incoming,
                source=update.get("source").value if update.get("source") else None,
            )
            return IngestResult(str(dlv.id), IngestOutcome.REGRESSION, dlv.status)

        if not applied:
            logger.debug("Duplicate status ignored", delivery_id=str(dlv.id), status=dlv.status)
            return IngestResult(str(dlv.id), IngestOutcome.DUPLICATE, dlv.status)

        self.store.save(dlv)
        logger.info(
            "Delivery status advanced",
            delivery_id=str(dlv.id),
            order_id=str(dlv.order_id),
            status=dlv.status,
        )
        self._notify_order(dlv)
        return IngestResult(str(dlv.id), IngestOutcome.APPLIED, dlv.status)

    def _notify_order(self, dlv: Delivery) -> None:
        """Write terminal outcomes back to the order; a failed write-back never undoes the status."""
        status = dlv.current_status
        try:
            if status == DeliveryStatus.DELIVERED:
                self.orders.mark_order_delivered(str(dlv.order_id))
            elif status == DeliveryStatus.FAILED:
                self.orders.mark_order_delivery_failed(str(dlv.order_id), dlv.failure_reason or "Delivery failed")
        except Exception as exc:
            logger.error(
                "Order write-back failed",
                order_id=str(dlv.order_id),
                delivery_id=str(dlv.id),
                status=dlv.status,
                error=str(exc),
            )

    # -------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------
    def fetch_status(self, dlv: Delivery) -> CourierStatus:
        """Ask the courier for a delivery's current status (bounded, not retried)."""
        adapter = self.registry.resolve(dlv.provider_id)
        return self._call_courier(dlv.provider_id, adapter.get_delivery_status, dlv.tracking_id)

    def poll_delivery(self, delivery_id: str) -> IngestResult | None:
        dlv = self.store.get(delivery_id)
        if not dlv.is_active or not dlv.tracking_id:
            return None
        courier_status = self.fetch_status(dlv)
        return self.ingest_status(
            dlv.provider_id,
            dlv.tracking_id,
            courier_status.status,
            location=courier_status.location,
            occurred_at=courier_status.timestamp,
            description=courier_status.description,
            source=UpdateSource.COURIER_POLL,
        )

    # -------------------------------------------------------------------
    # Cancellation and reassignment
    # -------------------------------------------------------------------
    def _cancel_with_courier(self, dlv: Delivery) -> CancellationOutcome:
        if not dlv.tracking_id:
            return CancellationOutcome.NOT_ATTEMPTED
        adapter = self.registry.resolve(dlv.provider_id)
        try:
            acknowledged = self._call_courier(dlv.provider_id, adapter.cancel_delivery, dlv.tracking_id)
        except CourierTransportError as exc:
            logger.warning("Courier unreachable for cancellation", delivery_id=str(dlv.id), error=str(exc))
            return CancellationOutcome.UNREACHABLE
        return CancellationOutcome.ACKNOWLEDGED if acknowledged else CancellationOutcome.DECLINED

    def reassign(
        self,
        delivery_id: str,
        new_provider_id: str,
        reason: str = "",
        triggered_by: str = TriggeredBy.OPERATOR.value,
    ) -> ReassignmentResult:
        """Cancel a delivery and dispatch the order afresh to another courier.

        The old delivery ends ``cancelled`` whatever the courier said; its
        failure reason records the cancellation outcome.
        """
        self.registry.resolve(new_provider_id)
        dlv = self.store.get(delivery_id)

        with self.locks.hold(dlv.order_id):
            previous = self.store.get(delivery_id)
            if previous.superseded_by:
                raise ValidationError({"delivery_id": [f"Delivery already superseded by {previous.superseded_by}"]})
            if previous.current_status == DeliveryStatus.DELIVERED:
                raise ValidationError({"status": ["A delivered order cannot be reassigned"]})

            cancellation = CancellationOutcome.NOT_ATTEMPTED
            if previous.is_active:
                cancellation = self._cancel_with_courier(previous)
                note = f"Reassigned to {new_provider_id}: {_CANCELLATION_NOTES[cancellation]}"
                if reason:
                    note = f"{note} ({reason})"
                previous.cancel(note, source=UpdateSource.MANUAL)
                self.store.save(previous)
                logger.info(
                    "Delivery cancelled for reassignment",
                    delivery_id=delivery_id,
                    order_id=str(previous.order_id),
                    cancellation=cancellation.value,
                )

            order_id = str(previous.order_id)
            try:
                order = self.orders.load_order(order_id)
                self._assert_not_dispatched(order_id)
                current = self._dispatch(order, new_provider_id, triggered_by)
            except DuplicateDispatch:
                raise
            except Exception as exc:
                self._return_to_awaiting_dispatch(order_id, f"Reassignment to {new_provider_id} failed: {exc}")
                raise

            previous = self.store.get(delivery_id)
            previous.supersede(str(current.id))
            self.store.save(previous)
            logger.info(
                "Delivery reassigned",
                order_id=order.order_id,
                previous_delivery_id=delivery_id,
                delivery_id=str(current.id),
                provider=new_provider_id,
            )
            return ReassignmentResult(previous=previous, current=current, cancellation=cancellation)

    def _return_to_awaiting_dispatch(self, order_id: str, reason: str) -> None:
        """The order has no active delivery after a failed reassignment; hand it back for dispatch."""
        logger.error("Reassignment failed, order returned to awaiting dispatch", order_id=order_id, reason=reason)
        try:
            self.orders.mark_order_awaiting_dispatch(order_id, reason)
        except Exception as exc:
            logger.error("Order awaiting-dispatch write-back failed", order_id=order_id, error=str(exc))

    def cancel_for_order(self, order_id: str, reason: str = "") -> CancellationResult:
        """Customer cancelled the order: try to stop the active delivery."""
        with self.locks.hold(order_id):
            dlv = self.store.find_active_by_order(order_id)
            if dlv is None:
                logger.info("No active delivery for cancelled order", order_id=order_id)
                return CancellationResult(order_id=order_id, outcome=CancellationOutcome.NO_ACTIVE_DELIVERY)

            outcome = self._cancel_with_courier(dlv)
            suffix = f": {reason}" if reason else ""
            if outcome in (CancellationOutcome.ACKNOWLEDGED, CancellationOutcome.NOT_ATTEMPTED):
                dlv.cancel(f"Cancelled by customer{suffix}")
                self.store.save(dlv)
                logger.info("Delivery cancelled for cancelled order", order_id=order_id, delivery_id=str(dlv.id))
            else:
                self.store.append_update(
                    str(dlv.id),
                    f"Cancellation denied, delivery continues ({_CANCELLATION_NOTES[outcome]}){suffix}",
                    source=UpdateSource.SYSTEM,
                )
                logger.warning(
                    "Courier did not cancel delivery for cancelled order",
                    order_id=order_id,
                    delivery_id=str(dlv.id),
                    outcome=outcome.value,
                )
            return CancellationResult(order_id=order_id, outcome=outcome, delivery_id=str(dlv.id))

    # -------------------------------------------------------------------
    # Quotes and queries
    # -------------------------------------------------------------------
    def quote(self, order_id: str, provider_id: str) -> CourierQuote:
        adapter = self.registry.resolve(provider_id)
        order = self.orders.load_order(order_id)
        request = self._build_request(order, f"{order_id}:quote")
        return self._call_courier(provider_id, adapter.request_quote, request)

    def get_delivery(self, delivery_id: str) -> Delivery:
        return self.store.get(delivery_id)

    def deliveries_for_order(self, order_id: str) -> list[Delivery]:
        return self.store.find_by_order(order_id)

    def list_deliveries(self, status: str | None = None, provider_id: str | None = None) -> list[Delivery]:
        return self.store.search(status=status, provider_id=provider_id)

    def failed_attempts(self) -> list[DispatchAttempt]:
        return self.store.find_failed_attempts()
