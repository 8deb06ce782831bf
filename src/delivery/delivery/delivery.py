"""Delivery aggregate (CQRS) — one courier shipment for one order.

A Delivery exists only once a courier has accepted the shipment. Its status
follows the normalized lifecycle and only ever moves forward; every accepted
change and every anomaly is appended to ``updates``, which is never edited.

State Machine:
    PENDING → PICKUP_SCHEDULED → PICKED_UP → IN_TRANSIT → OUT_FOR_DELIVERY → DELIVERED
    any non-terminal status → {FAILED, CANCELLED}
    Intermediate statuses may be skipped; terminal statuses are final.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from delivery.delivery.events import (
    DeliveryAnomalyRecorded,
    DeliveryCancelled,
    DeliveryDelivered,
    DeliveryDispatched,
    DeliveryFailed,
    DeliveryStatusChanged,
    DeliverySuperseded,
)
from delivery.domain import delivery
from delivery.errors import StatusRegression
from delivery.status.lifecycle import ACTIVE_STATUSES, DeliveryStatus


class UpdateSource(Enum):
    COURIER_WEBHOOK = "courier_webhook"
    COURIER_POLL = "courier_poll"
    MANUAL = "manual"
    SYSTEM = "system"


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@delivery.entity(part_of="Delivery")
class DeliveryUpdate:
    """One entry in a delivery's append-only history."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, max_length=50)
    description = String(max_length=500)
    location = String(max_length=200)
    source = String(max_length=20, choices=UpdateSource, default=UpdateSource.SYSTEM.value)
    raw_status = String(max_length=100)
    flagged = Boolean(default=False)
    reported_at = DateTime()
    timestamp = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@delivery.aggregate
class Delivery:
    order_id = Identifier(required=True)
    provider_id = String(required=True, max_length=50)
    attempt = Integer(required=True, min_value=1)
    idempotency_key = String(required=True, max_length=100)
    tracking_id = String(max_length=100)
    status = String(
        max_length=50,
        choices=DeliveryStatus,
        default=DeliveryStatus.PENDING.value,
    )
    last_raw_status = String(max_length=100)
    pickup_address = Text(required=True)
    delivery_address = Text(required=True)
    delivery_fee = Float(min_value=0.0)
    weight_kg = Float(min_value=0.0)
    declared_value = Float(min_value=0.0)
    package_description = Text()
    special_instructions = Text()
    customer_phone = String(max_length=30)
    vendor_phone = String(max_length=30)
    courier_name = String(max_length=100)
    courier_phone = String(max_length=30)
    failure_reason = String(max_length=500)
    superseded_by = Identifier()
    updates = HasMany(DeliveryUpdate)
    estimated_pickup_time = DateTime()
    actual_pickup_time = DateTime()
    estimated_delivery_time = DateTime()
    actual_delivery_time = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def open(
        cls,
        order_id: str,
        provider_id: str,
        attempt: int,
        idempotency_key: str,
        tracking_id: str,
        pickup_address: str,
        delivery_address: str,
        courier_name: str | None = None,
        delivery_fee: float | None = None,
        weight_kg: float | None = None,
        declared_value: float | None = None,
        package_description: str | None = None,
        special_instructions: str | None = None,
        customer_phone: str | None = None,
        vendor_phone: str | None = None,
        estimated_pickup_time: datetime | None = None,
        estimated_delivery_time: datetime | None = None,
    ):
        """Open a delivery for a shipment the courier has just accepted."""
        now = datetime.now(UTC)
        dlv = cls(
            order_id=order_id,
            provider_id=provider_id,
            attempt=attempt,
            idempotency_key=idempotency_key,
            tracking_id=tracking_id,
            status=DeliveryStatus.PENDING.value,
            pickup_address=pickup_address,
            delivery_address=delivery_address,
            courier_name=courier_name,
            delivery_fee=delivery_fee,
            weight_kg=weight_kg,
            declared_value=declared_value,
            package_description=package_description,
            special_instructions=special_instructions,
            customer_phone=customer_phone,
            vendor_phone=vendor_phone,
            estimated_pickup_time=estimated_pickup_time,
            estimated_delivery_time=estimated_delivery_time,
            created_at=now,
            updated_at=now,
        )
        dlv._append_update(
            status=DeliveryStatus.PENDING,
            description=f"Shipment accepted by {courier_name or provider_id}",
            source=UpdateSource.SYSTEM,
        )
        dlv.raise_(
            DeliveryDispatched(
                delivery_id=str(dlv.id),
                order_id=order_id,
                provider_id=provider_id,
                tracking_id=tracking_id,
                attempt=attempt,
                estimated_delivery=estimated_delivery_time,
                dispatched_at=now,
            )
        )
        return dlv

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> DeliveryStatus:
        return DeliveryStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.current_status in ACTIVE_STATUSES

    @property
    def history(self) -> list:
        """Updates in the order they were recorded."""
        return sorted(self.updates or [], key=lambda u: u.sequence)

    # -------------------------------------------------------------------
    # History helpers
    # -------------------------------------------------------------------
    def _next_timestamp(self) -> datetime:
        """Now, but never earlier than the last recorded update."""
        now = datetime.now(UTC)
        history = self.history
        if history:
            last = _aware(history[-1].timestamp)
            if last is not None and last > now:
                return last
        return now

    def _append_update(
        self,
        status: DeliveryStatus,
        description: str,
        source: UpdateSource,
        location: str | None = None,
        raw_status: str | None = None,
        flagged: bool = False,
        reported_at: datetime | None = None,
    ) -> datetime:
        history = self.history
        timestamp = self._next_timestamp()
        self.add_updates(
            DeliveryUpdate(
                sequence=(history[-1].sequence + 1) if history else 1,
                status=status.value,
                description=(description or "")[:500],
                location=(location or "")[:200],
                source=source.value,
                raw_status=raw_status,
                flagged=flagged,
                reported_at=_aware(reported_at),
                timestamp=timestamp,
            )
        )
        self.updated_at = timestamp
        return timestamp

    # -------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------
    def apply_status(
        self,
        target: DeliveryStatus,
        description: str | None = None,
        source: UpdateSource = UpdateSource.COURIER_WEBHOOK,
        location: str | None = None,
        raw_status: str | None = None,
        reported_at: datetime | None = None,
    ) -> bool:
        """Move the delivery forward to ``target``.

        Returns False when ``target`` is the current status (a replay).

        Raises:
            StatusRegression: ``target`` is behind the current status, or the
                delivery is already terminal.
        """
        current = self.current_status
        if target == current:
            return False
        if not current.advances_to(target):
            raise StatusRegression(str(self.id), current.value, target.value)

        description = description or f"Status changed to {target.value}"
        changed_at = self._append_update(
            status=target,
            description=description,
            source=source,
            location=location,
            raw_status=raw_status,
            reported_at=reported_at,
        )
        self.status = target.value
        if raw_status:
            self.last_raw_status = raw_status

        if target == DeliveryStatus.PICKED_UP and self.actual_pickup_time is None:
            self.actual_pickup_time = changed_at

        self.raise_(
            DeliveryStatusChanged(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                provider_id=self.provider_id,
                previous_status=current.value,
                status=target.value,
                description=description[:500],
                location=(location or "")[:200],
                source=source.value,
                changed_at=changed_at,
            )
        )

        if target == DeliveryStatus.DELIVERED:
            self.actual_delivery_time = changed_at
            self.raise_(
                DeliveryDelivered(
                    delivery_id=str(self.id),
                    order_id=str(self.order_id),
                    provider_id=self.provider_id,
                    picked_up_at=self.actual_pickup_time,
                    delivered_at=changed_at,
                )
            )
        elif target == DeliveryStatus.FAILED:
            self.failure_reason = description[:500]
            self.raise_(
                DeliveryFailed(
                    delivery_id=str(self.id),
                    order_id=str(self.order_id),
                    provider_id=self.provider_id,
                    reason=self.failure_reason,
                    failed_at=changed_at,
                )
            )
        elif target == DeliveryStatus.CANCELLED:
            self.failure_reason = description[:500]
            self.raise_(
                DeliveryCancelled(
                    delivery_id=str(self.id),
                    order_id=str(self.order_id),
                    provider_id=self.provider_id,
                    reason=self.failure_reason,
                    cancelled_at=changed_at,
                )
            )
        return True

    def cancel(self, reason: str, source: UpdateSource = UpdateSource.SYSTEM) -> None:
        """Cancel an active delivery."""
        if not self.is_active:
            raise ValidationError({"status": [f"Cannot cancel delivery in {self.status} state"]})
        self.apply_status(DeliveryStatus.CANCELLED, description=reason, source=source)

    def record_anomaly(
        self,
        description: str,
        source: UpdateSource,
        raw_status: str | None = None,
        location: str | None = None,
        reported_at: datetime | None = None,
    ) -> None:
        """Record something operators must look at without changing the status."""
        recorded_at = self._append_update(
            status=self.current_status,
            description=description,
            source=source,
            location=location,
            raw_status=raw_status,
            flagged=True,
            reported_at=reported_at,
        )
        self.raise_(
            DeliveryAnomalyRecorded(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                provider_id=self.provider_id,
                raw_status=(raw_status or "")[:100],
                description=description[:500],
                recorded_at=recorded_at,
            )
        )

    def supersede(self, new_delivery_id: str) -> None:
        """Link a terminal delivery to the delivery that replaced it."""
        if self.is_active:
            raise ValidationError({"status": ["Only a finished delivery can be superseded"]})
        if self.superseded_by:
            raise ValidationError({"superseded_by": ["Delivery has already been superseded"]})

        self.superseded_by = new_delivery_id
        superseded_at = self._append_update(
            status=self.current_status,
            description=f"Superseded by delivery {new_delivery_id}",
            source=UpdateSource.SYSTEM,
        )
        self.raise_(
            DeliverySuperseded(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                superseded_by=new_delivery_id,
                superseded_at=superseded_at,
            )
        )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------
_PAGE_SIZE = 100


def fetch_all(queryset) -> list:
    """Page through a queryset; plain ``.all()`` stops at the default page size."""
    items = []
    offset = 0
    while True:
        page = queryset.offset(offset).limit(_PAGE_SIZE).all().items
        items.extend(page)
        if len(page) < _PAGE_SIZE:
            return items
        offset += _PAGE_SIZE


@delivery.repository(part_of=Delivery)
class DeliveryRepository:
    """Queries the orchestrator needs beyond get/add."""

    def find_by_order(self, order_id: str) -> list[Delivery]:
        deliveries = fetch_all(self._dao.query.filter(order_id=order_id))
        return sorted(deliveries, key=lambda d: (d.attempt or 0))

    def find_active_by_order(self, order_id: str) -> Delivery | None:
        active = [d for d in self.find_by_order(order_id) if d.is_active]
        return active[-1] if active else None

    def find_by_tracking_id(self, provider_id: str, tracking_id: str) -> Delivery | None:
        return self._dao.query.filter(provider_id=provider_id, tracking_id=tracking_id).all().first

    def find_by_status(self, status: str) -> list[Delivery]:
        return fetch_all(self._dao.query.filter(status=status).order_by("created_at"))

    def find_active(self, provider_ids: list[str] | None = None) -> list[Delivery]:
        deliveries = []
        for status in ACTIVE_STATUSES:
            deliveries.extend(self.find_by_status(status.value))
        if provider_ids is not None:
            deliveries = [d for d in deliveries if d.provider_id in provider_ids]
        return deliveries

    def search(self, status: str | None = None, provider_id: str | None = None) -> list[Delivery]:
        criteria = {}
        if status:
            criteria["status"] = status
        if provider_id:
            criteria["provider_id"] = provider_id
        return fetch_all(self._dao.query.filter(**criteria).order_by("-created_at"))
