"""DispatchAttempt aggregate — the operator's record of every courier submission.

An attempt is written *before* the courier is called, so a dispatch in flight
is visible to concurrent callers and survives a crash mid-call. Its attempt
number feeds the idempotency key sent to the courier. The key is unique in the
store, so two processes that pick the same attempt number cannot both record
it; only one of them reaches the courier.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from delivery.delivery.delivery import fetch_all
from delivery.delivery.events import DispatchFailed
from delivery.domain import delivery


class AttemptOutcome(Enum):
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TriggeredBy(Enum):
    SYSTEM = "system"
    OPERATOR = "operator"
    CUSTOMER = "customer"


ABANDONED = "Abandoned"


def idempotency_key(order_id: str, attempt: int) -> str:
    return f"{order_id}:{attempt}"


@delivery.aggregate
class DispatchAttempt:
    order_id = Identifier(required=True)
    attempt = Integer(required=True, min_value=1)
    idempotency_key = String(required=True, max_length=100, unique=True)
    provider_id = String(required=True, max_length=50)
    outcome = String(
        max_length=20,
        choices=AttemptOutcome,
        default=AttemptOutcome.IN_FLIGHT.value,
    )
    error_kind = String(max_length=50)
    error_message = String(max_length=500)
    delivery_id = Identifier()
    triggered_by = String(max_length=20, choices=TriggeredBy, default=TriggeredBy.SYSTEM.value)
    started_at = DateTime()
    finished_at = DateTime()

    @classmethod
    def start(cls, order_id: str, attempt: int, provider_id: str, triggered_by: str = TriggeredBy.SYSTEM.value):
        return cls(
            order_id=order_id,
            attempt=attempt,
            idempotency_key=idempotency_key(order_id, attempt),
            provider_id=provider_id,
            outcome=AttemptOutcome.IN_FLIGHT.value,
            triggered_by=triggered_by,
            started_at=datetime.now(UTC),
        )

    @property
    def in_flight(self) -> bool:
        return self.outcome == AttemptOutcome.IN_FLIGHT.value

    def is_stale(self, stale_after: timedelta, now: datetime | None = None) -> bool:
        """An in-flight attempt older than ``stale_after`` no longer blocks dispatch."""
        now = now or datetime.now(UTC)
        started = self.started_at
        if started is not None and started.tzinfo is None:
            started = started.replace(tzinfo=UTC)
        return self.in_flight and started is not None and now - started > stale_after

    def _assert_in_flight(self) -> None:
        if not self.in_flight:
            raise ValidationError({"outcome": [f"Dispatch attempt already {self.outcome}"]})

    def succeed(self, delivery_id: str) -> None:
        self._assert_in_flight()
        self.outcome = AttemptOutcome.SUCCEEDED.value
        self.delivery_id = delivery_id
        self.finished_at = datetime.now(UTC)

    def fail(self, error_kind: str, error_message: str) -> None:
        self._assert_in_flight()
        now = datetime.now(UTC)
        self.outcome = AttemptOutcome.FAILED.value
        self.error_kind = error_kind
        self.error_message = (error_message or "")[:500]
        self.finished_at = now
        self.raise_(
            DispatchFailed(
                attempt_id=str(self.id),
                order_id=str(self.order_id),
                provider_id=self.provider_id,
                attempt=self.attempt,
                error_kind=error_kind,
                error_message=self.error_message,
                failed_at=now,
            )
        )

    def abandon(self) -> None:
        """Close an attempt whose outcome was never recorded."""
        self.fail(ABANDONED, "No outcome recorded before the dispatch window expired")


@delivery.repository(part_of=DispatchAttempt)
class DispatchAttemptRepository:
    def find_by_order(self, order_id: str) -> list[DispatchAttempt]:
        attempts = fetch_all(self._dao.query.filter(order_id=order_id))
        return sorted(attempts, key=lambda a: a.attempt)

    def find_in_flight(self, order_id: str) -> list[DispatchAttempt]:
        return [a for a in self.find_by_order(order_id) if a.in_flight]

    def find_failed(self) -> list[DispatchAttempt]:
        return fetch_all(self._dao.query.filter(outcome=AttemptOutcome.FAILED.value).order_by("-started_at"))

    def next_attempt_number(self, order_id: str) -> int:
        attempts = self.find_by_order(order_id)
        return (attempts[-1].attempt + 1) if attempts else 1
