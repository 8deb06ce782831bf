"""Status polling job — the fallback for couriers that do not push webhooks.

Each cycle walks the active deliveries of polled couriers, fetches the
courier's view with exponential backoff on transient errors, and feeds it
through the same advancement-only ingestion as webhooks. The scheduler runs
one cycle at a time inside a domain context.
"""

from dataclasses import dataclass, field

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from protean.domain import Domain
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from delivery.errors import CourierStatusNotFound, CourierTransportError, DeliveryError
from delivery.orchestrator import DeliveryOrchestrator, IngestOutcome

logger = structlog.get_logger(__name__)


@dataclass
class PollSummary:
    checked: int = 0
    applied: int = 0
    unchanged: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class StatusPoller:
    def __init__(
        self,
        orchestrator: DeliveryOrchestrator,
        max_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
    ) -> None:
        self.orchestrator = orchestrator
        self._poll_with_retry = retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=backoff_min, min=backoff_min, max=backoff_max),
            retry=retry_if_exception_type(CourierTransportError),
            reraise=True,
        )(orchestrator.poll_delivery)

    def poll_once(self) -> PollSummary:
        summary = PollSummary()
        provider_ids = self.orchestrator.registry.polled_provider_ids()
        if not provider_ids:
            return summary

        for dlv in self.orchestrator.store.find_active(provider_ids):
            if not dlv.tracking_id:
                continue
            summary.checked += 1
            delivery_id = str(dlv.id)
            try:
                result = self._poll_with_retry(delivery_id)
            except CourierStatusNotFound as exc:
                summary.failed += 1
                summary.failures[delivery_id] = str(exc)
                logger.warning("Courier does not know tracking id", delivery_id=delivery_id, error=str(exc))
                continue
            except DeliveryError as exc:
                summary.failed += 1
                summary.failures[delivery_id] = str(exc)
                logger.error("Status poll failed", delivery_id=delivery_id, error=str(exc))
                continue

            if result is not None and result.outcome == IngestOutcome.APPLIED:
                summary.applied += 1
            else:
                summary.unchanged += 1

        logger.info(
            "Status poll cycle finished",
            checked=summary.checked,
            applied=summary.applied,
            unchanged=summary.unchanged,
            failed=summary.failed,
        )
        return summary


def start_polling(domain: Domain, poller: StatusPoller, interval_seconds: int) -> BackgroundScheduler:
    """Schedule ``poller`` every ``interval_seconds`` and start the scheduler."""

    def _cycle():
        with domain.domain_context():
            poller.poll_once()

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        _cycle,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id="delivery_status_poll",
        name="Courier status polling",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Status polling scheduled", interval_seconds=interval_seconds)
    return scheduler
