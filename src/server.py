"""Protean Engine runner for the delivery domain.

Starts the Engine that processes events asynchronously:
- OutboxProcessor: polls outbox table, publishes delivery events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes projectors and the
  Ordering event handler (OrderReadyForDispatch, OrderCancelled)

Alongside the Engine, a background scheduler polls couriers that do not
push status webhooks.

Usage:
    python src/server.py                 # Engine plus status polling
    python src/server.py --no-polling    # Engine only
"""

import argparse
import asyncio

import structlog
from protean.server.engine import Engine

logger = structlog.get_logger(__name__)


def _get_domain():
    from delivery.domain import delivery

    delivery.init()
    return delivery


async def run(polling: bool = True):
    from delivery.polling import StatusPoller, start_polling
    from delivery.wiring import get_orchestrator, reset_orchestrator

    domain = _get_domain()
    scheduler = None
    if polling:
        with domain.domain_context():
            orchestrator = get_orchestrator()
        scheduler = start_polling(
            domain,
            StatusPoller(orchestrator),
            interval_seconds=orchestrator.settings.poll_interval_seconds,
        )

    try:
        await Engine(domain).run()
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        reset_orchestrator()


def main():
    from delivery.utils.logging import configure_logging

    parser = argparse.ArgumentParser(description="Delivery Engine runner")
    parser.add_argument(
        "--no-polling",
        action="store_true",
        help="Do not poll couriers without webhooks",
    )
    args = parser.parse_args()

    configure_logging()
    logger.info("Starting delivery engine", polling=not args.no_polling)
    asyncio.run(run(polling=not args.no_polling))


if __name__ == "__main__":
    main()
