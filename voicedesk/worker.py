"""
Standalone queue worker.

Usage:
    python -m voicedesk.worker

Runs the message queue poller without the HTTP API. Use this when the API
runs with QUEUE_PROCESSOR_ENABLED=false (e.g. several API replicas behind a
load balancer and a single worker process).
"""

import asyncio
import logging
import signal

from voicedesk.core.container import build_services
from voicedesk.db.session import SessionLocal

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_worker() -> None:
    services = build_services(SessionLocal)
    processor = services.processor

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    processor.start()
    logger.info("Worker started")
    await stop_requested.wait()
    logger.info("Worker shutting down")
    await processor.stop()
    await services.jobs.drain()


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
