"""
Background worker for retrying failed Airtable syncs.

Usage:
    python -m formbridge.worker

Every WORKER_POLL_INTERVAL seconds the worker runs one retry sweep over
failed responses that are still under SYNC_MAX_RETRIES.
"""

import asyncio
import logging

from formbridge.core.config import settings
from formbridge.core.deps import build_retry_coordinator, build_sync_orchestrator, get_client_factory
from formbridge.core.structured_logging import configure_logging
from formbridge.db.session import SessionLocal
from formbridge.services.retry_service import RetryResult

configure_logging()
logger = logging.getLogger(__name__)


async def run_retry_sweep(limit: int | None = None) -> RetryResult:
    """One retry pass with a fresh session."""
    with SessionLocal() as db:
        sync = build_sync_orchestrator(db, get_client_factory())
        return await build_retry_coordinator(sync).retry_failed_syncs(
            limit or settings.SYNC_RETRY_LIMIT
        )


async def worker_loop() -> None:
    """Main worker loop - polls for and retries failed syncs."""
    logger.info(
        "Worker starting (poll interval: %ss, retry limit: %s, max retries: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.SYNC_RETRY_LIMIT,
        settings.SYNC_MAX_RETRIES,
    )

    while True:
        try:
            result = await run_retry_sweep()
            if result.attempted or result.skipped:
                logger.info(
                    "Retry sweep: %s attempted, %s succeeded, %s failed, %s skipped",
                    result.attempted,
                    result.succeeded,
                    result.failed,
                    result.skipped,
                )
        except Exception as e:
            logger.error(f"Error in worker loop: {e}")

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception("Worker crashed")
        raise


if __name__ == "__main__":
    main()
