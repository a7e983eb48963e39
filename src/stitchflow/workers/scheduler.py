"""Background scheduler for periodic maintenance sweeps."""

import asyncio
import logging
import time
from pathlib import Path

from stitchflow.config import Settings
from stitchflow.orchestration.orchestrator import Orchestrator
from stitchflow.services.temp_cleanup import cleanup_old_files

logger = logging.getLogger(__name__)


async def run_maintenance(orchestrator: Orchestrator, settings: Settings, cleanup_due: bool) -> dict:
    """Run one sweep. Returns counts of what was done."""
    result = {"stale_failed": 0, "temp_removed": 0, "expired_evicted": 0}

    if settings.awaiting_timeout_seconds:
        result["stale_failed"] = await orchestrator.fail_stale_jobs(settings.awaiting_timeout_seconds)

    result["expired_evicted"] = await orchestrator.store.purge_expired()

    if cleanup_due:
        result["temp_removed"] = await asyncio.to_thread(
            cleanup_old_files, Path(settings.temp_dir), settings.temp_file_max_age_hours
        )
    return result


async def run_scheduler(app, settings: Settings) -> None:
    """Background task sweeping stale jobs and old temp files."""
    orchestrator: Orchestrator = app.state.orchestrator
    interval = settings.sweep_interval_seconds
    logger.info(
        "Maintenance scheduler started (interval=%ds, awaiting_timeout=%s, cleanup_interval=%ds)",
        interval, settings.awaiting_timeout_seconds, settings.cleanup_interval_seconds,
    )

    # Temp cleanup also runs once at startup
    last_cleanup: float | None = None

    while True:
        try:
            now = time.monotonic()
            cleanup_due = last_cleanup is None or now - last_cleanup >= settings.cleanup_interval_seconds
            await run_maintenance(orchestrator, settings, cleanup_due)
            if cleanup_due:
                last_cleanup = now
            await asyncio.sleep(interval)

        except asyncio.CancelledError:
            logger.info("Maintenance scheduler stopped")
            break
        except Exception as exc:
            logger.exception("Maintenance sweep error: %s", exc)
            # Continue running despite errors
            await asyncio.sleep(interval)
