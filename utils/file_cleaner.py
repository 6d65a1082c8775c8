"""Periodic removal of stale uploads and generated images."""

import asyncio
import logging
import os

from services.result_store import ResultStore

LOGGER = logging.getLogger(__name__)

RETENTION_SECONDS = int(os.getenv("RESULT_RETENTION_SECONDS", "3600"))
CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "3600"))


class FileCleaner:
    """Delete artifacts older than the configured retention window."""

    def __init__(self, store: ResultStore, retention_seconds: int = RETENTION_SECONDS) -> None:
        """
        Args:
            store: Result store whose results and uploads directories are swept.
            retention_seconds: Age threshold in seconds; older files are removed.
        """
        self.store = store
        self.retention_seconds = retention_seconds

    async def prune_expired_files(self) -> int:
        """Run one sweep off the event loop and return the count removed."""
        removed = await asyncio.to_thread(self.store.purge_older_than, self.retention_seconds)
        if removed:
            LOGGER.info("Cleanup removed %d stale file(s)", removed)
        return removed

    async def run_periodic_cleanup(self, interval_seconds: int = CLEANUP_INTERVAL_SECONDS) -> None:
        """
        Repeatedly prune expired files at the given interval until cancelled.

        Args:
            interval_seconds: Seconds to sleep between cleanup runs.
        """
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                await self.prune_expired_files()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                LOGGER.error("Error during cleanup: %s", exc)
