# src/roomrelay/sessions/sweeper.py
"""
Retention sweeper for the session store.

A background asyncio task that, once per ``interval``, drops messages older
than ``max_age`` from every room and removes rooms left empty.

Example:
    sweeper = RetentionSweeper(store, max_age=timedelta(hours=2),
                               interval=timedelta(hours=1))
    await sweeper.start()
    ...
    await sweeper.stop()
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from ..models import utcnow
from .store import SessionStore, SweepReport

logger = logging.getLogger(__name__)


def _as_timedelta(value: Union[timedelta, float]) -> timedelta:
    return value if isinstance(value, timedelta) else timedelta(seconds=value)


class RetentionSweeper:
    """
    Periodically enforces the message retention age on a SessionStore.

    Each pass is a single synchronous call into the store, so it never
    interleaves with an append on the event loop. A failing pass is logged
    and counted; the loop keeps running.
    """

    def __init__(
        self,
        store: SessionStore,
        max_age: Union[timedelta, float] = timedelta(hours=2),
        interval: Union[timedelta, float] = timedelta(hours=1),
    ):
        """
        Initialize the sweeper.

        Args:
            store: The session table to prune.
            max_age: Messages older than this are dropped.
            interval: Time between passes; the first pass runs one interval after start.
        """
        self.store = store
        self.max_age = _as_timedelta(max_age)
        self.interval = _as_timedelta(interval)

        self._running = False
        self._loop_task: Optional[asyncio.Task] = None

        self.run_count = 0
        self.error_count = 0
        self.rooms_removed_total = 0
        self.last_run: Optional[datetime] = None
        self.last_error: Optional[str] = None

    async def start(self) -> None:
        """
        Start the sweep loop.

        Idempotent; calling it again while running is a no-op.
        """
        if self._running:
            return

        self._running = True
        self._loop_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            f"Retention sweeper started "
            f"(interval: {self.interval.total_seconds()}s, max age: {self.max_age.total_seconds()}s)"
        )

    async def stop(self) -> None:
        """Stop the sweep loop. Idempotent."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
            logger.info("Retention sweeper stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def sweep_once(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Run a single retention pass immediately.

        Useful for testing or for an operator-triggered cleanup.
        """
        now = now or utcnow()
        report = self.store.prune_expired(self.max_age, now=now)
        self.run_count += 1
        self.rooms_removed_total += report.rooms_removed_count
        self.last_run = now
        self.last_error = None
        if report.messages_dropped or report.rooms_removed:
            logger.info(
                f"Retention sweep dropped {report.messages_dropped} message(s), "
                f"removed {report.rooms_removed_count} room(s), trimmed {report.rooms_trimmed} room(s)"
            )
        else:
            logger.debug("Retention sweep found nothing to drop")
        return report

    async def _sweep_loop(self) -> None:
        """Main sweep loop."""
        while self._running:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                self.sweep_once()
            except Exception as e:
                self.error_count += 1
                self.last_error = str(e)
                logger.error(f"Retention sweep failed: {e}", exc_info=True)

    def get_status(self) -> Dict[str, Any]:
        """Return a summary of the sweeper state."""
        return {
            "running": self._running,
            "interval_seconds": self.interval.total_seconds(),
            "max_age_seconds": self.max_age.total_seconds(),
            "run_count": self.run_count,
            "error_count": self.error_count,
            "rooms_removed_total": self.rooms_removed_total,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
            "rooms": len(self.store),
        }
