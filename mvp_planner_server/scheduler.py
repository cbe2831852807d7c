"""
Periodic daily-usage reset for provider keys.

The reset is a polling timer, not tied to any request: a key can stay over
quota for up to one poll interval after its 24h window ends.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from mvp_planner_server.key_manager import UsageAccountant
from mvp_planner_server.key_store import utcnow
from mvp_planner_server.logging_config import get_logger, log_exception

logger = get_logger(__name__)


class KeyResetScheduler:
    """
    Runs UsageAccountant.reset_stale_keys on an interval.

    Usage:
        scheduler = KeyResetScheduler(accountant, ["content-gen"], poll_seconds=1800)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        accountant: UsageAccountant,
        providers: Iterable[str],
        poll_seconds: float = 1800,
    ):
        if poll_seconds <= 0:
            raise ValueError("poll_seconds must be positive")

        self.accountant = accountant
        self.providers: List[str] = list(providers)
        self.poll_seconds = poll_seconds
        self.last_run: Optional[datetime] = None
        self.total_resets = 0
        self.started_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Run a single reset sweep and return the number of keys reset."""
        count = await self.accountant.reset_stale_keys(self.providers)
        self.last_run = utcnow()
        self.total_resets += count
        if count:
            logger.info("key_reset_sweep", keys_reset=count)
        return count

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_exception(e, context={"operation": "key_reset_sweep"})
            await asyncio.sleep(self.poll_seconds)

    def start(self) -> None:
        """Start the background loop; a no-op if already running."""
        if self.is_running:
            return
        self.started_at = utcnow()
        self._task = asyncio.create_task(self._loop())
        logger.info("key_reset_scheduler_started", poll_seconds=self.poll_seconds)

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.started_at = None
        logger.info("key_reset_scheduler_stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "providers": self.providers,
            "poll_seconds": self.poll_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "total_resets": self.total_resets,
        }
