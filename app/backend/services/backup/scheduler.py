"""Minute-aligned backup scheduler.

The scheduler owns the due-time tracker and drives the executor:

1. Sleep until the next minute boundary.
2. Evaluate every cadence (coarsest first) and run the due ones one after
   another.
3. Sleep one more minute, then start over at step 1.

A failed cycle is logged and leaves the cadence due, so it is retried on the
next tick. There is no backoff and no attempt limit.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from starlette.concurrency import run_in_threadpool

from backend.services.backup.cadence import Cadence
from backend.services.backup.due_tracker import DueTimeTracker
from backend.services.backup.errors import BackupError
from backend.services.backup.executor import BackupExecutor
from backend.services.storage.base import StorageProvider

logger = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until_next_minute(now: datetime) -> float:
    """Return the delay until the next full minute.

    Args:
        now: Current time.

    Returns:
        float: Seconds in (0, 60].
    """

    return 60 - now.second - now.microsecond / 1_000_000


class BackupScheduler:
    """Decide when each cadence is due and trigger its backup cycle."""

    def __init__(
        self,
        *,
        tracker: DueTimeTracker,
        executor: BackupExecutor,
        storage: StorageProvider,
        subfolder: str = "",
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the scheduler.

        Args:
            tracker: Due-time state, one entry per cadence.
            executor: Runs backup cycles.
            storage: Store used to seed the tracker.
            subfolder: Optional bucket subfolder.
            clock: Returns the current UTC time.
            sleep: Awaitable sleep used between ticks.
        """

        self.tracker = tracker
        self.executor = executor
        self.storage = storage
        self.subfolder = subfolder
        self.clock = clock
        self.sleep = sleep

    async def seed(self) -> None:
        """Seed due-times from the objects already stored per cadence."""

        await run_in_threadpool(self.tracker.seed, self.storage, self.subfolder)

    async def trigger(self, cadence: Cadence, now: Optional[datetime] = None) -> bool:
        """Run one backup cycle and record it on success.

        Errors never escape: they are logged with the cadence and stage and the
        cadence is left due.

        Args:
            cadence: Cadence to back up.
            now: Tick time recorded as the last success.

        Returns:
            bool: True when the cycle succeeded.
        """

        now = now or self.clock()
        logger.info("Triggering %s backup", cadence.name)
        try:
            await self.executor.run_cycle(cadence, now)
        except BackupError as exc:
            logger.error("Backup failed (cadence=%s, stage=%s): %s", cadence.name, exc.stage, exc)
            return False
        except Exception:
            logger.exception("Backup failed (cadence=%s, stage=unexpected)", cadence.name)
            return False

        self.tracker.mark_succeeded(cadence, now)
        return True

    async def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Evaluate every cadence once and trigger those that are due.

        Args:
            now: Evaluation time; defaults to the clock.

        Returns:
            List[str]: Names of the cadences that were triggered.
        """

        triggered: List[str] = []
        for cadence in self.tracker.cadences:
            check_time = now or self.clock()
            if not self.tracker.is_due(cadence, check_time):
                continue
            triggered.append(cadence.name)
            await self.trigger(cadence, check_time)
        return triggered

    async def run_forever(self) -> None:
        """Run the tick loop until the process is stopped."""

        logger.info("Starting backup scheduler...")
        while True:
            await self.sleep(seconds_until_next_minute(self.clock()))
            await self.tick()
            await self.sleep(TICK_INTERVAL_SECONDS)
