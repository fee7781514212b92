"""Per-cadence due-time tracking.

Each cadence is in one of two states:

- Unknown: no successful backup is recorded; the cadence is always due.
- Known(t): the last successful backup happened at `t`; the cadence is due
  once at least its interval has elapsed since `t`.

State is seeded once from the object store (newest object per cadence prefix)
and afterwards only changes through `mark_succeeded`. Objects written by other
processes after seeding are not observed until the next restart.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from backend.services.backup.cadence import CADENCES, Cadence, cadence_prefix
from backend.services.backup.errors import StoreUnavailable

if TYPE_CHECKING:
    from backend.services.storage.base import StorageProvider

logger = logging.getLogger(__name__)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class DueTimeTracker:
    """Track the last successful backup time of each cadence."""

    def __init__(self, cadences: Iterable[Cadence] = CADENCES):
        """Initialize all cadences as Unknown.

        Args:
            cadences: Cadences to track.
        """

        self.cadences = tuple(cadences)
        self._last_success: Dict[str, Optional[datetime]] = {c.name: None for c in self.cadences}

    def seed(self, storage: "StorageProvider", subfolder: str = "") -> None:
        """Derive last-success times from the objects already in the store.

        A cadence whose prefix is empty, or whose listing fails, stays Unknown
        and is therefore due on the first tick.

        Args:
            storage: Store to list.
            subfolder: Optional bucket subfolder.
        """

        logger.info("Getting last backup times from the object store...")
        for cadence in self.cadences:
            prefix = cadence_prefix(subfolder, cadence)
            try:
                objects = storage.list_objects(prefix=prefix)
            except StoreUnavailable as exc:
                logger.warning("Error getting last backup time for %s: %s", cadence.name, exc)
                continue

            if not objects:
                logger.info("No previous %s backup found under %s", cadence.name, prefix)
                continue

            latest = max(_as_utc(o.last_modified) for o in objects)
            self._last_success[cadence.name] = latest
            logger.info("Found last %s backup from: %s", cadence.name, latest.isoformat())

    def last_success(self, cadence: Cadence) -> Optional[datetime]:
        """Return the recorded last success, or None while Unknown."""

        return self._last_success.get(cadence.name)

    def is_due(self, cadence: Cadence, now: datetime) -> bool:
        """Return True when `cadence` should run at `now`.

        Args:
            cadence: Cadence to evaluate.
            now: Current time.

        Returns:
            bool: True when Unknown or when the interval has fully elapsed.
        """

        last = self.last_success(cadence)
        if last is None:
            return True
        return _as_utc(now) - last >= cadence.interval

    def mark_succeeded(self, cadence: Cadence, now: datetime) -> None:
        """Record a completed backup cycle for `cadence`."""

        self._last_success[cadence.name] = _as_utc(now)

    def snapshot(self) -> Dict[str, Optional[datetime]]:
        """Return a copy of the current state keyed by cadence name."""

        return dict(self._last_success)
