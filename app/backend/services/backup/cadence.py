"""Backup cadences and object key naming.

A cadence is a named backup frequency tier. Each cadence stores its archives
under its own key prefix, which is also where its due-time and retention state
are derived from:

    <subfolder>/<cadence>/<prefix>-<timestamp>.tar.gz

Cadences are declared coarsest first; the scheduler evaluates them in this
order on every tick.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Tuple


@dataclass(frozen=True)
class Cadence:
    """A named backup interval.

    Attributes:
        name: Cadence name, also used as the key prefix segment.
        interval: Minimum time between two successful backups.
    """

    name: str
    interval: timedelta

    def __str__(self) -> str:
        return self.name


WEEKLY = Cadence("weekly", timedelta(days=7))
DAILY = Cadence("daily", timedelta(days=1))
HOURLY = Cadence("hourly", timedelta(hours=1))
TEN_MINUTES = Cadence("10min", timedelta(minutes=10))

CADENCES: Tuple[Cadence, ...] = (WEEKLY, DAILY, HOURLY, TEN_MINUTES)

# Manual, startup and single-shot cycles are filed under the finest cadence.
MANUAL_CADENCE = TEN_MINUTES

ARCHIVE_SUFFIX = ".tar.gz"

_UNSAFE_TIMESTAMP_CHARS = re.compile(r"[:.]+")


def get_cadence(name: str) -> Cadence:
    """Resolve a cadence by name.

    Args:
        name: Cadence name (e.g. "hourly").

    Returns:
        Cadence: The matching cadence.

    Raises:
        ValueError: If no cadence has that name.
    """

    for cadence in CADENCES:
        if cadence.name == name:
            return cadence
    valid = ", ".join(c.name for c in CADENCES)
    raise ValueError(f"Unknown cadence: {name!r} (expected one of: {valid})")


def format_timestamp(moment: datetime) -> str:
    """Render a filesystem-safe ISO-8601 timestamp.

    `2026-10-19T12:00:00.000Z` becomes `2026-10-19T12-00-00-000Z`.

    Args:
        moment: Timestamp; naive values are treated as UTC.

    Returns:
        str: Timestamp without colons or periods.
    """

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return _UNSAFE_TIMESTAMP_CHARS.sub("-", iso)


def build_backup_filename(file_prefix: str, moment: datetime) -> str:
    """Return the archive file name for a backup taken at `moment`."""

    return f"{file_prefix}-{format_timestamp(moment)}{ARCHIVE_SUFFIX}"


def cadence_prefix(subfolder: str, cadence: Cadence) -> str:
    """Return the key prefix holding all archives of a cadence.

    Args:
        subfolder: Optional bucket subfolder; surrounding slashes are ignored.
        cadence: Cadence.

    Returns:
        str: Prefix ending in a slash, e.g. `db/hourly/`.
    """

    folder = (subfolder or "").strip().strip("/")
    if folder:
        return f"{folder}/{cadence.name}/"
    return f"{cadence.name}/"


def build_destination_key(subfolder: str, cadence: Cadence, filename: str) -> str:
    """Return the object key an archive is uploaded to."""

    return f"{cadence_prefix(subfolder, cadence)}{filename}"
