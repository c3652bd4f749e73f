"""Data structures for rendered series samples."""
import math
from dataclasses import dataclass
from datetime import datetime, timezone


def as_utc(at: datetime) -> datetime:
    """Return ``at`` in UTC; naive values are taken as UTC already."""
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc)


def unix_seconds(at: datetime) -> int:
    return math.floor(as_utc(at).timestamp())


@dataclass
class Sample:
    """A single resolution-aligned sample of a series."""
    identity: str
    value: int
    timestamp: datetime

    def unix_seconds(self) -> int:
        return unix_seconds(self.timestamp)

    def exposition_line(self) -> str:
        """Render as ``<identity> <value> <unix-seconds>`` with a trailing newline."""
        return f"{self.identity} {self.value} {self.unix_seconds()}\n"
