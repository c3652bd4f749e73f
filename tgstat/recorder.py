"""
Backfill recorder.

Records counter increments at the time they happened and renders them as a
regularly sampled, forward-filled time series, as is required by time series
databases that bulk-import one sample per series per timestamp.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import BinaryIO, Dict, Iterator, List, Optional

from tgstat.self_metrics import BackfillSelfMetrics
from tgstat.series import Sample, as_utc, unix_seconds

logger = logging.getLogger(__name__)


class EmptyHistoryError(RuntimeError):
    """Raised when rendering a recorder that has no recorded series."""

    def __init__(self):
        super().__init__("no records")


@dataclass(frozen=True)
class Record:
    """Cumulative value of a series from ``at`` onwards."""
    value: int
    at: datetime


class Recorder(ABC):
    """Base class for increment recorders."""

    @abstractmethod
    def increment(self, identity: str, amount: int, at: datetime):
        """Record ``amount`` more for the series ``identity`` at time ``at``."""
        pass

    @abstractmethod
    def render(self, sink: BinaryIO, resolution: timedelta) -> int:
        """Write the recorded history to ``sink``; return the number of samples."""
        pass


class BackfillRecorder(Recorder):
    """Recorder that keeps an append-only history of cumulative values per series."""

    def __init__(self, self_metrics: Optional[BackfillSelfMetrics] = None):
        # identity -> records in chronological order; [0] is the head, [-1] the tail.
        # Series keep first-seen order so renders are reproducible.
        self.history: Dict[str, List[Record]] = {}
        self.self_metrics = self_metrics

    def __len__(self) -> int:
        return len(self.history)

    def increment(self, identity: str, amount: int, at: datetime):
        at = as_utc(at)
        records = self.history.get(identity)

        if records is None:
            self.history[identity] = [Record(amount, at)]
            if self.self_metrics:
                self.self_metrics.set_series(len(self.history))
        else:
            tail = records[-1]
            if tail.at > at:
                logger.warning(
                    f"{identity}: ignoring record at {unix_seconds(at)}, "
                    f"current is at {unix_seconds(tail.at)}"
                )
                if self.self_metrics:
                    self.self_metrics.record_dropped()
                return
            # Same-instant increments are appended as separate records.
            records.append(Record(tail.value + amount, at))

        if self.self_metrics:
            self.self_metrics.record_accepted()

    def total(self, identity: str) -> Optional[int]:
        """Latest cumulative value of a series, or None if it was never incremented."""
        records = self.history.get(identity)
        return records[-1].value if records else None

    def iter_samples(self, resolution: timedelta) -> Iterator[Sample]:
        """
        Walk through time in resolution steps, yielding one sample per started series.

        Each series is forward-filled with the value of its latest record at or
        before the current step. A series whose first record lies after the
        current step is skipped for that step. The walk ends after the first
        step at which every series has reached its last record.

        Raises:
            ValueError: if resolution is not positive
            EmptyHistoryError: if nothing was recorded
        """
        if resolution <= timedelta(0):
            raise ValueError(f"Resolution must be positive, got {resolution}")
        if not self.history:
            raise EmptyHistoryError()

        start = min(records[0].at for records in self.history.values())
        cursors = {identity: 0 for identity in self.history}

        now = start
        while True:
            has_active = False
            for identity, records in self.history.items():
                pos = cursors[identity]
                if records[pos].at > now:
                    # Not yet started. It still has history ahead, so keep walking.
                    has_active = True
                    continue

                while pos + 1 < len(records) and records[pos + 1].at <= now:
                    pos += 1
                cursors[identity] = pos

                if pos + 1 < len(records):
                    has_active = True

                yield Sample(identity, records[pos].value, now)

            if not has_active:
                break
            now += resolution

    def render(self, sink: BinaryIO, resolution: timedelta) -> int:
        # Validate before the first write so a failed render leaves the sink untouched.
        if resolution <= timedelta(0):
            raise ValueError(f"Resolution must be positive, got {resolution}")
        if not self.history:
            raise EmptyHistoryError()

        render_start = time.time()
        count = 0
        for sample in self.iter_samples(resolution):
            sink.write(sample.exposition_line().encode("utf-8"))
            count += 1

        if self.self_metrics:
            self.self_metrics.record_samples(count)
            self.self_metrics.record_render_duration(time.time() - render_start)

        logger.debug(f"Rendered {count} samples for {len(self)} series at {resolution}")
        return count
