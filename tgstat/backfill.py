"""
Labeled counter handles on top of a shared recorder.

A ``Metrics`` handle carries a set of labels. Deriving a handle with
``with_`` never changes the original, so one parent can fan out to any
number of sibling handles that all record into the same recorder.
"""
from datetime import datetime, timedelta
from typing import BinaryIO, Optional

from tgstat.labels import Labels
from tgstat.recorder import BackfillRecorder, Recorder


class Metrics:
    """A collection of counters that share the same labels."""

    def __init__(self, recorder: Optional[Recorder] = None, labels: Optional[Labels] = None):
        self._recorder = recorder if recorder is not None else BackfillRecorder()
        self.labels = labels if labels is not None else Labels()

    @property
    def recorder(self) -> Recorder:
        return self._recorder

    def with_(self, key: str, value: str) -> "Metrics":
        """Return a copy with an additional label appended."""
        return Metrics(self._recorder, self.labels.with_(key, value))

    def metric(self, name: str) -> "Metric":
        """Return a counter that inherits the labels of this collection."""
        return Metric(name, self.labels, self._recorder)

    def write(self, sink: BinaryIO, resolution: timedelta) -> int:
        """Write all recorded counters to ``sink`` at the given resolution."""
        return self._recorder.render(sink, resolution)


class Metric:
    """A single counter that can be incremented at a point in time."""

    def __init__(self, name: str, labels: Labels, recorder: Recorder):
        self.name = name
        self.labels = labels
        self._recorder = recorder

    def with_(self, key: str, value: str) -> "Metric":
        """Return a copy with an additional label appended."""
        return Metric(self.name, self.labels.with_(key, value), self._recorder)

    def inc(self, value: int, at: datetime):
        """Record an increment by ``value`` at time ``at``."""
        self._recorder.increment(self.labels.identity(self.name), value, at)
