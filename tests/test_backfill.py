"""Tests for the backfill recorder and its labeled handles."""
import io
import math
from datetime import datetime, timedelta, timezone
from typing import List, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from tgstat.backfill import Metrics
from tgstat.recorder import BackfillRecorder, EmptyHistoryError, Recorder
from tgstat.self_metrics import BackfillSelfMetrics

START = datetime.fromtimestamp(1724512000, tz=timezone.utc)
UNIX_START = 1724512000


def at(seconds: int) -> datetime:
    return START + timedelta(seconds=seconds)


def render(recorder: Recorder, resolution_s: int = 10) -> str:
    buf = io.BytesIO()
    recorder.render(buf, timedelta(seconds=resolution_s))
    return buf.getvalue().decode("utf-8")


def parse(output: str) -> List[Tuple[str, int, int]]:
    samples = []
    for line in output.splitlines():
        identity, value, ts = line.rsplit(" ", 2)
        samples.append((identity, int(value), int(ts)))
    return samples


class RecordingRecorder(Recorder):
    """Recorder stub that only remembers the identities it was given."""

    def __init__(self):
        self.names: List[str] = []

    def increment(self, identity, amount, at):
        self.names.append(identity)

    def render(self, sink, resolution):
        return 0


def test_metrics_fan_out():
    """Derived handles share the recorder but not their labels."""
    rec = RecordingRecorder()
    m = Metrics(rec)
    foo_metrics = m.with_("x", "foo")
    bar_metrics = m.with_("x", "bar")

    foo_metrics.metric("qux").inc(1, START)
    foo_metrics.with_("y", "baz").metric("qux").inc(1, START)
    bar_metrics.metric("qux").inc(1, START)
    bar_metrics.metric("zot").inc(1, START)
    bar_metrics.metric("zot").with_("z", "1").inc(1, START)

    assert rec.names == [
        'qux{x="foo"}',
        'qux{x="foo",y="baz"}',
        'qux{x="bar"}',
        'zot{x="bar"}',
        'zot{x="bar",z="1"}',
    ]
    assert m.recorder is rec
    assert len(m.labels) == 0


def test_single_series_forward_fill():
    """Increments between resolution steps raise the value without being rendered."""
    r = BackfillRecorder()
    r.increment("foo", 1, at(0))   # 1
    r.increment("foo", 1, at(10))  # 2
    r.increment("foo", 1, at(15))  # 3
    r.increment("foo", 1, at(20))  # 4
    r.increment("foo", 1, at(33))  # 5

    want = (
        f"foo 1 {UNIX_START}\n"
        f"foo 2 {UNIX_START + 10}\n"
        f"foo 4 {UNIX_START + 20}\n"
        f"foo 4 {UNIX_START + 30}\n"
        f"foo 5 {UNIX_START + 40}\n"
    )
    assert render(r) == want


def test_disjoint_series_start_independently():
    """A later series is silent before its first record and the walk waits for both."""
    r = BackfillRecorder()
    r.increment("early", 1, at(0))
    r.increment("early", 1, at(12))
    r.increment("late", 5, at(25))
    r.increment("late", 1, at(41))

    samples = parse(render(r))
    early = [(v, ts - UNIX_START) for name, v, ts in samples if name == "early"]
    late = [(v, ts - UNIX_START) for name, v, ts in samples if name == "late"]

    assert early == [(1, 0), (1, 10), (2, 20), (2, 30), (2, 40), (2, 50)]
    assert late == [(5, 30), (5, 40), (6, 50)]


def test_series_starting_after_others_finished_is_rendered():
    r = BackfillRecorder()
    r.increment("a", 1, at(0))
    r.increment("b", 3, at(100))

    samples = parse(render(r))
    assert ("b", 3, UNIX_START + 100) in samples
    assert samples[-1][2] == UNIX_START + 100
    assert [s for s in samples if s[0] == "a"][-1] == ("a", 1, UNIX_START + 100)


def test_empty_recorder_fails_and_writes_nothing():
    r = BackfillRecorder()
    buf = io.BytesIO()
    with pytest.raises(EmptyHistoryError):
        r.render(buf, timedelta(seconds=10))
    assert buf.getvalue() == b""


@pytest.mark.parametrize("resolution", [timedelta(0), timedelta(seconds=-1)])
def test_non_positive_resolution_is_rejected(resolution):
    r = BackfillRecorder()
    r.increment("foo", 1, at(0))
    buf = io.BytesIO()
    with pytest.raises(ValueError):
        r.render(buf, resolution)
    assert buf.getvalue() == b""


def test_out_of_order_increment_is_dropped(caplog):
    r = BackfillRecorder()
    r.increment("foo", 1, at(0))
    r.increment("foo", 2, at(20))
    before = render(r)

    with caplog.at_level("WARNING", logger="tgstat.recorder"):
        r.increment("foo", 100, at(10))

    assert r.total("foo") == 3
    assert len(r.history["foo"]) == 2
    assert render(r) == before
    assert "ignoring record" in caplog.text


def test_same_timestamp_increments_are_appended():
    r = BackfillRecorder()
    r.increment("foo", 1, at(0))
    r.increment("foo", 2, at(5))
    r.increment("foo", 3, at(5))

    assert [rec.value for rec in r.history["foo"]] == [1, 3, 6]
    assert parse(render(r)) == [("foo", 1, UNIX_START), ("foo", 6, UNIX_START + 10)]


def test_render_is_idempotent():
    r = BackfillRecorder()
    for i, name in enumerate(["b", "a", "c", "a", "b"]):
        r.increment(name, i + 1, at(i * 7))

    assert render(r) == render(r)


def test_single_record_renders_once():
    r = BackfillRecorder()
    r.increment("foo", 7, at(0))
    assert render(r) == f"foo 7 {UNIX_START}\n"


def test_step_count_and_cumulative_values():
    """Every step renders the sum of increments at or before it; the walk stops on time."""
    events = [
        ("a", 3, 4), ("b", 1, 9), ("a", 2, 11), ("c", 8, 30),
        ("b", 5, 30), ("a", 1, 47), ("c", 2, 61), ("b", 4, 61),
    ]
    r = BackfillRecorder()
    for name, amount, seconds in events:
        r.increment(name, amount, at(seconds))

    resolution = 15
    samples = parse(render(r, resolution))
    steps = sorted({ts for _, _, ts in samples})

    first, last = 4, 61
    assert len(steps) == math.ceil((last - first) / resolution) + 1
    assert steps == [UNIX_START + first + i * resolution for i in range(len(steps))]

    for name, value, ts in samples:
        expected = sum(a for n, a, s in events if n == name and UNIX_START + s <= ts)
        assert value == expected

    for name in ("a", "b", "c"):
        values = [v for n, v, _ in samples if n == name]
        assert values == sorted(values)


def test_naive_timestamps_are_utc():
    r = BackfillRecorder()
    r.increment("foo", 1, datetime(2024, 8, 24, 15, 6, 40))
    r.increment("foo", 1, at(10))
    assert render(r) == f"foo 1 {UNIX_START}\nfoo 2 {UNIX_START + 10}\n"


def test_metrics_write_uses_shared_recorder():
    m = Metrics()
    sender = m.with_("sender", "alice")
    sender.metric("tg_messages_total").inc(1, at(0))
    sender.metric("tg_messages_total").inc(1, at(3))

    buf = io.BytesIO()
    count = m.write(buf, timedelta(seconds=10))

    assert count == 2
    assert buf.getvalue().decode() == (
        f'tg_messages_total{{sender="alice"}} 1 {UNIX_START}\n'
        f'tg_messages_total{{sender="alice"}} 2 {UNIX_START + 10}\n'
    )


def test_self_metrics_track_recorder():
    self_metrics = BackfillSelfMetrics(prefix="test_")
    r = BackfillRecorder(self_metrics)
    r.increment("foo", 1, at(0))
    r.increment("foo", 1, at(10))
    r.increment("foo", 1, at(5))
    r.increment("bar", 1, at(20))
    render(r)

    assert self_metrics.summary() == {
        "accepted": 3.0,
        "dropped": 1.0,
        "series": 2.0,
        "samples": 4.0,
    }
    assert self_metrics.registry.get_sample_value("test_backfill_render_duration_seconds_count") == 1.0


def berlin() -> ZoneInfo:
    try:
        return ZoneInfo("Europe/Berlin")
    except ZoneInfoNotFoundError:
        pytest.skip("Europe/Berlin time zone data not available")


def test_steps_are_fixed_across_dst_change():
    """Steps stay one resolution apart in real time when a zone leaves summer time."""
    tz = berlin()
    r = BackfillRecorder()
    r.increment("foo", 1, datetime(2024, 10, 27, 0, 0, tzinfo=tz))  # 2024-10-26 22:00 UTC
    r.increment("foo", 1, datetime(2024, 10, 27, 4, 0, tzinfo=tz))  # 2024-10-27 03:00 UTC

    samples = parse(render(r, 3600))
    timestamps = [ts for _, _, ts in samples]
    first = int(datetime(2024, 10, 26, 22, 0, tzinfo=timezone.utc).timestamp())

    assert timestamps == [first + i * 3600 for i in range(6)]
    assert [v for _, v, _ in samples] == [1, 1, 1, 1, 1, 2]


def test_out_of_order_uses_real_time_for_ambiguous_wall_clock():
    """02:45 in summer time happens before 02:30 in winter time on the same night."""
    tz = berlin()
    r = BackfillRecorder()
    r.increment("foo", 1, datetime(2024, 10, 27, 2, 30, fold=1, tzinfo=tz))  # 01:30 UTC
    r.increment("foo", 1, datetime(2024, 10, 27, 2, 45, fold=0, tzinfo=tz))  # 00:45 UTC

    assert r.total("foo") == 1
    assert len(r.history["foo"]) == 1


def test_mixed_zones_share_one_timeline():
    tz = berlin()
    r = BackfillRecorder()
    r.increment("utc", 1, at(0))
    r.increment("local", 1, START.astimezone(tz) + timedelta(seconds=10))

    assert parse(render(r)) == [
        ("utc", 1, UNIX_START),
        ("utc", 1, UNIX_START + 10),
        ("local", 1, UNIX_START + 10),
    ]
