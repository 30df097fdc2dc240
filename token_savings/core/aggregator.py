"""
Time-bucketed aggregation of invocation records.

Groups records into day, week and month buckets. Token counts are summed
with integer arithmetic and the savings percentage of every bucket is
weighted: it is derived once from the bucket's own totals, never averaged
from per-record percentages, so many small commands cannot skew it.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Callable, Dict, Hashable, Iterable, List, Tuple

from token_savings.config.loader import WeekAnchor
from token_savings.storage.models import InvocationRecord


class Granularity(Enum):
    """Bucket sizes a report can be broken down by."""
    DAY = "daily"
    WEEK = "weekly"
    MONTH = "monthly"


def compute_savings_pct(saved_tokens: int, input_tokens: int) -> float:
    """Weighted savings percentage; 0 when there is no input."""
    if input_tokens <= 0:
        return 0.0
    return saved_tokens / input_tokens * 100.0


@dataclass(frozen=True)
class Summary:
    """Grand totals over a whole record set."""
    commands: int
    input_tokens: int
    output_tokens: int
    saved_tokens: int
    savings_pct: float


@dataclass(frozen=True)
class DayStats:
    date: date
    commands: int
    input_tokens: int
    output_tokens: int
    saved_tokens: int
    savings_pct: float


@dataclass(frozen=True)
class WeekStats:
    week_start: date
    week_end: date
    commands: int
    input_tokens: int
    output_tokens: int
    saved_tokens: int
    savings_pct: float


@dataclass(frozen=True)
class MonthStats:
    month: str  # YYYY-MM
    commands: int
    input_tokens: int
    output_tokens: int
    saved_tokens: int
    savings_pct: float


@dataclass(frozen=True)
class CommandStats:
    """Totals for one tracked command across the history."""
    rtk_cmd: str
    commands: int
    input_tokens: int
    saved_tokens: int
    savings_pct: float


class _Accumulator:
    """Running integer totals for one bucket."""

    def __init__(self):
        self.commands = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self.saved_tokens = 0

    def add(self, record: InvocationRecord) -> None:
        self.commands += 1
        self.input_tokens += record.input_tokens
        self.output_tokens += record.output_tokens
        self.saved_tokens += record.saved_tokens

    def totals(self) -> Dict[str, object]:
        return {
            "commands": self.commands,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "saved_tokens": self.saved_tokens,
            "savings_pct": compute_savings_pct(self.saved_tokens, self.input_tokens),
        }


def local_date(timestamp: datetime, tz: tzinfo = timezone.utc) -> date:
    """Calendar date of a timestamp in the reference time zone.

    Naive timestamps are taken to be UTC.
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(tz).date()


def week_bounds(day: date, week_start: WeekAnchor = WeekAnchor.MONDAY) -> Tuple[date, date]:
    """Return the inclusive (start, end) dates of the week containing ``day``."""
    offset = (day.weekday() - week_start.value) % 7
    start = day - timedelta(days=offset)
    return start, start + timedelta(days=6)


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def _group(
    records: Iterable[InvocationRecord],
    key_func: Callable[[InvocationRecord], Hashable]
) -> List[Tuple[Hashable, _Accumulator]]:
    buckets: Dict[Hashable, _Accumulator] = {}
    for record in records:
        key = key_func(record)
        if key not in buckets:
            buckets[key] = _Accumulator()
        buckets[key].add(record)
    return sorted(buckets.items(), key=lambda item: item[0])


def aggregate_daily(
    records: Iterable[InvocationRecord],
    tz: tzinfo = timezone.utc
) -> List[DayStats]:
    """Group records by calendar day, oldest day first."""
    grouped = _group(records, lambda r: local_date(r.timestamp, tz))
    return [DayStats(date=day, **acc.totals()) for day, acc in grouped]


def aggregate_weekly(
    records: Iterable[InvocationRecord],
    tz: tzinfo = timezone.utc,
    week_start: WeekAnchor = WeekAnchor.MONDAY
) -> List[WeekStats]:
    """Group records by week, oldest week first.

    Weeks start on ``week_start`` and both bounds are inclusive.
    """
    grouped = _group(records, lambda r: week_bounds(local_date(r.timestamp, tz), week_start))
    return [
        WeekStats(week_start=start, week_end=end, **acc.totals())
        for (start, end), acc in grouped
    ]


def aggregate_monthly(
    records: Iterable[InvocationRecord],
    tz: tzinfo = timezone.utc
) -> List[MonthStats]:
    """Group records by calendar month, oldest month first."""
    grouped = _group(records, lambda r: month_key(local_date(r.timestamp, tz)))
    return [MonthStats(month=month, **acc.totals()) for month, acc in grouped]


def aggregate(
    records: Iterable[InvocationRecord],
    granularity: Granularity,
    tz: tzinfo = timezone.utc,
    week_start: WeekAnchor = WeekAnchor.MONDAY
) -> list:
    """Aggregate records at the requested granularity.

    The result is sparse: periods without records have no bucket.

    Args:
        records: Invocation records, in any order
        granularity: Bucket size
        tz: Reference time zone for calendar dates
        week_start: Anchor weekday for weekly buckets

    Returns:
        Bucket stats ordered by start date ascending
    """
    if granularity is Granularity.DAY:
        return aggregate_daily(records, tz)
    if granularity is Granularity.WEEK:
        return aggregate_weekly(records, tz, week_start)
    if granularity is Granularity.MONTH:
        return aggregate_monthly(records, tz)
    raise ValueError(f"Unsupported granularity: {granularity}")


def summarize(records: Iterable[InvocationRecord]) -> Summary:
    """Compute grand totals over all records."""
    acc = _Accumulator()
    for record in records:
        acc.add(record)
    return Summary(**acc.totals())


def aggregate_by_command(records: Iterable[InvocationRecord], limit: int = 10) -> List[CommandStats]:
    """Totals per tracked command, highest savings first.

    Ties are broken by command name so the order is deterministic.
    """
    grouped = _group(records, lambda r: r.rtk_cmd)
    stats = [
        CommandStats(
            rtk_cmd=cmd,
            commands=acc.commands,
            input_tokens=acc.input_tokens,
            saved_tokens=acc.saved_tokens,
            savings_pct=compute_savings_pct(acc.saved_tokens, acc.input_tokens),
        )
        for cmd, acc in grouped
    ]
    stats.sort(key=lambda s: (-s.saved_tokens, s.rtk_cmd))
    return stats[:limit]
