"""
Report composition.

Builds a single in-memory report from a record set: one series per
requested granularity plus a summary over every record.
"""

import logging
from dataclasses import dataclass
from typing import AbstractSet, FrozenSet, List, Optional, Sequence

from token_savings.config.loader import Settings
from token_savings.storage.models import InvocationRecord
from .aggregator import (
    DayStats,
    Granularity,
    MonthStats,
    Summary,
    WeekStats,
    aggregate,
    summarize,
)

logger = logging.getLogger(__name__)

ALL_VIEWS: FrozenSet[Granularity] = frozenset(Granularity)


@dataclass(frozen=True)
class Report:
    """Requested bucket series plus the grand-total summary.

    A series is None when its granularity was not requested and an empty
    list when it was requested but there were no records.
    """
    summary: Summary
    daily: Optional[List[DayStats]] = None
    weekly: Optional[List[WeekStats]] = None
    monthly: Optional[List[MonthStats]] = None
    skipped_records: int = 0

    @property
    def views(self) -> FrozenSet[Granularity]:
        present = set()
        if self.daily is not None:
            present.add(Granularity.DAY)
        if self.weekly is not None:
            present.add(Granularity.WEEK)
        if self.monthly is not None:
            present.add(Granularity.MONTH)
        return frozenset(present)


def resolve_views(
    daily: bool = False,
    weekly: bool = False,
    monthly: bool = False,
    all_views: bool = False
) -> FrozenSet[Granularity]:
    """Map view flags to the set of granularities to compute.

    Returns an empty set when no flag is given.
    """
    if all_views:
        return ALL_VIEWS
    views = set()
    if daily:
        views.add(Granularity.DAY)
    if weekly:
        views.add(Granularity.WEEK)
    if monthly:
        views.add(Granularity.MONTH)
    return frozenset(views)


def compose_report(
    records: Sequence[InvocationRecord],
    views: AbstractSet[Granularity],
    settings: Settings,
    skipped_records: int = 0
) -> Report:
    """Aggregate records once per requested granularity.

    The summary always covers the full record set, whichever views were
    requested. An empty record set is valid and yields zero totals.

    Args:
        records: Invocation records to report on
        views: Granularities to include
        settings: Reference time zone and week anchor
        skipped_records: Malformed rows excluded upstream

    Returns:
        Composed Report
    """
    tz = settings.tz
    series = {
        granularity: aggregate(records, granularity, tz, settings.week_start)
        for granularity in Granularity
        if granularity in views
    }
    logger.debug(
        "Composed report over %d records for views %s",
        len(records),
        sorted(g.value for g in series)
    )
    return Report(
        summary=summarize(records),
        daily=series.get(Granularity.DAY),
        weekly=series.get(Granularity.WEEK),
        monthly=series.get(Granularity.MONTH),
        skipped_records=skipped_records
    )
