"""Aggregation of load readings into chart buckets."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from models.records import LoadReading


class BucketMode(str, Enum):
    """Granularity chosen from the report flag and the requested day span."""

    raw = "raw"
    hourly_within_day = "hourly_within_day"
    hourly_across_days = "hourly_across_days"
    daily = "daily"
    weekly = "weekly"


@dataclass(frozen=True)
class RawBucket:
    """One unaggregated reading, as shown in report mode."""

    id: Optional[int]
    timestamp: datetime
    label: str
    value: Decimal
    source: Optional[str]
    imported_at: Optional[datetime]


@dataclass(frozen=True)
class HourlyBucket:
    label: str
    value: Decimal


@dataclass(frozen=True)
class SummaryBucket:
    """Average, total and reading count for a day or a week."""

    label: str
    average: Decimal
    total: Decimal
    count: int


Bucket = Union[RawBucket, HourlyBucket, SummaryBucket]


def select_bucket_mode(day_span: int, report_mode: bool) -> BucketMode:
    if report_mode:
        return BucketMode.raw
    if day_span <= 1:
        return BucketMode.hourly_within_day
    if day_span <= 7:
        return BucketMode.hourly_across_days
    if day_span <= 60:
        return BucketMode.daily
    return BucketMode.weekly


def adjust_query_end(start: datetime, end: datetime) -> datetime:
    """Stretch a midnight ``end`` to the last second of that day.

    Only applies when ``end`` is later than ``start``; any other end is used
    verbatim so intra-day queries keep their precision.
    """
    if end.time() == datetime.min.time() and end > start:
        return end + timedelta(days=1) - timedelta(seconds=1)
    return end


def whole_day_range(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """Widen a range to cover both calendar days completely."""
    day_start = datetime.combine(start.date(), datetime.min.time())
    day_end = datetime.combine(end.date(), datetime.min.time()) + timedelta(days=1)
    return day_start, day_end - timedelta(seconds=1)


def _mean(values: Sequence[Decimal]) -> Decimal:
    return sum(values, Decimal(0)) / len(values)


def _summarize(label: str, values: Sequence[Decimal]) -> SummaryBucket:
    total = sum(values, Decimal(0))
    return SummaryBucket(label=label, average=total / len(values), total=total, count=len(values))


class Aggregator:
    """Pure bucketing component that can be unit tested in isolation."""

    def aggregate(
        self,
        readings: Iterable[LoadReading],
        start: datetime,
        end: datetime,
        day_span: int,
        report_mode: bool = False,
    ) -> List[Bucket]:
        """Group range-filtered readings into buckets.

        ``end`` is accepted for symmetry with the query that produced the
        readings; bucket boundaries only depend on ``start``. Empty groups are
        never emitted, so the result may have gaps.
        """
        items = sorted(readings, key=lambda reading: reading.timestamp)
        if not items:
            return []

        mode = select_bucket_mode(day_span, report_mode)
        if mode is BucketMode.raw:
            return [self._raw_bucket(reading) for reading in items]
        if mode in (BucketMode.hourly_within_day, BucketMode.hourly_across_days):
            return list(self._hourly(items, across_days=mode is BucketMode.hourly_across_days))
        if mode is BucketMode.daily:
            return list(self._daily(items))
        return list(self._weekly(items, start.date()))

    @staticmethod
    def _raw_bucket(reading: LoadReading) -> RawBucket:
        return RawBucket(
            id=reading.id,
            timestamp=reading.timestamp,
            label=reading.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            value=reading.value,
            source=reading.source,
            imported_at=reading.imported_at,
        )

    @staticmethod
    def _hourly(items: List[LoadReading], across_days: bool) -> Iterable[HourlyBucket]:
        groups: Dict[Tuple[date, int], List[Decimal]] = defaultdict(list)
        for reading in items:
            groups[(reading.timestamp.date(), reading.timestamp.hour)].append(reading.value)

        for (day, hour), values in sorted(groups.items()):
            label = f"{day:%m/%d} {hour:02d}:00" if across_days else f"{hour:02d}:00"
            yield HourlyBucket(label=label, value=_mean(values))

    @staticmethod
    def _daily(items: List[LoadReading]) -> Iterable[SummaryBucket]:
        groups: Dict[date, List[Decimal]] = defaultdict(list)
        for reading in items:
            groups[reading.timestamp.date()].append(reading.value)

        for day, values in sorted(groups.items()):
            yield _summarize(f"{day:%m/%d}", values)

    @staticmethod
    def _weekly(items: List[LoadReading], anchor: date) -> Iterable[SummaryBucket]:
        groups: Dict[int, List[Decimal]] = defaultdict(list)
        for reading in items:
            # Floor division keeps readings before the anchor in negative windows.
            index = (reading.timestamp.date() - anchor).days // 7
            groups[index].append(reading.value)

        for index, values in sorted(groups.items()):
            yield _summarize(f"Week {index + 1}", values)
