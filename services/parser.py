"""Cross-table parsing: date header row, time-of-day column, load values."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence

from models.records import LoadReading

logger = logging.getLogger(__name__)

HEADER_SENTINEL = "Time"

# Tried in order; the first full-string match forming a real date wins.
DATE_FORMATS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("dd/MM/yyyy", re.compile(r"(?P<day>\d{2})/(?P<month>\d{2})/(?P<year>\d{4})", re.ASCII)),
    ("d/M/yyyy", re.compile(r"(?P<day>\d{1,2})/(?P<month>\d{1,2})/(?P<year>\d{4})", re.ASCII)),
    ("yyyy/MM/dd", re.compile(r"(?P<year>\d{4})/(?P<month>\d{2})/(?P<day>\d{2})", re.ASCII)),
    ("yyyy-MM-dd", re.compile(r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})", re.ASCII)),
    ("dd-MM-yyyy", re.compile(r"(?P<day>\d{2})-(?P<month>\d{2})-(?P<year>\d{4})", re.ASCII)),
    ("M/d/yyyy", re.compile(r"(?P<month>\d{1,2})/(?P<day>\d{1,2})/(?P<year>\d{4})", re.ASCII)),
)

_TIME_PATTERN = re.compile(r"(?P<hour>\d{2}):(?P<minute>\d{2})", re.ASCII)
_NUMBER_PATTERN = re.compile(r"[+-]?(?=\.?\d)(?:\d[\d,]*)?(?:\.\d*)?(?:[eE][+-]?\d+)?", re.ASCII)
_CURRENCY_SIGN = "¤"

# Stored values are fixed-point with three decimals.
VALUE_QUANTUM = Decimal("0.001")


@dataclass(frozen=True)
class ParseOutcome:
    """Readings, warnings and skip count produced by one parse."""

    readings: List[LoadReading] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped_count: int = 0


def parse_header_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        return None

    text = str(value)
    for _name, pattern in DATE_FORMATS:
        match = pattern.fullmatch(text)
        if match is None:
            continue
        try:
            return date(int(match["year"]), int(match["month"]), int(match["day"]))
        except ValueError:
            continue
    return None


def parse_time_of_day(value: Any) -> Optional[time]:
    if isinstance(value, time):
        if value.second or value.microsecond:
            return None
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        return None

    match = _TIME_PATTERN.fullmatch(value)
    if match is None:
        return None
    hour, minute = int(match["hour"]), int(match["minute"])
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def parse_load_value(value: Any) -> Decimal:
    """Parse a cell as a decimal in the invariant culture.

    Accepts native numbers and text with surrounding whitespace, a leading or
    trailing sign, parentheses for negatives, ``,`` thousands separators, an
    exponent and the invariant currency sign. Results are rounded half-up to
    three decimals. Raises ``ValueError`` otherwise.
    """
    if isinstance(value, bool):
        raise ValueError("Boolean cells are not load values.")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        parsed = _parse_numeric_text(value)
    else:
        raise ValueError(f"Unsupported cell type {type(value).__name__}.")

    if not parsed.is_finite():
        raise ValueError("Load values must be finite.")
    try:
        return parsed.quantize(VALUE_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"{value!r} is out of range.") from exc


def _parse_numeric_text(text: str) -> Decimal:
    candidate = text.strip()
    negative = False
    if candidate.startswith("(") and candidate.endswith(")"):
        negative = True
        candidate = candidate[1:-1].strip()

    candidate = candidate.replace(_CURRENCY_SIGN, "").strip()
    if len(candidate) > 1 and candidate[-1] in "+-" and candidate[0] not in "+-":
        candidate = candidate[-1] + candidate[:-1].rstrip()

    if negative and candidate[:1] in ("+", "-"):
        raise ValueError(f"Conflicting signs in {text!r}.")
    if not _NUMBER_PATTERN.fullmatch(candidate):
        raise ValueError(f"{text!r} is not a number.")

    try:
        parsed = Decimal(candidate.replace(",", ""))
    except InvalidOperation as exc:
        raise ValueError(f"{text!r} is not a number.") from exc
    return -parsed if negative else parsed


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _cell(row: Sequence[Any], column: int) -> Any:
    """Return the 1-indexed ``column`` of ``row``, treating ragged rows as empty."""
    index = column - 1
    return row[index] if index < len(row) else None


def parse_load_grid(
    rows: Iterable[Sequence[Any]],
    source: Optional[str],
    imported_at: datetime,
) -> ParseOutcome:
    """Convert a cross-table into readings.

    Row 1 holds the dates from column 2 onwards, column 1 holds ``HH:mm``
    times from row 2 onwards and the body holds load values. Bad date columns
    are dropped for every row, bad time rows are skipped whole and bad value
    cells are skipped one at a time. Empty value cells are ignored silently.
    """
    readings: List[LoadReading] = []
    warnings: List[str] = []
    skipped = 0

    iterator = iter(rows)
    header = next(iterator, None)
    if header is None:
        return ParseOutcome()

    date_columns: list[tuple[int, date]] = []
    for column in range(2, len(header) + 1):
        raw = _cell(header, column)
        parsed_date = parse_header_date(raw)
        if parsed_date is None:
            warnings.append(f"Unable to parse date (column {column}): {raw}")
            logger.warning(
                "Skipping date column",
                extra={"column_number": column, "invalid_value": raw, "reason": "invalid date"},
            )
            continue
        date_columns.append((column, parsed_date))

    for row_number, row in enumerate(iterator, start=2):
        raw_time = _cell(row, 1)
        time_of_day = None if _is_blank(raw_time) else parse_time_of_day(raw_time)
        if time_of_day is None:
            warnings.append(f"Unable to parse time (row {row_number}): {raw_time}")
            skipped += 1
            logger.warning(
                "Skipping row",
                extra={"row_number": row_number, "invalid_value": raw_time, "reason": "invalid time"},
            )
            continue

        for column, column_date in date_columns:
            raw_value = _cell(row, column)
            if _is_blank(raw_value):
                continue
            try:
                value = parse_load_value(raw_value)
            except ValueError:
                warnings.append(
                    f"Unable to parse load value (row {row_number}, column {column}): {raw_value}"
                )
                skipped += 1
                logger.warning(
                    "Skipping cell",
                    extra={
                        "row_number": row_number,
                        "column_number": column,
                        "invalid_value": raw_value,
                        "reason": "invalid load value",
                    },
                )
                continue

            readings.append(
                LoadReading(
                    timestamp=datetime.combine(column_date, time_of_day),
                    value=value,
                    source=source,
                    imported_at=imported_at,
                )
            )

    return ParseOutcome(readings=readings, warnings=warnings, skipped_count=skipped)
