"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

SOURCE_MAX_LENGTH = 100
REMARKS_MAX_LENGTH = 500


def utcnow() -> datetime:
    """Naive UTC now, matching the naive timestamps kept in the store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(slots=True)
class LoadReading:
    """A single load measurement at minute precision."""

    timestamp: datetime
    value: Decimal
    source: Optional[str] = None
    imported_at: Optional[datetime] = None
    remarks: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.source is not None and len(self.source) > SOURCE_MAX_LENGTH:
            raise ValueError(
                f"source must be at most {SOURCE_MAX_LENGTH} characters long."
            )
        if self.remarks is not None and len(self.remarks) > REMARKS_MAX_LENGTH:
            raise ValueError(
                f"remarks must be at most {REMARKS_MAX_LENGTH} characters long."
            )
