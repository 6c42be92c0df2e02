"""Pydantic schemas for the import results and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from services.aggregator import BucketMode


class ImportErrorCode(str, Enum):
    """Failure classes an import can end with."""

    workbook_not_found = "workbook_not_found"
    sheet_not_found = "sheet_not_found"
    no_data = "no_data"
    duplicate_timestamp = "duplicate_timestamp"
    storage_error = "storage_error"
    unexpected = "unexpected"


class ImportResult(BaseModel):
    """Outcome of one workbook import run."""

    success: bool = False
    imported_count: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)
    error_message: Optional[str] = None
    error_code: Optional[ImportErrorCode] = None
    messages: List[str] = Field(default_factory=list)
    elapsed_ms: int = Field(
        default=0, ge=0, description="Wall-clock duration of the whole import in milliseconds."
    )


class LoadReadingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    timestamp: datetime
    value: float
    source: Optional[str] = None
    imported_at: Optional[datetime] = None
    remarks: Optional[str] = None


class RawBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: Literal["raw"] = "raw"
    id: Optional[int] = None
    timestamp: datetime
    label: str
    value: float
    source: Optional[str] = None
    imported_at: Optional[datetime] = None


class HourlyBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: Literal["hourly"] = "hourly"
    label: str
    value: float


class SummaryBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: Literal["summary"] = "summary"
    label: str
    average: float
    total: float
    count: int = Field(..., ge=1)


BucketOut = Annotated[
    Union[RawBucketOut, HourlyBucketOut, SummaryBucketOut], Field(discriminator="kind")
]


class AggregationResponse(BaseModel):
    """Buckets for a chart, tagged with the granularity that produced them."""

    mode: BucketMode
    buckets: List[BucketOut] = Field(default_factory=list)


class CountResponse(BaseModel):
    count: int = Field(..., ge=0)


class DateRangeResponse(BaseModel):
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None


class ValidationResponse(BaseModel):
    is_valid: bool


class DeleteResponse(BaseModel):
    deleted: int = Field(..., ge=0)


class WorkbookUploadResponse(BaseModel):
    """Immediate response payload after storing an uploaded workbook."""

    key: str = Field(..., description="Storage key to pass to the import endpoints.")
