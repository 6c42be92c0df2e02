"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse

from app.schemas import (
    AggregationResponse,
    CountResponse,
    DateRangeResponse,
    DeleteResponse,
    HourlyBucketOut,
    ImportErrorCode,
    ImportResult,
    LoadReadingOut,
    RawBucketOut,
    SummaryBucketOut,
    ValidationResponse,
    WorkbookUploadResponse,
)
from datastore.readings import LoadReadingStore, build_default_store
from services.aggregator import (
    Aggregator,
    Bucket,
    HourlyBucket,
    RawBucket,
    adjust_query_end,
    select_bucket_mode,
    whole_day_range,
)
from services.importer import ImportService, build_default_importer
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()

_IMPORT_FAILURE_STATUS = {
    ImportErrorCode.workbook_not_found: status.HTTP_404_NOT_FOUND,
    ImportErrorCode.sheet_not_found: status.HTTP_404_NOT_FOUND,
    ImportErrorCode.duplicate_timestamp: status.HTTP_409_CONFLICT,
}


def get_importer() -> ImportService:
    return build_default_importer()


def get_store() -> LoadReadingStore:
    return build_default_store()


def _import_response(result: ImportResult) -> JSONResponse:
    if result.success:
        status_code = status.HTTP_200_OK
    else:
        status_code = _IMPORT_FAILURE_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


def _bucket_out(bucket: Bucket) -> RawBucketOut | HourlyBucketOut | SummaryBucketOut:
    if isinstance(bucket, RawBucket):
        return RawBucketOut.model_validate(bucket)
    if isinstance(bucket, HourlyBucket):
        return HourlyBucketOut.model_validate(bucket)
    return SummaryBucketOut.model_validate(bucket)


@router.get(
    "/readings",
    response_model=list[LoadReadingOut],
    summary="List every stored load reading in timestamp order.",
)
def list_readings(store: LoadReadingStore = Depends(get_store)) -> list[LoadReadingOut]:
    return [LoadReadingOut.model_validate(reading) for reading in store.list_all()]


@router.get(
    "/readings/range",
    response_model=list[LoadReadingOut],
    summary="List readings between two calendar days, both included.",
)
def readings_in_range(
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    store: LoadReadingStore = Depends(get_store),
) -> list[LoadReadingOut]:
    start, end = whole_day_range(start_date, end_date)
    return [LoadReadingOut.model_validate(reading) for reading in store.query_range(start, end)]


@router.get(
    "/readings/aggregated",
    response_model=AggregationResponse,
    summary="Bucket readings for charting; granularity follows the day span.",
)
def aggregated_readings(
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    days: int = Query(..., description="Number of days the chart covers."),
    report_mode: bool = Query(False, description="Return every reading unaggregated."),
    store: LoadReadingStore = Depends(get_store),
) -> AggregationResponse:
    end = adjust_query_end(start_date, end_date)
    readings = store.query_range(start_date, end)
    buckets = Aggregator().aggregate(readings, start_date, end, days, report_mode)
    return AggregationResponse(
        mode=select_bucket_mode(days, report_mode),
        buckets=[_bucket_out(bucket) for bucket in buckets],
    )


@router.get("/readings/count", response_model=CountResponse, summary="Count stored readings.")
def count_readings(store: LoadReadingStore = Depends(get_store)) -> CountResponse:
    return CountResponse(count=store.count())


@router.get(
    "/readings/daterange",
    response_model=DateRangeResponse,
    summary="Earliest and latest stored timestamps.",
)
def reading_date_range(store: LoadReadingStore = Depends(get_store)) -> DateRangeResponse:
    earliest, latest = store.min_max_timestamp()
    return DateRangeResponse(min_date=earliest, max_date=latest)


@router.post(
    "/readings/import",
    response_model=ImportResult,
    summary="Import the configured default workbook.",
)
def import_default_workbook(importer: ImportService = Depends(get_importer)) -> JSONResponse:
    key = get_settings().default_workbook
    logger.info("Importing default workbook", extra={"workbook": key})
    return _import_response(importer.import_workbook(key))


@router.post(
    "/readings/import/custom",
    response_model=ImportResult,
    summary="Import a sheet of a stored workbook.",
)
def import_custom_workbook(
    workbook: str = Query(..., description="Storage key of the workbook."),
    sheet_name: Optional[str] = Query(None),
    source: Optional[str] = Query(None, max_length=100),
    importer: ImportService = Depends(get_importer),
) -> JSONResponse:
    return _import_response(importer.import_workbook(workbook, sheet_name, source))


@router.post(
    "/readings/validate",
    response_model=ValidationResponse,
    summary="Check a workbook's layout without importing it.",
)
def validate_workbook(
    workbook: str = Query(...),
    sheet_name: Optional[str] = Query(None),
    importer: ImportService = Depends(get_importer),
) -> ValidationResponse:
    return ValidationResponse(is_valid=importer.validate_format(workbook, sheet_name))


@router.delete(
    "/readings/range",
    response_model=DeleteResponse,
    summary="Delete readings between two calendar days, both included.",
)
def delete_readings_in_range(
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    store: LoadReadingStore = Depends(get_store),
) -> DeleteResponse:
    start, end = whole_day_range(start_date, end_date)
    deleted = store.delete_range(start, end)
    logger.info("Deleted readings", extra={"affected_rows": deleted})
    return DeleteResponse(deleted=deleted)


@router.post(
    "/workbooks",
    status_code=status.HTTP_201_CREATED,
    response_model=WorkbookUploadResponse,
    summary="Upload a workbook so it can be validated and imported.",
)
def upload_workbook(
    file: UploadFile = File(..., description="Spreadsheet (.xlsx) with the load cross-table."),
    importer: ImportService = Depends(get_importer),
) -> WorkbookUploadResponse:
    key = Path(file.filename or "upload.xlsx").name
    contents = file.file.read()
    if not contents:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty.",
        )
    importer.storage.put_object(key, contents)
    return WorkbookUploadResponse(key=key)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
