from __future__ import annotations

import io
from datetime import date, timedelta
from typing import Any, Callable, Iterator, List, Sequence

import pytest
from openpyxl import Workbook

from datastore.readings import LoadReadingStore, build_default_store, create_store
from services.importer import build_default_importer
from settings import get_settings
from storage.workbooks import build_default_storage

SHEET_NAME = "負載交叉表"

_CACHES = (
    get_settings,
    build_default_storage,
    build_default_store,
    build_default_importer,
)


def _clear_caches() -> None:
    for cache in _CACHES:
        cache.cache_clear()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("LOAD_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("WORKBOOK_ROOT_PATH", "")
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture()
def store() -> Iterator[LoadReadingStore]:
    reading_store = create_store("sqlite://")
    yield reading_store
    reading_store.dispose()


def build_workbook_bytes(rows: Sequence[Sequence[Any]], sheet_name: str = SHEET_NAME) -> bytes:
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = sheet_name
    for row in rows:
        worksheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_load_rows(
    start: date,
    days: int,
    step_minutes: int = 30,
    date_format: str = "%Y/%m/%d",
) -> List[List[Any]]:
    """Cross-table with one date column per day and one time row per step."""
    header: List[Any] = ["Time"]
    header.extend((start + timedelta(days=offset)).strftime(date_format) for offset in range(days))
    rows = [header]
    for index, minute_of_day in enumerate(range(0, 24 * 60, step_minutes)):
        label = f"{minute_of_day // 60:02d}:{minute_of_day % 60:02d}"
        rows.append([label] + [round(100 + index + day * 0.5, 2) for day in range(days)])
    return rows


@pytest.fixture()
def workbook_bytes() -> Callable[..., bytes]:
    return build_workbook_bytes


@pytest.fixture()
def load_rows() -> Callable[..., List[List[Any]]]:
    return build_load_rows
