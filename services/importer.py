"""Workbook import orchestration: locate, parse, persist, report."""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Optional

from app.schemas import ImportErrorCode, ImportResult
from datastore.readings import (
    DuplicateTimestampError,
    LoadReadingStore,
    StoreError,
    build_default_store,
)
from models.records import utcnow
from services.parser import HEADER_SENTINEL, parse_load_grid
from settings import get_settings
from storage.workbooks import WorkbookStorage, build_default_storage

logger = logging.getLogger(__name__)


class ImportService:
    """Coordinates workbook storage, parsing and the reading store."""

    def __init__(
        self,
        storage: WorkbookStorage,
        store: LoadReadingStore,
        default_sheet: str,
        default_source: Optional[str],
    ) -> None:
        self.storage = storage
        self.store = store
        self.default_sheet = default_sheet
        self.default_source = default_source

    def import_workbook(
        self,
        key: str,
        sheet_name: Optional[str] = None,
        source: Optional[str] = None,
    ) -> ImportResult:
        """Import one sheet of a stored workbook.

        Never raises: every failure, expected or not, comes back as an
        unsuccessful :class:`ImportResult`. Nothing is persisted unless the
        whole batch commits.
        """
        sheet = sheet_name or self.default_sheet
        label = source if source is not None else self.default_source
        context = {"workbook": key, "sheet_name": sheet}
        start_time = time.perf_counter()
        result = ImportResult()

        try:
            logger.info("Starting workbook import", extra=context)
            self._run_import(key, sheet, label, result)
        except DuplicateTimestampError as exc:
            self._fail(result, ImportErrorCode.duplicate_timestamp, str(exc))
            logger.error("Import rejected: duplicate timestamp", extra=context)
        except StoreError as exc:
            self._fail(result, ImportErrorCode.storage_error, f"Import failed: {exc}")
            logger.error("Import failed while committing readings", extra=context)
        except Exception as exc:
            self._fail(result, ImportErrorCode.unexpected, f"Import failed: {exc}")
            logger.exception("Unexpected error while importing workbook", extra=context)
        finally:
            result.elapsed_ms = int((time.perf_counter() - start_time) * 1000)

        logger.info(
            "Finished workbook import",
            extra={
                **context,
                "imported_count": result.imported_count,
                "skipped_count": result.skipped_count,
                "elapsed_ms": result.elapsed_ms,
                "reason": result.error_code.value if result.error_code else None,
            },
        )
        return result

    def validate_format(self, key: str, sheet_name: Optional[str] = None) -> bool:
        """Cheap structural check of a workbook without parsing its body."""
        sheet = sheet_name or self.default_sheet
        try:
            if not self.storage.exists(key):
                return False
            with self.storage.open_workbook(key) as workbook:
                if sheet not in workbook.sheetnames:
                    return False
                worksheet = workbook[sheet]
                header = worksheet.cell(row=1, column=1).value
                first_date = worksheet.cell(row=1, column=2).value
        except Exception:
            logger.exception(
                "Error while validating workbook format",
                extra={"workbook": key, "sheet_name": sheet},
            )
            return False

        if header is None or str(header) != HEADER_SENTINEL:
            return False
        return first_date is not None and bool(str(first_date).strip())

    def _run_import(
        self,
        key: str,
        sheet: str,
        label: Optional[str],
        result: ImportResult,
    ) -> None:
        if not self.storage.exists(key):
            self._fail(result, ImportErrorCode.workbook_not_found, f"Workbook not found: {key}")
            logger.error("Workbook not found", extra={"workbook": key})
            return

        imported_at = utcnow()
        with self.storage.open_workbook(key) as workbook:
            if sheet not in workbook.sheetnames:
                self._fail(result, ImportErrorCode.sheet_not_found, f"Worksheet not found: {sheet}")
                logger.error("Worksheet not found", extra={"workbook": key, "sheet_name": sheet})
                return
            outcome = parse_load_grid(
                workbook[sheet].iter_rows(values_only=True),
                source=label,
                imported_at=imported_at,
            )

        result.skipped_count = outcome.skipped_count
        result.messages.extend(outcome.warnings)

        if not outcome.readings:
            self._fail(result, ImportErrorCode.no_data, "No data to import")
            logger.warning("Nothing to import", extra={"workbook": key, "sheet_name": sheet})
            return

        with self.store.batch() as batch:
            batch.append_many(outcome.readings)
            batch.commit()

        result.success = True
        result.imported_count = len(outcome.readings)
        result.messages.append(f"Imported {result.imported_count} readings")

    @staticmethod
    def _fail(result: ImportResult, code: ImportErrorCode, message: str) -> None:
        result.success = False
        result.error_code = code
        result.error_message = message


@lru_cache
def build_default_importer() -> ImportService:
    """Factory that wires the importer with the configured storage and store."""
    settings = get_settings()
    return ImportService(
        storage=build_default_storage(),
        store=build_default_store(),
        default_sheet=settings.sheet_name,
        default_source=settings.source_label,
    )
