from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DATABASE_URL_ENV = "LOAD_DATABASE_URL"
_WORKBOOK_ROOT_ENV = "WORKBOOK_ROOT_PATH"
_DEFAULT_WORKBOOK_ENV = "DEFAULT_WORKBOOK_KEY"
_SHEET_NAME_ENV = "LOAD_SHEET_NAME"
_SOURCE_LABEL_ENV = "LOAD_SOURCE_LABEL"
_SQL_ECHO_ENV = "SQL_ECHO"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    workbook_root_path: Optional[str]
    default_workbook: str
    sheet_name: str
    source_label: str
    sql_echo: bool
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=_read_str_env(_DATABASE_URL_ENV, "sqlite:///./tmp/load_readings.db"),
        workbook_root_path=_read_optional_env(_WORKBOOK_ROOT_ENV, "./tmp/workbooks"),
        default_workbook=_read_str_env(
            _DEFAULT_WORKBOOK_ENV, "ElectricityConsumptionDifferenceTable.xlsx"
        ),
        sheet_name=_read_str_env(_SHEET_NAME_ENV, "負載交叉表"),
        source_label=_read_str_env(_SOURCE_LABEL_ENV, "負載交叉表"),
        sql_echo=_read_bool_env(_SQL_ECHO_ENV, False),
        log_level=_read_log_level("INFO"),
    )
