from __future__ import annotations

from typing import Iterable

from datastore.readings import build_default_store
from services.importer import build_default_importer
from settings import get_settings
from storage.workbooks import build_default_storage


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    workbook_root = tmp_path / "workbooks"
    database_path = tmp_path / "data" / "load.db"

    monkeypatch.setenv("LOAD_DATABASE_URL", f"sqlite:///{database_path}")
    monkeypatch.setenv("WORKBOOK_ROOT_PATH", str(workbook_root))
    monkeypatch.setenv("DEFAULT_WORKBOOK_KEY", "monthly.xlsx")
    monkeypatch.setenv("LOAD_SHEET_NAME", "Load")
    monkeypatch.setenv("LOAD_SOURCE_LABEL", "feeder-3")
    monkeypatch.setenv("SQL_ECHO", "yes")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    caches = (
        get_settings,
        build_default_storage,
        build_default_store,
        build_default_importer,
    )
    _clear_caches(caches)

    settings = get_settings()
    storage = build_default_storage()
    store = build_default_store()
    importer = build_default_importer()

    try:
        assert settings.default_workbook == "monthly.xlsx"
        assert settings.sql_echo is True
        assert settings.log_level == "DEBUG"
        assert storage.root_path == workbook_root
        assert workbook_root.is_dir()
        assert database_path.exists()
        assert store.engine.echo is True
        assert importer.storage is storage
        assert importer.store is store
        assert importer.default_sheet == "Load"
        assert importer.default_source == "feeder-3"
    finally:
        store.dispose()
        _clear_caches(caches)


def test_defaults_without_environment(monkeypatch) -> None:
    for name in (
        "LOAD_DATABASE_URL",
        "WORKBOOK_ROOT_PATH",
        "DEFAULT_WORKBOOK_KEY",
        "LOAD_SHEET_NAME",
        "LOAD_SOURCE_LABEL",
        "SQL_ECHO",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.database_url == "sqlite:///./tmp/load_readings.db"
    assert settings.workbook_root_path == "./tmp/workbooks"
    assert settings.default_workbook == "ElectricityConsumptionDifferenceTable.xlsx"
    assert settings.sheet_name == "負載交叉表"
    assert settings.source_label == "負載交叉表"
    assert settings.sql_echo is False
    assert settings.log_level == "INFO"


def test_blank_and_unknown_values_fall_back(monkeypatch) -> None:
    monkeypatch.setenv("LOAD_SHEET_NAME", "   ")
    monkeypatch.setenv("SQL_ECHO", "maybe")
    monkeypatch.setenv("LOG_LEVEL", "")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.sheet_name == "負載交叉表"
    assert settings.sql_echo is False
    assert settings.log_level == "INFO"
    assert settings.workbook_root_path is None
