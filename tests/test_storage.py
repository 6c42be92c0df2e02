from __future__ import annotations

import pytest

from storage.workbooks import WorkbookStorage


def test_in_memory_storage_round_trip() -> None:
    storage = WorkbookStorage(name="memory")

    storage.put_object("a.xlsx", b"first")

    assert storage.exists("a.xlsx")
    assert not storage.exists("b.xlsx")
    assert storage.get_object("a.xlsx") == b"first"
    assert list(storage.list_objects()) == ["a.xlsx"]


def test_missing_object_raises_key_error() -> None:
    storage = WorkbookStorage(name="memory")

    with pytest.raises(KeyError):
        storage.get_object("missing.xlsx")


def test_disk_backed_storage_sees_existing_files(tmp_path) -> None:
    (tmp_path / "archive").mkdir()
    (tmp_path / "archive" / "2023.xlsx").write_bytes(b"old")

    storage = WorkbookStorage(name="disk", root_path=tmp_path)
    storage.put_object("new.xlsx", b"new")

    assert (tmp_path / "new.xlsx").read_bytes() == b"new"
    assert storage.exists("archive/2023.xlsx")
    assert storage.get_object("archive/2023.xlsx") == b"old"
    assert list(storage.list_objects()) == ["archive/2023.xlsx", "new.xlsx"]


def test_open_workbook_reads_cached_values(tmp_path, workbook_bytes) -> None:
    data = workbook_bytes([["Time", "2024/01/01"], ["00:00", 12.5]], sheet_name="Load")
    memory = WorkbookStorage(name="memory")
    disk = WorkbookStorage(name="disk", root_path=tmp_path)
    memory.put_object("load.xlsx", data)
    disk.put_object("load.xlsx", data)

    for storage in (memory, disk):
        with storage.open_workbook("load.xlsx") as workbook:
            assert workbook.sheetnames == ["Load"]
            rows = list(workbook["Load"].iter_rows(values_only=True))
        assert rows == [("Time", "2024/01/01"), ("00:00", 12.5)]


def test_open_workbook_for_unknown_key(tmp_path) -> None:
    storage = WorkbookStorage(name="disk", root_path=tmp_path)

    with pytest.raises(KeyError):
        with storage.open_workbook("ghost.xlsx"):
            pass
