from __future__ import annotations

import io
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Iterator, Optional, Set

from openpyxl import load_workbook
from openpyxl.workbook.workbook import Workbook

from settings import get_settings


class WorkbookStorage:
    """Keyed spreadsheet storage backed by memory and an optional directory."""

    def __init__(self, name: str, root_path: Optional[Path] = None) -> None:
        self.name = name
        self._objects: Dict[str, bytes] = {}
        self._known_keys: Set[str] = set()
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)
            self._load_existing_keys()

    def put_object(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[key] = data
            self._known_keys.add(key)
            if self.root_path:
                path = self.root_path / key
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)

    def exists(self, key: str) -> bool:
        with self._lock:
            if key in self._objects:
                return True
        return bool(self.root_path) and (self.root_path / key).is_file()

    def get_object(self, key: str) -> bytes:
        with self._lock:
            data = self._objects.get(key)
            if data is not None:
                return data

        if self.root_path:
            path = self.root_path / key
            if path.is_file():
                data = path.read_bytes()
                with self._lock:
                    self._objects[key] = data
                    self._known_keys.add(key)
                return data

        raise KeyError(f"Workbook {key!r} not found in storage {self.name!r}.")

    @contextmanager
    def open_workbook(self, key: str) -> Iterator[Workbook]:
        """Yield a parsed workbook with cached cell values instead of formulas."""

        if self.root_path and (self.root_path / key).is_file():
            workbook = load_workbook(self.root_path / key, data_only=True)
        else:
            data = self.get_object(key)
            workbook = load_workbook(io.BytesIO(data), data_only=True)
        try:
            yield workbook
        finally:
            workbook.close()

    def list_objects(self) -> Iterable[str]:
        with self._lock:
            keys = set(self._known_keys)

        if self.root_path:
            for path in self.root_path.rglob("*"):
                if path.is_file():
                    keys.add(path.relative_to(self.root_path).as_posix())

        with self._lock:
            keys.update(self._objects.keys())

        return sorted(keys)

    def _load_existing_keys(self) -> None:
        assert self.root_path is not None
        for path in self.root_path.rglob("*"):
            if path.is_file():
                key = path.relative_to(self.root_path).as_posix()
                self._known_keys.add(key)


@lru_cache
def build_default_storage(root_path: Optional[str] = None) -> WorkbookStorage:
    settings = get_settings()
    workbook_root = settings.workbook_root_path if root_path is None else root_path
    path = Path(workbook_root) if workbook_root else None
    return WorkbookStorage(name="workbooks", root_path=path)
