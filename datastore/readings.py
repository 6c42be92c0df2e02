"""Relational time-series store for load readings."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import (
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from models.records import REMARKS_MAX_LENGTH, SOURCE_MAX_LENGTH, LoadReading, utcnow
from settings import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class LoadReadingRow(Base):
    __tablename__ = "load_readings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(SOURCE_MAX_LENGTH), nullable=True)
    imported_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(String(REMARKS_MAX_LENGTH), nullable=True)

    __table_args__ = (
        UniqueConstraint("timestamp", name="uq_load_readings_timestamp"),
        Index("ix_load_readings_source", "source"),
        Index("ix_load_readings_timestamp_source", "timestamp", "source"),
    )

    def to_reading(self) -> LoadReading:
        return LoadReading(
            id=self.id,
            timestamp=self.timestamp,
            value=self.value,
            source=self.source,
            imported_at=self.imported_at,
            remarks=self.remarks,
        )


class StoreError(RuntimeError):
    """Raised when a batch commit fails; nothing from the batch is applied."""


class DuplicateTimestampError(StoreError):
    """Raised when a commit would store two readings with the same timestamp."""


def _is_duplicate_timestamp(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message and "timestamp" in message


_Operation = Callable[[Session], int]


def _assign_ids(readings: List[LoadReading], rows: List[LoadReadingRow]) -> None:
    for reading, row in zip(readings, rows):
        reading.id = row.id


class ReadingBatch:
    """Staged inserts, updates and deletes applied by a single commit.

    Nothing touches the database until :meth:`commit`. The commit runs in one
    transaction: either every staged operation is applied or none is.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._operations: List[_Operation] = []
        self._after_commit: List[Callable[[], None]] = []

    def __enter__(self) -> "ReadingBatch":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.discard()

    @property
    def pending(self) -> int:
        return len(self._operations)

    def append(self, reading: LoadReading) -> None:
        self.append_many([reading])

    def append_many(self, readings: Iterable[LoadReading]) -> None:
        staged = list(readings)
        if not staged:
            return

        def _insert(session: Session) -> int:
            rows = [
                LoadReadingRow(
                    timestamp=reading.timestamp,
                    value=reading.value,
                    source=reading.source,
                    imported_at=reading.imported_at or utcnow(),
                    remarks=reading.remarks,
                )
                for reading in staged
            ]
            session.add_all(rows)
            session.flush()
            self._after_commit.append(lambda: _assign_ids(staged, rows))
            return len(rows)

        self._operations.append(_insert)

    def update(self, reading: LoadReading) -> None:
        """Stage a change of value, remarks and source for an existing reading."""
        if reading.id is None:
            raise ValueError("Only persisted readings can be updated.")

        def _update(session: Session) -> int:
            row = session.get(LoadReadingRow, reading.id)
            if row is None:
                return 0
            row.value = reading.value
            row.remarks = reading.remarks
            row.source = reading.source
            session.flush()
            return 1

        self._operations.append(_update)

    def delete(self, reading_id: int) -> None:
        def _delete(session: Session) -> int:
            result = session.execute(
                delete(LoadReadingRow).where(LoadReadingRow.id == reading_id)
            )
            return result.rowcount or 0

        self._operations.append(_delete)

    def delete_range(self, start: datetime, end: datetime) -> None:
        def _delete_range(session: Session) -> int:
            result = session.execute(
                delete(LoadReadingRow).where(
                    LoadReadingRow.timestamp >= start,
                    LoadReadingRow.timestamp <= end,
                )
            )
            return result.rowcount or 0

        self._operations.append(_delete_range)

    def commit(self) -> int:
        """Apply every staged operation atomically and return the rows affected."""
        operations, self._operations = self._operations, []
        self._after_commit = []
        if not operations:
            return 0

        affected = 0
        with self._session_factory() as session:
            try:
                with session.begin():
                    for operation in operations:
                        affected += operation(session)
            except IntegrityError as exc:
                if _is_duplicate_timestamp(exc):
                    raise DuplicateTimestampError(
                        f"Duplicate timestamp rejected by the store: {exc.orig}"
                    ) from exc
                raise StoreError(f"Commit failed: {exc.orig}") from exc
            except SQLAlchemyError as exc:
                raise StoreError(f"Commit failed: {exc}") from exc

        for callback in self._after_commit:
            callback()
        self._after_commit = []

        logger.debug("Committed reading batch", extra={"affected_rows": affected})
        return affected

    def discard(self) -> None:
        self._operations.clear()
        self._after_commit.clear()


class LoadReadingStore:
    """Readings keyed by unique timestamp, queried by inclusive ranges."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    def batch(self) -> ReadingBatch:
        return ReadingBatch(self._session_factory)

    def append_many(self, readings: Iterable[LoadReading]) -> int:
        with self.batch() as batch:
            batch.append_many(readings)
            return batch.commit()

    def delete_range(self, start: datetime, end: datetime) -> int:
        with self.batch() as batch:
            batch.delete_range(start, end)
            return batch.commit()

    def get(self, reading_id: int) -> Optional[LoadReading]:
        with self._session_factory() as session:
            row = session.get(LoadReadingRow, reading_id)
            return row.to_reading() if row is not None else None

    def list_all(self) -> list[LoadReading]:
        return self._fetch(select(LoadReadingRow).order_by(LoadReadingRow.timestamp))

    def query_range(self, start: datetime, end: datetime) -> list[LoadReading]:
        statement = (
            select(LoadReadingRow)
            .where(LoadReadingRow.timestamp >= start, LoadReadingRow.timestamp <= end)
            .order_by(LoadReadingRow.timestamp)
        )
        return self._fetch(statement)

    def query_source(self, source: str) -> list[LoadReading]:
        statement = (
            select(LoadReadingRow)
            .where(LoadReadingRow.source == source)
            .order_by(LoadReadingRow.timestamp)
        )
        return self._fetch(statement)

    def exists(self, timestamp: datetime) -> bool:
        statement = select(LoadReadingRow.id).where(LoadReadingRow.timestamp == timestamp)
        with self._session_factory() as session:
            return session.execute(statement.limit(1)).first() is not None

    def count(self) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(LoadReadingRow)) or 0

    def min_max_timestamp(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        statement = select(
            func.min(LoadReadingRow.timestamp), func.max(LoadReadingRow.timestamp)
        )
        with self._session_factory() as session:
            earliest, latest = session.execute(statement).one()
        return earliest, latest

    def _fetch(self, statement) -> list[LoadReading]:
        with self._session_factory() as session:
            return [row.to_reading() for row in session.scalars(statement)]


def create_store(database_url: str, echo: bool = False) -> LoadReadingStore:
    """Build a store for ``database_url`` and make sure its schema exists."""
    url = make_url(database_url)
    engine_kwargs: dict = {"echo": echo}
    if url.get_backend_name() == "sqlite":
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    store = LoadReadingStore(create_engine(url, **engine_kwargs))
    store.create_schema()
    return store


@lru_cache
def build_default_store(database_url: Optional[str] = None) -> LoadReadingStore:
    settings = get_settings()
    url = settings.database_url if database_url is None else database_url
    return create_store(url, echo=settings.sql_echo)
