"""Key/value stores behind the parse cache.

Implementations satisfy ``KeyValueStore`` structurally. Every I/O
failure surfaces as CacheError so the cache can absorb it in one place.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from sqlalchemy import Engine, create_engine, delete, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from testsmith.cache.models import Base, CacheRecord
from testsmith.constants import CACHE_FILE_EXTENSION
from testsmith.fileio import atomic_write_bytes
from testsmith.resilience.errors import CacheError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredItem:
    """Listing entry used for statistics and eviction."""

    key: str
    size: int
    modified: float  # epoch seconds


class KeyValueStore(Protocol):
    @property
    def location(self) -> str: ...

    def get(self, key: str) -> bytes | None: ...
    def put(self, key: str, value: bytes) -> None: ...
    def delete(self, key: str) -> None: ...
    def clear(self) -> None: ...
    def entries(self) -> Iterator[StoredItem]: ...


class FileKeyValueStore:
    """One ``<key>.json`` file per entry in a flat directory.

    Writes go to a temp file in the same directory and are renamed
    into place, so a concurrent reader of any key never sees a torn
    entry.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def location(self) -> str:
        return str(self._root.resolve())

    def _path(self, key: str) -> Path:
        return self._root / f"{key}{CACHE_FILE_EXTENSION}"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"read failed: {path}", detail=str(exc)) from exc

    def put(self, key: str, value: bytes) -> None:
        path = self._path(key)
        try:
            atomic_write_bytes(path, value)
        except OSError as exc:
            raise CacheError(f"write failed: {path}", detail=str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise CacheError(f"delete failed: {key}", detail=str(exc)) from exc

    def clear(self) -> None:
        for item in list(self.entries()):
            self.delete(item.key)

    def entries(self) -> Iterator[StoredItem]:
        if not self._root.is_dir():
            return
        try:
            with os.scandir(self._root) as it:
                for entry in it:
                    if not entry.name.endswith(CACHE_FILE_EXTENSION):
                        continue
                    if not entry.is_file():
                        continue
                    try:
                        stat = entry.stat()
                    except FileNotFoundError:
                        continue  # removed between listing and stat
                    yield StoredItem(
                        key=entry.name[: -len(CACHE_FILE_EXTENSION)],
                        size=stat.st_size,
                        modified=stat.st_mtime,
                    )
        except OSError as exc:
            raise CacheError(
                f"listing failed: {self._root}", detail=str(exc)
            ) from exc


def create_cache_engine(db_path: Path) -> Engine:
    """SQLite engine with WAL journal mode for concurrent readers."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")

    @event.listens_for(engine, "connect")
    def _set_wal_mode(
        dbapi_conn: object,
        _connection_record: object,
    ) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


class SqlKeyValueStore:
    """One row per entry in a SQLite table; each put is one transaction."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            engine, expire_on_commit=False
        )

    @classmethod
    def at(cls, db_path: Path) -> SqlKeyValueStore:
        try:
            return cls(create_cache_engine(db_path))
        except (OSError, SQLAlchemyError) as exc:
            raise CacheError(
                f"cannot open cache database: {db_path}", detail=str(exc)
            ) from exc

    @property
    def location(self) -> str:
        return str(self._engine.url.database or self._engine.url)

    def get(self, key: str) -> bytes | None:
        try:
            with self._session_factory() as session:
                record = session.get(CacheRecord, key)
                return record.payload if record is not None else None
        except SQLAlchemyError as exc:
            raise CacheError(f"read failed: {key}", detail=str(exc)) from exc

    def put(self, key: str, value: bytes) -> None:
        try:
            with self._session_factory() as session, session.begin():
                session.merge(
                    CacheRecord(
                        key=key,
                        payload=value,
                        size=len(value),
                        updated_at=datetime.now(UTC),
                    )
                )
        except SQLAlchemyError as exc:
            raise CacheError(f"write failed: {key}", detail=str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            with self._session_factory() as session, session.begin():
                session.execute(
                    delete(CacheRecord).where(CacheRecord.key == key)
                )
        except SQLAlchemyError as exc:
            raise CacheError(f"delete failed: {key}", detail=str(exc)) from exc

    def clear(self) -> None:
        try:
            with self._session_factory() as session, session.begin():
                session.execute(delete(CacheRecord))
        except SQLAlchemyError as exc:
            raise CacheError("clear failed", detail=str(exc)) from exc

    def entries(self) -> Iterator[StoredItem]:
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(
                        CacheRecord.key,
                        CacheRecord.size,
                        CacheRecord.updated_at,
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise CacheError("listing failed", detail=str(exc)) from exc
        for key, size, updated_at in rows:
            if updated_at.tzinfo is None:
                updated_at = updated_at.replace(tzinfo=UTC)
            yield StoredItem(
                key=key, size=size, modified=updated_at.timestamp()
            )

    def dispose(self) -> None:
        self._engine.dispose()
