"""Fingerprint- and TTL-validated cache of structural summaries.

An entry is trusted only while the source file still hashes to the
stored fingerprint and the entry is younger than ``max_age_seconds``.
Anything else (missing, stale, corrupt, unreadable) is a miss. Stale
and corrupt entries are deleted when they are read; there is no
background sweeper.

Store failures never escape: they are logged and treated as a miss or
a no-op, so a broken cache only costs a re-parse.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from testsmith.cache.fingerprint import Fingerprint, compute_fingerprint, path_key
from testsmith.cache.store import (
    FileKeyValueStore,
    KeyValueStore,
    SqlKeyValueStore,
)
from testsmith.config import Settings
from testsmith.constants import (
    CACHE_EVICTION_RATIO,
    CACHE_SQLITE_FILENAME,
    CacheBackend,
)
from testsmith.parsing.schemas import StructuralSummary
from testsmith.resilience.errors import CacheError

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """Persisted form of one cached parse. Replaced on put, never mutated."""

    model_config = ConfigDict(frozen=True)

    unit_path: str
    summary: StructuralSummary
    fingerprint: Fingerprint
    created_at: float  # epoch seconds


@dataclass(frozen=True)
class CacheStatistics:
    entry_count: int
    total_size_bytes: int
    location: str

    @property
    def total_size_mb(self) -> float:
        return self.total_size_bytes / (1024 * 1024)


class ParseCache:
    """Summaries keyed by the SHA-256 of the unit's absolute path."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        enabled: bool = True,
        max_age_seconds: float = 3600,
        max_size_bytes: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._enabled = enabled
        self._max_age = max_age_seconds
        self._max_size = max_size_bytes
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get(self, unit_path: Path) -> StructuralSummary | None:
        if not self._enabled:
            return None
        key = path_key(unit_path)
        try:
            raw = self._store.get(key)
        except CacheError as exc:
            logger.warning(
                "event=cache_read_failed path=%s error=%s", unit_path, exc
            )
            return None
        if raw is None:
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except (ValidationError, ValueError):
            logger.warning("event=cache_entry_corrupt path=%s", unit_path)
            self._discard(key)
            return None

        if entry.unit_path != str(unit_path.resolve()):
            # Path hash collision; leave the other unit's entry alone
            return None

        if self._clock() - entry.created_at >= self._max_age:
            logger.debug("event=cache_entry_expired path=%s", unit_path)
            self._discard(key)
            return None

        try:
            current = compute_fingerprint(unit_path)
        except OSError:
            self._discard(key)
            return None
        if current != entry.fingerprint:
            logger.debug("event=cache_entry_stale path=%s", unit_path)
            self._discard(key)
            return None

        return entry.summary

    def put(self, unit_path: Path, summary: StructuralSummary) -> None:
        if not self._enabled:
            return
        try:
            fingerprint = compute_fingerprint(unit_path)
        except OSError as exc:
            logger.warning(
                "event=cache_fingerprint_failed path=%s error=%s",
                unit_path,
                exc,
            )
            return
        entry = CacheEntry(
            unit_path=str(unit_path.resolve()),
            summary=summary,
            fingerprint=fingerprint,
            created_at=self._clock(),
        )
        try:
            self._store.put(
                path_key(unit_path), entry.model_dump_json().encode("utf-8")
            )
        except CacheError as exc:
            logger.warning(
                "event=cache_write_failed path=%s error=%s", unit_path, exc
            )
            return
        self._enforce_size_limit()

    def invalidate(self, unit_path: Path) -> None:
        if not self._enabled:
            return
        self._discard(path_key(unit_path))

    def clear(self) -> None:
        if not self._enabled:
            return
        try:
            self._store.clear()
        except CacheError as exc:
            logger.warning("event=cache_clear_failed error=%s", exc)
            return
        logger.info("event=cache_cleared location=%s", self._store.location)

    def statistics(self) -> CacheStatistics:
        count = 0
        size = 0
        try:
            for item in self._store.entries():
                count += 1
                size += item.size
        except CacheError as exc:
            logger.warning("event=cache_stats_failed error=%s", exc)
        return CacheStatistics(
            entry_count=count,
            total_size_bytes=size,
            location=self._store.location,
        )

    def _discard(self, key: str) -> None:
        try:
            self._store.delete(key)
        except CacheError as exc:
            logger.warning(
                "event=cache_delete_failed key=%s error=%s", key, exc
            )

    def _enforce_size_limit(self) -> None:
        """Evict oldest entries down to half the limit once it is exceeded."""
        if self._max_size is None:
            return
        try:
            items = list(self._store.entries())
        except CacheError as exc:
            logger.warning("event=cache_stats_failed error=%s", exc)
            return
        total = sum(item.size for item in items)
        if total <= self._max_size:
            return

        floor = self._max_size * CACHE_EVICTION_RATIO
        evicted = 0
        for item in sorted(items, key=lambda i: i.modified):
            if total <= floor:
                break
            self._discard(item.key)
            total -= item.size
            evicted += 1
        logger.info(
            "event=cache_evicted entries=%d remaining_bytes=%d",
            evicted,
            total,
        )


def build_parse_cache(settings: Settings) -> ParseCache:
    """ParseCache over the backend selected in settings."""
    cache_dir = settings.cache_dir
    if not cache_dir.is_absolute():
        cache_dir = settings.project_root / cache_dir

    store: KeyValueStore
    enabled = settings.cache_enabled
    match settings.cache_backend:
        case CacheBackend.SQLITE if enabled:
            try:
                store = SqlKeyValueStore.at(cache_dir / CACHE_SQLITE_FILENAME)
            except CacheError as exc:
                logger.warning(
                    "event=cache_unavailable backend=sqlite error=%s", exc
                )
                store = FileKeyValueStore(cache_dir)
                enabled = False
        case _:
            store = FileKeyValueStore(cache_dir)

    return ParseCache(
        store,
        enabled=enabled,
        max_age_seconds=settings.cache_max_age_seconds,
        max_size_bytes=settings.cache_max_size_bytes,
    )
