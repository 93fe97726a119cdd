"""Content fingerprints of source files."""

from __future__ import annotations

import hashlib
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from testsmith.constants import HASH_READ_CHUNK_BYTES


class Fingerprint(BaseModel):
    """SHA-256 + size + mtime of a file at the moment it was read.

    Equal iff all three fields match.
    """

    model_config = ConfigDict(frozen=True)

    sha256: str
    size: int
    mtime_ns: int


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(HASH_READ_CHUNK_BYTES), b""):
            h.update(chunk)
    return h.hexdigest()


def compute_fingerprint(path: Path) -> Fingerprint:
    """Fingerprint ``path``. Raises OSError if it cannot be read."""
    stat = path.stat()
    return Fingerprint(
        sha256=sha256_file(path),
        size=stat.st_size,
        mtime_ns=stat.st_mtime_ns,
    )


def path_key(path: Path) -> str:
    """Deterministic storage key for a unit: SHA-256 of its absolute path."""
    return hashlib.sha256(
        str(path.resolve()).encode("utf-8")
    ).hexdigest()
