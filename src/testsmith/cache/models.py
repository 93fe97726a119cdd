"""SQLAlchemy ORM model backing the SQLite cache store."""

from datetime import UTC, datetime

from sqlalchemy import LargeBinary, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CacheRecord(Base):
    __tablename__ = "parse_cache_entries"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[bytes] = mapped_column(LargeBinary)
    size: Mapped[int]
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        index=True,
    )
