# fleet/core/db.py

from datetime import datetime, timezone
from typing import Any, Dict, Generator, Optional

from sqlalchemy import DateTime, Integer, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from fleet.core.config import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def engine_options(url: str) -> Dict[str, Any]:
    """
    Keyword arguments for create_engine.

    Allocation runs read payments, charges and applications after taking the
    customer row lock, and those reads must see what an earlier run committed
    while this one waited. Server databases therefore run READ COMMITTED;
    under MySQL's default REPEATABLE READ a plain SELECT would keep returning
    the snapshot taken before the lock was granted.
    """
    options: Dict[str, Any] = {"pool_pre_ping": True, "future": True}
    if not url.startswith("sqlite"):
        options["isolation_level"] = settings.db_isolation_level
    return options


engine = create_engine(settings.db_url, **engine_options(settings.db_url))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for every fleet model."""


class AuditMixin:
    """Creation/modification stamps shared by all tables."""

    created_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
        comment="Row creation timestamp"
    )
    updated_on: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=True,
        comment="Last modification timestamp"
    )
    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="User who created the row"
    )
    modified_by: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="User who last modified the row"
    )


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
