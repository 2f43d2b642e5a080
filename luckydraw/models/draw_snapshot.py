"""Database model holding persisted draw snapshots."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base


class DrawSnapshotRecord(Base):
    """One saved draw state, addressed by a caller-chosen ``key``."""

    __tablename__ = "draw_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Primary key."""

    key: Mapped[str] = mapped_column(String(100), nullable=False)
    """Event key; one row per event so several draws can share a database."""

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    """Snapshot in the shape produced by ``DrawSnapshot.to_json``."""

    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """Moment the snapshot was taken by the orchestrator."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    """Timestamp when the row was first written."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    """Timestamp bumped on every overwrite."""

    __table_args__ = (UniqueConstraint("key", name="uq_draw_snapshots_key"),)

    def __init__(
        self,
        *,
        key: str,
        payload: dict[str, Any],
        saved_at: Optional[datetime] = None,
    ) -> None:
        self.key = key
        self.payload = payload
        self.saved_at = saved_at or datetime.now(timezone.utc)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<DrawSnapshotRecord(id={id}, key={key}, saved_at={saved_at})>".format(
            id=self.id,
            key=self.key,
            saved_at=self.saved_at,
        )

    @classmethod
    def get_by_key(cls, session: Session, key: str) -> Optional["DrawSnapshotRecord"]:
        """Return the record stored under ``key`` if it exists."""

        return session.scalar(select(cls).where(cls.key == key))


__all__ = ["DrawSnapshotRecord"]
