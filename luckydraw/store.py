"""Persistence collaborators for draw snapshots.

Every store follows the same contract: ``save`` reports success as a bool,
``load`` returns ``None`` when nothing usable is stored, and neither raises
for transport failures. A live event must keep running even if auto-save
breaks.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional, Protocol

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .models import DrawSnapshotRecord
from .prize_draw.errors import ValidationError
from .prize_draw.snapshot import DrawSnapshot

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_SNAPSHOT_KEY = "default"


def snapshot_key_from_env() -> str:
    return os.getenv("LUCKYDRAW_SNAPSHOT_KEY") or DEFAULT_SNAPSHOT_KEY


class SnapshotStore(Protocol):
    def save(self, snapshot: DrawSnapshot) -> bool: ...

    def load(self) -> Optional[DrawSnapshot]: ...

    def clear(self) -> None: ...


class MemorySnapshotStore:
    """Keeps the last snapshot as a JSON string, like a browser key-value slot."""

    def __init__(self) -> None:
        self._blob: Optional[str] = None
        self.save_count = 0

    def save(self, snapshot: DrawSnapshot) -> bool:
        try:
            self._blob = snapshot.to_json_str()
        except (TypeError, ValueError) as exc:
            logger.error("Failed to serialize snapshot: %s", exc)
            return False
        self.save_count += 1
        return True

    def load(self) -> Optional[DrawSnapshot]:
        if self._blob is None:
            return None
        try:
            return DrawSnapshot.from_json_str(self._blob)
        except ValidationError as exc:
            logger.error("Failed to load snapshot: %s", exc)
            return None

    def clear(self) -> None:
        self._blob = None


class SqlSnapshotStore:
    """Stores snapshots in the ``draw_snapshots`` table, one row per ``key``.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory producing sessions bound to the target database.
    key : Optional[str], default: None
        Row key. Defaults to ``LUCKYDRAW_SNAPSHOT_KEY`` or ``"default"``.
    """

    def __init__(self, session_factory: sessionmaker, *, key: Optional[str] = None) -> None:
        self._session_factory = session_factory
        self.key = key or snapshot_key_from_env()

    def save(self, snapshot: DrawSnapshot) -> bool:
        try:
            payload = json.loads(snapshot.to_json_str())
            with self._session_factory.begin() as session:
                self._upsert(session, snapshot, payload)
        except SQLAlchemyError as exc:
            logger.critical("Failed to save draw snapshot %r: %s", self.key, exc)
            return False
        except (TypeError, ValueError) as exc:
            logger.error("Failed to serialize draw snapshot %r: %s", self.key, exc)
            return False
        logger.debug("Saved draw snapshot %r", self.key)
        return True

    def _upsert(self, session: Session, snapshot: DrawSnapshot, payload: dict) -> None:
        record = DrawSnapshotRecord.get_by_key(session, self.key)
        if record is None:
            session.add(
                DrawSnapshotRecord(key=self.key, payload=payload, saved_at=snapshot.saved_at)
            )
        else:
            record.payload = payload
            record.saved_at = snapshot.saved_at

    def load(self) -> Optional[DrawSnapshot]:
        try:
            with self._session_factory() as session:
                record = DrawSnapshotRecord.get_by_key(session, self.key)
                payload = record.payload if record is not None else None
        except SQLAlchemyError as exc:
            logger.critical("Failed to load draw snapshot %r: %s", self.key, exc)
            return None
        if payload is None:
            return None
        try:
            return DrawSnapshot.from_json(payload)
        except ValidationError as exc:
            logger.error("Stored draw snapshot %r is unusable: %s", self.key, exc)
            return None

    def clear(self) -> None:
        try:
            with self._session_factory.begin() as session:
                record = DrawSnapshotRecord.get_by_key(session, self.key)
                if record is not None:
                    session.delete(record)
        except SQLAlchemyError as exc:
            logger.critical("Failed to clear draw snapshot %r: %s", self.key, exc)


__all__ = [
    "DEFAULT_SNAPSHOT_KEY",
    "MemorySnapshotStore",
    "SnapshotStore",
    "SqlSnapshotStore",
    "snapshot_key_from_env",
]
