"""Serializable snapshot of a draw, used by persistence collaborators."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from ..db.utils import dt_iso, parse_dt_iso
from .errors import ValidationError
from .ledger import WinnerEntry
from .participants import Participant
from .queue import PrizeTier

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass
class DrawSnapshot:
    """Everything needed to resume a draw.

    Attributes
    ----------
    participants : list[Participant]
        Participants still in the pool.
    prize_tiers : list[PrizeTier]
        Source tiers; the queue is rebuilt from them on restore.
    cursor : Union[int, float]
        Saved queue position. Untrusted: the orchestrator clamps it on restore.
    winners : list[WinnerEntry]
        Ledger in award order.
    original_participants : Optional[list[Participant]]
        Full list used by reset. Older snapshots may omit it, in which case it
        is derived from pool members plus winners.
    saved_at : Optional[datetime]
        When the snapshot was taken.
    """

    participants: list[Participant]
    prize_tiers: list[PrizeTier]
    cursor: Union[int, float]
    winners: list[WinnerEntry]
    original_participants: Optional[list[Participant]] = None
    saved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def original_participants_or_derived(self) -> list[Participant]:
        if self.original_participants is not None:
            return list(self.original_participants)
        derived: dict[str, Participant] = {}
        for participant in self.participants:
            derived.setdefault(participant.id, participant)
        for entry in self.winners:
            derived.setdefault(entry.participant.id, entry.participant)
        return list(derived.values())

    def to_json(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "participants": [p.to_json() for p in self.participants],
            "prize_tiers": [t.to_json() for t in self.prize_tiers],
            "cursor": self.cursor,
            "winners": [w.to_json() for w in self.winners],
            "original_participants": (
                [p.to_json() for p in self.original_participants]
                if self.original_participants is not None
                else None
            ),
            "saved_at": dt_iso(self.saved_at),
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False)

    @classmethod
    def from_json(cls, data: object) -> "DrawSnapshot":
        """Parse a payload produced by :meth:`to_json`.

        Raises
        ------
        ValidationError
            If the payload is not an object or any nested record is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError("Snapshot payload must be an object")

        participants = [Participant.from_json(p) for p in _list_field(data, "participants")]
        prize_tiers = [PrizeTier.from_json(t) for t in _list_field(data, "prize_tiers")]
        winners = [WinnerEntry.from_json(w) for w in _list_field(data, "winners")]

        original_participants: Optional[list[Participant]] = None
        if data.get("original_participants") is not None:
            original_participants = [
                Participant.from_json(p) for p in _list_field(data, "original_participants")
            ]

        cursor = data.get("cursor", 0)
        if isinstance(cursor, bool) or not isinstance(cursor, (int, float)):
            logger.warning("Snapshot cursor %r is not a number; using 0", cursor)
            cursor = 0

        saved_at = datetime.now(timezone.utc)
        raw_saved_at = data.get("saved_at")
        if isinstance(raw_saved_at, str):
            try:
                saved_at = parse_dt_iso(raw_saved_at) or saved_at
            except ValueError:
                logger.warning("Snapshot saved_at %r is not ISO 8601", raw_saved_at)

        return cls(
            participants=participants,
            prize_tiers=prize_tiers,
            cursor=cursor,
            winners=winners,
            original_participants=original_participants,
            saved_at=saved_at,
        )

    @classmethod
    def from_json_str(cls, text: str) -> "DrawSnapshot":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Snapshot is not valid JSON: {exc}") from exc
        return cls.from_json(data)


def _list_field(data: dict, key: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"Snapshot field {key!r} must be a list")
    return value


__all__ = ["DrawSnapshot", "SNAPSHOT_VERSION"]
