"""Committed winners and their reversal."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..db.utils import dt_iso, parse_dt_iso
from .errors import ValidationError
from .participants import Participant
from .queue import PrizeQueueEntry


@dataclass(frozen=True)
class WinnerEntry:
    """A participant bound to the prize instance they were awarded.

    Attributes
    ----------
    participant : Participant
        Frozen copy of the winner as it was in the pool.
    prize : PrizeQueueEntry
        Snapshot of the queue slot that was active at confirmation.
    timestamp : datetime
        Timezone-aware moment the award was confirmed.
    """

    participant: Participant
    prize: PrizeQueueEntry
    timestamp: datetime

    @property
    def participant_id(self) -> str:
        return self.participant.id

    def to_json(self) -> dict:
        return {
            "participant": self.participant.to_json(),
            "prize": self.prize.to_json(),
            "timestamp": dt_iso(self.timestamp),
        }

    @classmethod
    def from_json(cls, data: object) -> "WinnerEntry":
        if not isinstance(data, dict):
            raise ValidationError(f"Winner entry must be an object: {data!r}")
        raw_timestamp = data.get("timestamp")
        if not isinstance(raw_timestamp, str):
            raise ValidationError("Winner entry timestamp must be an ISO 8601 string")
        try:
            timestamp = parse_dt_iso(raw_timestamp)
        except ValueError as exc:
            raise ValidationError(f"Invalid winner timestamp: {raw_timestamp!r}") from exc
        return cls(
            participant=Participant.from_json(data.get("participant")),
            prize=PrizeQueueEntry.from_json(data.get("prize")),
            timestamp=timestamp,  # type: ignore[arg-type]
        )


class WinnerLedger:
    """Award-ordered list of winners.

    Only two removals exist: :meth:`pop_last` (undo of the latest
    confirmation) and :meth:`remove_by_id` (targeted correction of an earlier
    award). Restoring the pool and cursor is the orchestrator's job.
    """

    def __init__(self, entries: Iterable[WinnerEntry] = ()) -> None:
        self._entries: list[WinnerEntry] = list(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __contains__(self, participant_id: object) -> bool:
        return any(entry.participant.id == participant_id for entry in self._entries)

    def append(self, entry: WinnerEntry) -> None:
        self._entries.append(entry)

    def pop_last(self) -> Optional[WinnerEntry]:
        if not self._entries:
            return None
        return self._entries.pop()

    def remove_by_id(self, participant_id: str) -> Optional[WinnerEntry]:
        """Remove and return the first entry awarded to ``participant_id``."""
        for index, entry in enumerate(self._entries):
            if entry.participant.id == participant_id:
                return self._entries.pop(index)
        return None

    def last(self) -> Optional[WinnerEntry]:
        return self._entries[-1] if self._entries else None

    def entries(self) -> list[WinnerEntry]:
        return list(self._entries)

    def ids(self) -> list[str]:
        return [entry.participant.id for entry in self._entries]

    def entries_for_tier(self, tier_id: int) -> list[WinnerEntry]:
        return [entry for entry in self._entries if entry.prize.tier_id == tier_id]

    def count_for_tier(self, tier_id: int) -> int:
        return sum(1 for entry in self._entries if entry.prize.tier_id == tier_id)

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["WinnerEntry", "WinnerLedger"]
