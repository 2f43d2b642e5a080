"""Participants and the pool they are drawn from."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from .errors import EmptyPoolError, ValidationError

MAX_PARTICIPANT_ID_LENGTH = 50
MAX_PARTICIPANT_NAME_LENGTH = 100


@dataclass(frozen=True)
class Participant:
    """A person eligible to win.

    Attributes
    ----------
    id : str
        Identifier unique within the pool (1-50 characters).
    name : str
        Display name (1-100 characters).
    """

    id: str
    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not isinstance(self.name, str):
            raise ValidationError("Participant id and name must be strings")
        if not 1 <= len(self.id) <= MAX_PARTICIPANT_ID_LENGTH:
            raise ValidationError(
                f"Participant id must be 1-{MAX_PARTICIPANT_ID_LENGTH} characters: {self.id!r}"
            )
        if not 1 <= len(self.name) <= MAX_PARTICIPANT_NAME_LENGTH:
            raise ValidationError(
                f"Participant name must be 1-{MAX_PARTICIPANT_NAME_LENGTH} characters "
                f"(participant {self.id!r})"
            )

    def to_json(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_json(cls, data: object) -> "Participant":
        if not isinstance(data, dict):
            raise ValidationError(f"Participant entry must be an object: {data!r}")
        return cls(id=data.get("id"), name=data.get("name"))  # type: ignore[arg-type]


def ensure_unique_ids(participants: Iterable[Participant]) -> list[Participant]:
    """Return ``participants`` as a list, raising if two share an id."""

    result: list[Participant] = []
    seen: set[str] = set()
    for participant in participants:
        if participant.id in seen:
            raise ValidationError(f"Duplicate participant id: {participant.id}")
        seen.add(participant.id)
        result.append(participant)
    return result


class ParticipantPool:
    """Mutable set of undrawn participants.

    Membership is keyed by participant id. Insertion order is retained so a
    presentation layer can list members stably, but the draw itself never
    depends on it.
    """

    def __init__(
        self,
        participants: Iterable[Participant] = (),
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        # OS entropy unless a seeded Random is injected.
        self._rng = rng or random.SystemRandom()
        self._members: dict[str, Participant] = {}
        self.replace(participants)

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._members

    def __iter__(self) -> Iterator[Participant]:
        return iter(list(self._members.values()))

    def size(self) -> int:
        return len(self._members)

    def is_empty(self) -> bool:
        return not self._members

    def contains(self, participant_id: str) -> bool:
        return participant_id in self._members

    def get(self, participant_id: str) -> Optional[Participant]:
        return self._members.get(participant_id)

    def members(self) -> list[Participant]:
        """Return the current members in insertion order."""
        return list(self._members.values())

    def ids(self) -> set[str]:
        return set(self._members)

    def pick(self) -> Participant:
        """Return a uniformly random member without removing it.

        Raises
        ------
        EmptyPoolError
            If the pool has no members.
        """
        if not self._members:
            raise EmptyPoolError("Cannot draw from an empty participant pool")
        return self._rng.choice(list(self._members.values()))

    def add(self, participant: Participant) -> bool:
        """Add ``participant``; returns ``False`` and changes nothing if its id is present."""
        if participant.id in self._members:
            return False
        self._members[participant.id] = participant
        return True

    def remove(self, participant_id: str) -> bool:
        """Remove the member with ``participant_id``; returns whether it was present."""
        return self._members.pop(participant_id, None) is not None

    def replace(self, participants: Iterable[Participant]) -> None:
        """Replace all members with a fresh copy of ``participants``.

        Raises
        ------
        ValidationError
            If two participants share an id. The pool is left unchanged.
        """
        unique = ensure_unique_ids(participants)
        self._members = {participant.id: participant for participant in unique}


__all__ = [
    "MAX_PARTICIPANT_ID_LENGTH",
    "MAX_PARTICIPANT_NAME_LENGTH",
    "Participant",
    "ParticipantPool",
    "ensure_unique_ids",
]
