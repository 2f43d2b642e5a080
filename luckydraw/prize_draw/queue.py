"""Prize tiers and the expanded queue of prize instances."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .errors import ValidationError

MIN_TIER_QUANTITY = 1
MAX_TIER_QUANTITY = 1000
MAX_TIER_NAME_LENGTH = 100


@dataclass(frozen=True)
class PrizeTier:
    """A named prize category awarded ``quantity`` times.

    Attributes
    ----------
    id : int
        Priority key; lower is more prestigious (``1`` is usually the grand prize).
    name : str
        Display name (1-100 characters).
    quantity : int
        Number of instances to award, between 1 and 1000.
    localized_name : Optional[str]
        Alternate-language display name, if one was supplied.
    """

    id: int
    name: str
    quantity: int
    localized_name: Optional[str] = None

    def validate(self) -> None:
        """Raise :class:`ValidationError` if the tier breaks its invariants."""
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise ValidationError(f"Prize tier id must be a positive integer: {self.id!r}")
        if not isinstance(self.name, str) or not 1 <= len(self.name) <= MAX_TIER_NAME_LENGTH:
            raise ValidationError(
                f"Prize tier {self.id} name must be 1-{MAX_TIER_NAME_LENGTH} characters"
            )
        if (
            isinstance(self.quantity, bool)
            or not isinstance(self.quantity, int)
            or not MIN_TIER_QUANTITY <= self.quantity <= MAX_TIER_QUANTITY
        ):
            raise ValidationError(
                f"Prize tier {self.id} quantity must be an integer between "
                f"{MIN_TIER_QUANTITY} and {MAX_TIER_QUANTITY}: {self.quantity!r}"
            )
        if self.localized_name is not None and not isinstance(self.localized_name, str):
            raise ValidationError(f"Prize tier {self.id} localized name must be a string")

    def display_name(self, *, localized: bool = False) -> str:
        if localized and self.localized_name:
            return self.localized_name
        return self.name

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "localized_name": self.localized_name,
            "quantity": self.quantity,
        }

    @classmethod
    def from_json(cls, data: object) -> "PrizeTier":
        if not isinstance(data, dict):
            raise ValidationError(f"Prize tier entry must be an object: {data!r}")
        tier = cls(
            id=data.get("id"),  # type: ignore[arg-type]
            name=data.get("name"),  # type: ignore[arg-type]
            quantity=data.get("quantity"),  # type: ignore[arg-type]
            localized_name=data.get("localized_name"),
        )
        tier.validate()
        return tier


@dataclass(frozen=True)
class PrizeQueueEntry:
    """One concrete award slot, e.g. "Second Prize #2 of 3"."""

    tier_id: int
    name: str
    quantity: int
    instance_number: int
    localized_name: Optional[str] = None

    def label(self, *, localized: bool = False) -> str:
        """Return the display label, suffixed with the instance number when the tier has several."""
        name = self.localized_name if localized and self.localized_name else self.name
        if self.quantity > 1:
            return f"{name} #{self.instance_number}"
        return name

    def to_json(self) -> dict:
        return {
            "tier_id": self.tier_id,
            "name": self.name,
            "localized_name": self.localized_name,
            "quantity": self.quantity,
            "instance_number": self.instance_number,
        }

    @classmethod
    def from_json(cls, data: object) -> "PrizeQueueEntry":
        if not isinstance(data, dict):
            raise ValidationError(f"Prize entry must be an object: {data!r}")
        tier_id = data.get("tier_id")
        name = data.get("name")
        quantity = data.get("quantity")
        instance_number = data.get("instance_number")
        localized_name = data.get("localized_name")
        for field_name, value in (
            ("tier_id", tier_id),
            ("quantity", quantity),
            ("instance_number", instance_number),
        ):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"Prize entry {field_name} must be an integer: {value!r}")
        if not isinstance(name, str) or not name:
            raise ValidationError("Prize entry name must be a non-empty string")
        if localized_name is not None and not isinstance(localized_name, str):
            raise ValidationError("Prize entry localized name must be a string")
        return cls(
            tier_id=tier_id,  # type: ignore[arg-type]
            name=name,
            quantity=quantity,  # type: ignore[arg-type]
            instance_number=instance_number,  # type: ignore[arg-type]
            localized_name=localized_name,
        )


def validate_tiers(tiers: Iterable[PrizeTier]) -> list[PrizeTier]:
    """Validate every tier and reject duplicate ids; returns the tiers as a list."""

    result: list[PrizeTier] = []
    seen: set[int] = set()
    for tier in tiers:
        if not isinstance(tier, PrizeTier):
            raise ValidationError(f"Expected a PrizeTier, got {type(tier).__name__}")
        tier.validate()
        if tier.id in seen:
            raise ValidationError(f"Duplicate prize tier id: {tier.id}")
        seen.add(tier.id)
        result.append(tier)
    return result


class PrizeQueue:
    """Immutable, fully expanded sequence of prize instances.

    Tiers are ordered by id descending so the least prestigious prize is drawn
    first and the grand prize last. Each tier contributes ``quantity``
    consecutive entries numbered from 1. The queue itself holds no cursor;
    cursor values are owned by the caller and passed into the navigation
    helpers.
    """

    def __init__(self, tiers: Sequence[PrizeTier], entries: Sequence[PrizeQueueEntry]) -> None:
        self._tiers = tuple(tiers)
        self._entries = tuple(entries)
        self._tiers_by_id = {tier.id: tier for tier in self._tiers}

    @classmethod
    def build(cls, tiers: Iterable[PrizeTier]) -> "PrizeQueue":
        """Expand ``tiers`` into a queue.

        Raises
        ------
        ValidationError
            If any tier has an invalid id, name or quantity, or ids repeat.
        """
        validated = validate_tiers(tiers)
        entries: list[PrizeQueueEntry] = []
        for tier in sorted(validated, key=lambda t: t.id, reverse=True):
            for instance_number in range(1, tier.quantity + 1):
                entries.append(
                    PrizeQueueEntry(
                        tier_id=tier.id,
                        name=tier.name,
                        quantity=tier.quantity,
                        instance_number=instance_number,
                        localized_name=tier.localized_name,
                    )
                )
        return cls(validated, entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> PrizeQueueEntry:
        return self._entries[index]

    @property
    def entries(self) -> tuple[PrizeQueueEntry, ...]:
        return self._entries

    @property
    def tiers(self) -> tuple[PrizeTier, ...]:
        """Tiers in the order they were supplied."""
        return self._tiers

    @property
    def total_quantity(self) -> int:
        return len(self._entries)

    def tier(self, tier_id: int) -> Optional[PrizeTier]:
        return self._tiers_by_id.get(tier_id)

    def current(self, cursor: int) -> Optional[PrizeQueueEntry]:
        if 0 <= cursor < len(self._entries):
            return self._entries[cursor]
        return None

    def advance(self, cursor: int) -> int:
        return min(cursor + 1, len(self._entries))

    def retreat(self, cursor: int) -> int:
        return max(cursor - 1, 0)

    def clamp(self, cursor: object) -> int:
        """Coerce an untrusted cursor value into ``[0, len(queue)]``."""
        if isinstance(cursor, bool) or not isinstance(cursor, (int, float)):
            return 0
        if cursor != cursor:  # NaN
            return 0
        if cursor in (float("inf"), float("-inf")):
            return len(self._entries) if cursor > 0 else 0
        return max(0, min(int(cursor // 1), len(self._entries)))

    def find_slot_for_tier(self, tier_id: int, occurrence: int) -> Optional[int]:
        """Return the index of the ``occurrence``-th (1-based) slot of ``tier_id``.

        Returns ``None`` when the tier is unknown or ``occurrence`` is outside
        ``1..quantity``.
        """
        if occurrence < 1:
            return None
        seen = 0
        for index, entry in enumerate(self._entries):
            if entry.tier_id == tier_id:
                seen += 1
                if seen == occurrence:
                    return index
        return None


__all__ = [
    "MAX_TIER_NAME_LENGTH",
    "MAX_TIER_QUANTITY",
    "MIN_TIER_QUANTITY",
    "PrizeQueue",
    "PrizeQueueEntry",
    "PrizeTier",
    "validate_tiers",
]
