"""Draw orchestration state machine.

The orchestrator ties the :class:`ParticipantPool`, :class:`PrizeQueue` and
:class:`WinnerLedger` together and is the only writer of all three. Commands
(:meth:`DrawOrchestrator.start_spin`, :meth:`DrawOrchestrator.confirm`, ...)
check every guard before mutating anything and report refusals through a
falsy :class:`TransitionResult` instead of raising.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from .errors import (
    DrawError,
    EmptyPoolError,
    IllegalTransitionError,
    StaleReportError,
    ValidationError,
)
from .ledger import WinnerEntry, WinnerLedger
from .participants import Participant, ParticipantPool, ensure_unique_ids
from .queue import PrizeQueue, PrizeQueueEntry, PrizeTier
from .selection import InstantSelectionAnimator, SelectionAnimator
from .snapshot import DrawSnapshot

if TYPE_CHECKING:
    import random

logger = logging.getLogger(__name__)


class DrawPhase(str, enum.Enum):
    READY = "ready"
    SPINNING = "spinning"
    STOPPED = "stopped"
    COMPLETE = "complete"


@dataclass(frozen=True)
class DrawState:
    """Read-only view of the orchestrator for presentation layers.

    Attributes
    ----------
    phase : DrawPhase
        Current phase; ``COMPLETE`` is derived from the ledger.
    pending_winner : Optional[Participant]
        Candidate awaiting confirm or respin.
    current_prize : Optional[PrizeQueueEntry]
        Active queue slot, ``None`` when the cursor is past the end.
    remaining_count : int
        Prize instances not yet awarded.
    awarded_count : int
        Committed winners.
    participant_count : int
        Members left in the pool.
    total_prizes : int
        Sum of all tier quantities.
    cursor : int
        Index of ``current_prize`` in the queue.
    """

    phase: DrawPhase
    pending_winner: Optional[Participant]
    current_prize: Optional[PrizeQueueEntry]
    remaining_count: int
    awarded_count: int
    participant_count: int
    total_prizes: int
    cursor: int


@dataclass(frozen=True)
class TierSummary:
    tier: PrizeTier
    awarded: int

    @property
    def remaining(self) -> int:
        return max(self.tier.quantity - self.awarded, 0)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a command. Truthy when the transition was applied."""

    ok: bool
    phase: DrawPhase
    error: Optional[DrawError] = None
    entry: Optional[WinnerEntry] = None

    def __bool__(self) -> bool:
        return self.ok

    @property
    def reason(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


@dataclass(frozen=True)
class DrawEvent:
    """Notification delivered to subscribers.

    ``committed`` is ``True`` when ledger, pool, cursor or source data changed
    and a snapshot should be persisted. Phase-only changes (spin started,
    winner reported, respin) are delivered with ``committed=False``.
    """

    kind: str
    state: DrawState
    committed: bool


Subscriber = Callable[[DrawEvent], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DrawOrchestrator:
    """State machine driving a live prize draw.

    Parameters
    ----------
    participants : Iterable[Participant]
        Original participant list; reset restores the pool from it.
    prize_tiers : Iterable[PrizeTier]
        Tiers expanded into the prize queue.
    animator : Optional[SelectionAnimator], default: None
        Collaborator that produces winners. Defaults to
        :class:`InstantSelectionAnimator`.
    rng : Optional[random.Random], default: None
        Random source for the pool; defaults to ``random.SystemRandom``.
    clock : Optional[Callable[[], datetime]], default: None
        Timestamp source for winner entries.

    Raises
    ------
    ValidationError
        If tiers or participants break their invariants.
    """

    def __init__(
        self,
        participants: Iterable[Participant],
        prize_tiers: Iterable[PrizeTier],
        *,
        animator: Optional[SelectionAnimator] = None,
        rng: Optional["random.Random"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._original_participants = _validated_participants(participants)
        self._queue = PrizeQueue.build(prize_tiers)
        self._pool = ParticipantPool(self._original_participants, rng=rng)
        self._ledger = WinnerLedger()
        self._cursor = 0
        self._phase = DrawPhase.READY
        self._pending: Optional[Participant] = None
        self._stop_requested = False
        self._session_token = 0
        self._animator: SelectionAnimator = animator or InstantSelectionAnimator()
        self._clock = clock or _utc_now
        self._subscribers: list[Subscriber] = []

    @classmethod
    def from_snapshot(
        cls,
        snapshot: DrawSnapshot,
        *,
        animator: Optional[SelectionAnimator] = None,
        rng: Optional["random.Random"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "DrawOrchestrator":
        """Build an orchestrator whose state is loaded from ``snapshot``."""
        orchestrator = cls(
            snapshot.original_participants_or_derived(),
            snapshot.prize_tiers,
            animator=animator,
            rng=rng,
            clock=clock,
        )
        orchestrator.restore(snapshot, notify=False)
        return orchestrator

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def phase(self) -> DrawPhase:
        if self._phase is DrawPhase.READY and self.is_complete:
            return DrawPhase.COMPLETE
        return self._phase

    @property
    def is_complete(self) -> bool:
        # Ledger count is authoritative; the cursor may sit anywhere after a
        # manual tier selection.
        return len(self._ledger) >= self._queue.total_quantity

    @property
    def pending_winner(self) -> Optional[Participant]:
        return self._pending

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def session_token(self) -> int:
        return self._session_token

    @property
    def queue(self) -> PrizeQueue:
        return self._queue

    @property
    def current_prize(self) -> Optional[PrizeQueueEntry]:
        return self._queue.current(self._cursor)

    @property
    def total_prizes(self) -> int:
        return self._queue.total_quantity

    @property
    def awarded_count(self) -> int:
        return len(self._ledger)

    @property
    def original_participants(self) -> list[Participant]:
        return list(self._original_participants)

    def participants(self) -> list[Participant]:
        """Undrawn participants in insertion order."""
        return self._pool.members()

    def winners(self) -> list[WinnerEntry]:
        return self._ledger.entries()

    def winners_for_tier(self, tier_id: int) -> list[WinnerEntry]:
        return self._ledger.entries_for_tier(tier_id)

    def can_draw(self) -> bool:
        return (
            self._phase is DrawPhase.READY
            and not self.is_complete
            and not self._pool.is_empty()
            and self._active_slot_error() is None
        )

    def get_state(self) -> DrawState:
        awarded = len(self._ledger)
        total = self._queue.total_quantity
        return DrawState(
            phase=self.phase,
            pending_winner=self._pending,
            current_prize=self.current_prize,
            remaining_count=max(total - awarded, 0),
            awarded_count=awarded,
            participant_count=len(self._pool),
            total_prizes=total,
            cursor=self._cursor,
        )

    def tier_summaries(self) -> list[TierSummary]:
        """Awarded/remaining counts per tier, in the order the tiers were supplied."""
        return [
            TierSummary(tier=tier, awarded=self._ledger.count_for_tier(tier.id))
            for tier in self._queue.tiers
        ]

    def snapshot(self) -> DrawSnapshot:
        return DrawSnapshot(
            participants=self._pool.members(),
            prize_tiers=list(self._queue.tiers),
            cursor=self._cursor,
            winners=self._ledger.entries(),
            original_participants=list(self._original_participants),
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for :class:`DrawEvent` notifications.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, kind: str, *, committed: bool) -> None:
        event = DrawEvent(kind=kind, state=self.get_state(), committed=committed)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("State-change subscriber failed on %s", kind)

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------
    def _ok(self, entry: Optional[WinnerEntry] = None) -> TransitionResult:
        return TransitionResult(ok=True, phase=self.phase, entry=entry)

    def _reject(self, operation: str, error: DrawError) -> TransitionResult:
        logger.debug("Rejected %s in phase %s: %s", operation, self.phase.value, error)
        return TransitionResult(ok=False, phase=self.phase, error=error)

    def _active_slot_error(self) -> Optional[DrawError]:
        """Why the cursor's slot cannot be awarded, or ``None`` if it can."""
        prize = self.current_prize
        if prize is None:
            return IllegalTransitionError("No active prize; select a prize tier first")
        tier = self._queue.tier(prize.tier_id)
        if tier is None or self._ledger.count_for_tier(prize.tier_id) >= tier.quantity:
            # Out-of-order tier selection can leave the cursor on an exhausted tier.
            return IllegalTransitionError(
                f"Prize tier {prize.tier_id} has no unawarded instances; select a prize tier"
            )
        return None

    def _cancel_selection(self) -> None:
        # Any report still in flight carries the old token and will be discarded.
        self._animator.cancel()
        self._session_token += 1
        self._pending = None
        self._stop_requested = False
        self._phase = DrawPhase.READY

    # ------------------------------------------------------------------
    # Draw cycle
    # ------------------------------------------------------------------
    def start_spin(self) -> TransitionResult:
        """READY → SPINNING: arm the animator for a new draw session."""
        if self._phase is not DrawPhase.READY:
            return self._reject(
                "start_spin",
                IllegalTransitionError(f"Cannot start a draw while {self._phase.value}"),
            )
        if self.is_complete:
            return self._reject(
                "start_spin", IllegalTransitionError("All prizes have been awarded")
            )
        if self._pool.is_empty():
            return self._reject(
                "start_spin", EmptyPoolError("No participants left to draw from")
            )
        slot_error = self._active_slot_error()
        if slot_error is not None:
            return self._reject("start_spin", slot_error)

        self._session_token += 1
        self._stop_requested = False
        self._phase = DrawPhase.SPINNING
        try:
            armed = self._animator.arm(self._session_token, self._pool, self.report_winner)
        except Exception:
            logger.exception("Selection animator failed to arm session %s", self._session_token)
            armed = False
        if not armed:
            # The bumped token stays, so a late report from this attempt is stale.
            self._phase = DrawPhase.READY
            return self._reject(
                "start_spin", IllegalTransitionError("Selection animator refused to start")
            )
        logger.debug("Draw session %s started", self._session_token)
        self._emit("spin_started", committed=False)
        return self._ok()

    def request_stop(self) -> TransitionResult:
        """Ask the animator to settle; the winner arrives later via :meth:`report_winner`."""
        if self._phase is not DrawPhase.SPINNING:
            return self._reject(
                "request_stop",
                IllegalTransitionError(f"Cannot stop while {self.phase.value}"),
            )
        if self._stop_requested:
            return self._reject(
                "request_stop", IllegalTransitionError("Stop already requested")
            )
        self._stop_requested = True
        self._emit("stop_requested", committed=False)
        self._animator.request_stop()
        return self._ok()

    def report_winner(self, token: int, participant: Optional[Participant]) -> TransitionResult:
        """Accept the animator's winner for draw session ``token``.

        Reports from an older session are discarded. A report naming someone
        who is not in the pool is refused as :class:`EmptyPoolError`.
        """
        if token != self._session_token:
            error = StaleReportError(token, self._session_token)
            logger.info("%s", error)
            return TransitionResult(ok=False, phase=self.phase, error=error)
        if self._phase is not DrawPhase.SPINNING:
            return self._reject(
                "report_winner",
                IllegalTransitionError(f"No draw is spinning (phase {self.phase.value})"),
            )
        member = self._pool.get(participant.id) if participant is not None else None
        if member is None:
            reported = participant.id if participant is not None else None
            return self._reject(
                "report_winner",
                EmptyPoolError(f"Reported winner {reported!r} is not in the participant pool"),
            )

        self._pending = member
        self._stop_requested = False
        self._phase = DrawPhase.STOPPED
        logger.debug("Draw session %s settled on participant %s", token, member.id)
        self._emit("winner_reported", committed=False)
        return self._ok()

    def confirm(self) -> TransitionResult:
        """Commit the pending winner to the active prize slot."""
        if self._phase is not DrawPhase.STOPPED or self._pending is None:
            return self._reject(
                "confirm", IllegalTransitionError("There is no pending winner to confirm")
            )
        slot_error = self._active_slot_error()
        if slot_error is not None:
            return self._reject("confirm", slot_error)

        prize = self.current_prize
        winner = self._pending
        entry = WinnerEntry(participant=winner, prize=prize, timestamp=self._clock())
        self._ledger.append(entry)
        self._pool.remove(winner.id)
        self._cursor = self._queue.advance(self._cursor)
        self._pending = None
        self._phase = DrawPhase.READY
        logger.info(
            "Awarded %s to participant %s (%s/%s)",
            prize.label(),
            winner.id,
            len(self._ledger),
            self._queue.total_quantity,
        )
        self._emit("confirmed", committed=True)
        return self._ok(entry)

    def respin(self) -> TransitionResult:
        """Discard the pending winner without touching ledger, pool or cursor."""
        if self._phase is not DrawPhase.STOPPED or self._pending is None:
            return self._reject(
                "respin", IllegalTransitionError("There is no pending winner to discard")
            )
        logger.debug("Discarded pending participant %s", self._pending.id)
        self._pending = None
        self._phase = DrawPhase.READY
        self._emit("respun", committed=False)
        return self._ok()

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------
    def undo(self) -> TransitionResult:
        """Reverse the most recent confirmation, returning its entry in the result."""
        if self._phase is not DrawPhase.READY:
            return self._reject(
                "undo", IllegalTransitionError(f"Cannot undo while {self._phase.value}")
            )
        entry = self._ledger.pop_last()
        if entry is None:
            return self._reject("undo", IllegalTransitionError("Nothing to undo"))

        self._cursor = self._queue.retreat(self._cursor)
        if not self._pool.add(entry.participant):
            logger.warning("Participant %s was already back in the pool", entry.participant.id)
        logger.info("Undid award of %s to participant %s", entry.prize.label(), entry.participant.id)
        self._emit("undone", committed=True)
        return self._ok(entry)

    def readd_winner(self, participant_id: str) -> TransitionResult:
        """Return an earlier winner to the pool.

        The cursor is left in place, so the vacated prize instance stays
        unawarded until a tier selection lands on it again.
        """
        if self._phase is not DrawPhase.READY:
            return self._reject(
                "readd_winner",
                IllegalTransitionError(f"Cannot re-add a winner while {self._phase.value}"),
            )
        entry = self._ledger.remove_by_id(participant_id)
        if entry is None:
            return self._reject(
                "readd_winner",
                IllegalTransitionError(f"Participant {participant_id!r} has not won a prize"),
            )
        if not self._pool.add(entry.participant):
            logger.warning("Participant %s was already back in the pool", participant_id)
        logger.info("Re-added participant %s, vacating %s", participant_id, entry.prize.label())
        self._emit("readded", committed=True)
        return self._ok(entry)

    def manual_select_tier(self, tier_id: int) -> TransitionResult:
        """Move the cursor to the next unawarded slot of ``tier_id``."""
        if self._phase is not DrawPhase.READY:
            return self._reject(
                "manual_select_tier",
                IllegalTransitionError(f"Cannot change prize while {self._phase.value}"),
            )
        if self.is_complete:
            return self._reject(
                "manual_select_tier", IllegalTransitionError("All prizes have been awarded")
            )
        tier = self._queue.tier(tier_id)
        if tier is None:
            return self._reject(
                "manual_select_tier", IllegalTransitionError(f"Unknown prize tier {tier_id!r}")
            )
        awarded = self._ledger.count_for_tier(tier_id)
        if awarded >= tier.quantity:
            return self._reject(
                "manual_select_tier",
                IllegalTransitionError(f"Prize tier {tier_id} has no unawarded instances"),
            )
        index = self._queue.find_slot_for_tier(tier_id, awarded + 1)
        if index is None:
            return self._reject(
                "manual_select_tier",
                IllegalTransitionError(f"Prize tier {tier_id} has no slot #{awarded + 1}"),
            )

        self._cursor = index
        logger.info("Selected prize tier %s (slot %s)", tier_id, index)
        self._emit("tier_selected", committed=True)
        return self._ok()

    def auto_select_next_tier(self) -> TransitionResult:
        """Keep the active tier if it has instances left, else select the next one.

        Tiers are tried from the least prestigious (highest id) upward, the
        same order the queue is drawn in.
        """
        if self._phase is not DrawPhase.READY:
            return self._reject(
                "auto_select_next_tier",
                IllegalTransitionError(f"Cannot change prize while {self._phase.value}"),
            )
        current = self.current_prize
        if current is not None:
            tier = self._queue.tier(current.tier_id)
            if tier is not None and self._ledger.count_for_tier(tier.id) < tier.quantity:
                return self._ok()

        for tier in sorted(self._queue.tiers, key=lambda t: t.id, reverse=True):
            if self._ledger.count_for_tier(tier.id) < tier.quantity:
                return self.manual_select_tier(tier.id)
        return self._reject(
            "auto_select_next_tier", IllegalTransitionError("All prizes have been awarded")
        )

    # ------------------------------------------------------------------
    # Whole-state operations
    # ------------------------------------------------------------------
    def reset(self, original_participants: Optional[Iterable[Participant]] = None) -> TransitionResult:
        """Clear all awards and refill the pool; legal in every phase.

        Raises
        ------
        ValidationError
            If ``original_participants`` is given and invalid. Nothing changes.
        """
        if original_participants is not None:
            originals = _validated_participants(original_participants)
        else:
            originals = list(self._original_participants)

        self._cancel_selection()
        self._original_participants = originals
        self._pool.replace(originals)
        self._ledger.clear()
        self._cursor = 0
        logger.info("Draw reset with %s participants", len(originals))
        self._emit("reset", committed=True)
        return self._ok()

    def import_participants(self, participants: Iterable[Participant]) -> TransitionResult:
        """Replace the participant list and start the draw over.

        Raises
        ------
        ValidationError
            If the list is invalid. Nothing changes.
        """
        originals = _validated_participants(participants)
        self._cancel_selection()
        self._original_participants = originals
        self._pool.replace(originals)
        self._ledger.clear()
        self._cursor = 0
        logger.info("Imported %s participants", len(originals))
        self._emit("participants_imported", committed=True)
        return self._ok()

    def import_prize_tiers(self, prize_tiers: Iterable[PrizeTier]) -> TransitionResult:
        """Rebuild the prize queue from ``prize_tiers`` and start the draw over.

        Raises
        ------
        ValidationError
            If a tier is invalid. Nothing changes.
        """
        queue = PrizeQueue.build(prize_tiers)
        self._cancel_selection()
        self._queue = queue
        self._pool.replace(self._original_participants)
        self._ledger.clear()
        self._cursor = 0
        logger.info(
            "Imported %s prize tiers (%s prizes)", len(queue.tiers), queue.total_quantity
        )
        self._emit("prize_tiers_imported", committed=True)
        return self._ok()

    def restore(self, snapshot: DrawSnapshot, *, notify: bool = True) -> TransitionResult:
        """Load ledger, pool, cursor and tiers from a persisted snapshot.

        The snapshot may have been edited by hand: the cursor is clamped to the
        queue, repeated winners are dropped, and pool members who already won
        are removed from the pool.

        Raises
        ------
        ValidationError
            If tiers or participants are invalid. Nothing changes.
        """
        queue = PrizeQueue.build(snapshot.prize_tiers)
        originals = _validated_participants(snapshot.original_participants_or_derived())

        winners: list[WinnerEntry] = []
        winner_ids: set[str] = set()
        for entry in snapshot.winners:
            if entry.participant.id in winner_ids:
                logger.warning("Dropping repeated winner %s from snapshot", entry.participant.id)
                continue
            if queue.tier(entry.prize.tier_id) is None:
                logger.warning(
                    "Winner %s holds unknown prize tier %s",
                    entry.participant.id,
                    entry.prize.tier_id,
                )
            winner_ids.add(entry.participant.id)
            winners.append(entry)

        pool_members: list[Participant] = []
        pool_ids: set[str] = set()
        for participant in snapshot.participants:
            if participant.id in winner_ids:
                logger.warning("Removing winner %s from restored pool", participant.id)
                continue
            if participant.id in pool_ids:
                logger.warning("Dropping duplicate pool member %s", participant.id)
                continue
            pool_ids.add(participant.id)
            pool_members.append(participant)

        cursor = queue.clamp(snapshot.cursor)
        if cursor != snapshot.cursor:
            logger.warning("Clamped snapshot cursor %r to %s", snapshot.cursor, cursor)

        self._cancel_selection()
        self._queue = queue
        self._original_participants = originals
        self._pool.replace(pool_members)
        self._ledger = WinnerLedger(winners)
        self._cursor = cursor
        logger.info(
            "Restored draw: %s/%s awarded, %s participants remaining",
            len(self._ledger),
            queue.total_quantity,
            len(self._pool),
        )
        if notify:
            self._emit("restored", committed=True)
        return self._ok()


def _validated_participants(participants: Iterable[Participant]) -> list[Participant]:
    items = list(participants)
    for item in items:
        if not isinstance(item, Participant):
            raise ValidationError(f"Expected a Participant, got {type(item).__name__}")
    return ensure_unique_ids(items)


__all__ = [
    "DrawEvent",
    "DrawOrchestrator",
    "DrawPhase",
    "DrawState",
    "Subscriber",
    "TierSummary",
    "TransitionResult",
]
