from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from .importers import parse_participants_csv, parse_prize_tiers_csv
from .prize_draw.ledger import WinnerEntry
from .prize_draw.orchestrator import DrawEvent, DrawOrchestrator, TransitionResult
from .prize_draw.participants import Participant
from .prize_draw.queue import PrizeTier
from .prize_draw.selection import InstantSelectionAnimator

if TYPE_CHECKING:
    import random

    from .prize_draw.selection import SelectionAnimator
    from .store import SnapshotStore

logger = logging.getLogger(__name__)


def attach_autosave(
    orchestrator: DrawOrchestrator, store: "SnapshotStore"
) -> Callable[[], None]:
    """Persist a snapshot after every committed transition.

    Parameters
    ----------
    orchestrator : DrawOrchestrator
        Orchestrator whose state changes should be saved.
    store : SnapshotStore
        Persistence collaborator receiving the snapshots.

    Returns
    -------
    Callable[[], None]
        Function that detaches the auto-save subscription.
    """

    def _save(event: DrawEvent) -> None:
        if not event.committed:
            return
        if not store.save(orchestrator.snapshot()):
            logger.error("Auto-save failed after %s", event.kind)

    return orchestrator.subscribe(_save)


def open_draw(
    participants: Iterable[Participant],
    prize_tiers: Iterable[PrizeTier],
    *,
    store: Optional["SnapshotStore"] = None,
    animator: Optional["SelectionAnimator"] = None,
    rng: Optional["random.Random"] = None,
) -> DrawOrchestrator:
    """Create an orchestrator, resuming from ``store`` when it holds a snapshot.

    The workflow performs the following steps:

    1. Build the orchestrator from the supplied participants and tiers.
    2. If ``store`` has a usable snapshot, restore it. A snapshot the core
       rejects is logged and ignored so the event can still start fresh.
    3. Move the cursor to a tier that still has prizes left.
    4. Subscribe auto-save to ``store``.

    Parameters
    ----------
    participants : Iterable[Participant]
        Participant list loaded at start-up.
    prize_tiers : Iterable[PrizeTier]
        Prize tiers loaded at start-up.
    store : Optional[SnapshotStore], default: None
        Persistence collaborator; when omitted nothing is restored or saved.
    animator : Optional[SelectionAnimator], default: None
        Winner selection collaborator; defaults to an instant animator.
    rng : Optional[random.Random], default: None
        Random source for the participant pool.

    Returns
    -------
    DrawOrchestrator
        Ready-to-use orchestrator.

    Raises
    ------
    ValidationError
        If the supplied participants or tiers are invalid.
    """
    from .prize_draw.errors import ValidationError

    orchestrator = DrawOrchestrator(
        participants,
        prize_tiers,
        animator=animator or InstantSelectionAnimator(),
        rng=rng,
    )

    if store is not None:
        snapshot = store.load()
        if snapshot is not None:
            try:
                orchestrator.restore(snapshot, notify=False)
            except ValidationError as exc:
                logger.error("Ignoring saved draw state: %s", exc)

    orchestrator.auto_select_next_tier()

    if store is not None:
        attach_autosave(orchestrator, store)
    return orchestrator


def import_participants(
    orchestrator: DrawOrchestrator,
    csv_text: str,
    *,
    store: Optional["SnapshotStore"] = None,
) -> list[Participant]:
    """Parse a participants CSV, load it and discard any saved state.

    Raises
    ------
    ValidationError
        If the CSV is malformed; the orchestrator and store are untouched.
    """
    participants = parse_participants_csv(csv_text)
    orchestrator.import_participants(participants)
    if store is not None:
        store.clear()
    return participants


def import_prize_tiers(
    orchestrator: DrawOrchestrator,
    csv_text: str,
    *,
    store: Optional["SnapshotStore"] = None,
) -> list[PrizeTier]:
    """Parse a prize tiers CSV, rebuild the queue and discard any saved state.

    Raises
    ------
    ValidationError
        If the CSV is malformed; the orchestrator and store are untouched.
    """
    tiers = parse_prize_tiers_csv(csv_text)
    orchestrator.import_prize_tiers(tiers)
    if store is not None:
        store.clear()
    return tiers


def reset_draw(
    orchestrator: DrawOrchestrator, *, store: Optional["SnapshotStore"] = None
) -> TransitionResult:
    """Reset the draw to its original participants and clear the saved state."""
    result = orchestrator.reset()
    if store is not None:
        store.clear()
    return result


def draw_once(orchestrator: DrawOrchestrator) -> Optional[Participant]:
    """Run start → stop and return the pending winner, if one was reported.

    With an asynchronous animator the winner arrives later and this returns
    ``None``; callers then wait for the ``winner_reported`` event.
    """
    if not orchestrator.start_spin():
        return None
    orchestrator.request_stop()
    return orchestrator.pending_winner


def winners_by_tier(orchestrator: DrawOrchestrator) -> dict[int, list[WinnerEntry]]:
    """Group committed winners by tier id, keeping every tier (even empty ones).

    Tiers appear in the order they were loaded; winners in award order.
    """
    grouped: dict[int, list[WinnerEntry]] = {
        tier.id: [] for tier in orchestrator.queue.tiers
    }
    for entry in orchestrator.winners():
        grouped.setdefault(entry.prize.tier_id, []).append(entry)
    return grouped
