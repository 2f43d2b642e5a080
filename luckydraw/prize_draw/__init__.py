"""Draw orchestration core: pool, prize queue, ledger and state machine."""

from .errors import (
    DrawError,
    EmptyPoolError,
    IllegalTransitionError,
    StaleReportError,
    ValidationError,
)
from .ledger import WinnerEntry, WinnerLedger
from .orchestrator import (
    DrawEvent,
    DrawOrchestrator,
    DrawPhase,
    DrawState,
    TierSummary,
    TransitionResult,
)
from .participants import Participant, ParticipantPool
from .queue import PrizeQueue, PrizeQueueEntry, PrizeTier
from .selection import (
    AsyncioSelectionAnimator,
    InstantSelectionAnimator,
    SelectionAnimator,
)
from .snapshot import DrawSnapshot

__all__ = [
    "AsyncioSelectionAnimator",
    "DrawError",
    "DrawEvent",
    "DrawOrchestrator",
    "DrawPhase",
    "DrawSnapshot",
    "DrawState",
    "EmptyPoolError",
    "IllegalTransitionError",
    "InstantSelectionAnimator",
    "Participant",
    "ParticipantPool",
    "PrizeQueue",
    "PrizeQueueEntry",
    "PrizeTier",
    "SelectionAnimator",
    "StaleReportError",
    "TierSummary",
    "TransitionResult",
    "ValidationError",
    "WinnerEntry",
    "WinnerLedger",
]
