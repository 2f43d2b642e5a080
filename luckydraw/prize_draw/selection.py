"""Selection animator contract and reference implementations.

The orchestrator never picks a winner itself. It arms a
:class:`SelectionAnimator` with the current draw-session token, asks it to
stop, and later receives ``on_winner(token, participant)``. Real front ends
implement the contract around their reel or card animation; the two classes
here serve headless hosts and tests.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from dotenv import load_dotenv

from .errors import EmptyPoolError

if TYPE_CHECKING:
    from .participants import Participant, ParticipantPool

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_REVEAL_DELAY = 1.5

WinnerCallback = Callable[[int, "Participant"], None]


class SelectionAnimator(Protocol):
    def arm(self, token: int, pool: "ParticipantPool", on_winner: WinnerCallback) -> bool:
        """Start a selection run; return ``False`` if the run cannot start."""

    def request_stop(self) -> None:
        """Ask the running selection to settle on a winner and report it."""

    def cancel(self) -> None:
        """Abandon the current run without reporting."""


def reveal_delay_from_env(default: float = DEFAULT_REVEAL_DELAY) -> float:
    """Read ``LUCKYDRAW_REVEAL_DELAY`` (seconds), falling back to ``default``."""
    raw = os.getenv("LUCKYDRAW_REVEAL_DELAY")
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric LUCKYDRAW_REVEAL_DELAY=%r", raw)
        return default
    return max(0.0, value)


class InstantSelectionAnimator:
    """Picks and reports the winner synchronously inside :meth:`request_stop`."""

    def __init__(self) -> None:
        self._token: Optional[int] = None
        self._pool: Optional["ParticipantPool"] = None
        self._on_winner: Optional[WinnerCallback] = None

    @property
    def armed(self) -> bool:
        return self._token is not None

    def arm(self, token: int, pool: "ParticipantPool", on_winner: WinnerCallback) -> bool:
        if pool.is_empty():
            return False
        self._token = token
        self._pool = pool
        self._on_winner = on_winner
        return True

    def request_stop(self) -> None:
        if self._token is None or self._pool is None or self._on_winner is None:
            return
        token, pool, on_winner = self._token, self._pool, self._on_winner
        self.cancel()
        try:
            winner = pool.pick()
        except EmptyPoolError:
            logger.warning("Selection for draw session %s found an empty pool", token)
            return
        on_winner(token, winner)

    def cancel(self) -> None:
        self._token = None
        self._pool = None
        self._on_winner = None


class AsyncioSelectionAnimator:
    """Picks the winner at stop time and reveals it after a delay on an asyncio loop.

    The reveal is scheduled with ``loop.call_later`` so it arrives as a later
    callback, the way a reel animation settles. :meth:`cancel` drops a
    scheduled reveal; a reveal that still slips through after the orchestrator
    moved on is rejected by its session token.
    """

    def __init__(
        self,
        *,
        reveal_delay: Optional[float] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.reveal_delay = reveal_delay_from_env() if reveal_delay is None else reveal_delay
        self._loop = loop
        self._token: Optional[int] = None
        self._pool: Optional["ParticipantPool"] = None
        self._on_winner: Optional[WinnerCallback] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def revealing(self) -> bool:
        return self._handle is not None

    def arm(self, token: int, pool: "ParticipantPool", on_winner: WinnerCallback) -> bool:
        if pool.is_empty():
            return False
        self.cancel()
        self._token = token
        self._pool = pool
        self._on_winner = on_winner
        return True

    def request_stop(self) -> None:
        if self._token is None or self._pool is None or self._on_winner is None:
            return
        if self._handle is not None:
            return
        try:
            winner = self._pool.pick()
        except EmptyPoolError:
            logger.warning("Selection for draw session %s found an empty pool", self._token)
            self.cancel()
            return
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(
            self.reveal_delay, self._reveal, self._token, winner, self._on_winner
        )

    def _reveal(self, token: int, winner: "Participant", on_winner: WinnerCallback) -> None:
        self._handle = None
        self._token = None
        self._pool = None
        self._on_winner = None
        on_winner(token, winner)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._token = None
        self._pool = None
        self._on_winner = None


__all__ = [
    "AsyncioSelectionAnimator",
    "DEFAULT_REVEAL_DELAY",
    "InstantSelectionAnimator",
    "SelectionAnimator",
    "WinnerCallback",
    "reveal_delay_from_env",
]
