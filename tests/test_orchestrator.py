from __future__ import annotations

import random
import unittest
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest import mock

from luckydraw.prize_draw import (
    DrawEvent,
    DrawOrchestrator,
    DrawPhase,
    DrawSnapshot,
    EmptyPoolError,
    IllegalTransitionError,
    InstantSelectionAnimator,
    Participant,
    PrizeTier,
    StaleReportError,
    ValidationError,
)


class ScriptedAnimator:
    """Animator double that reports a chosen participant on demand."""

    def __init__(self, *, auto_report: bool = True) -> None:
        self.auto_report = auto_report
        self.next_winner_id: Optional[str] = None
        self.token: Optional[int] = None
        self.pool = None
        self.on_winner = None
        self.cancel_count = 0
        self.stop_count = 0

    def arm(self, token, pool, on_winner) -> bool:
        self.token = token
        self.pool = pool
        self.on_winner = on_winner
        return True

    def request_stop(self) -> None:
        self.stop_count += 1
        if self.auto_report:
            self.report()

    def report(self, participant: Optional[Participant] = None):
        if participant is None:
            winner_id = self.next_winner_id or self.pool.members()[0].id
            participant = self.pool.get(winner_id)
        return self.on_winner(self.token, participant)

    def cancel(self) -> None:
        self.cancel_count += 1


class FixedClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 12, 31, 18, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


TIERS = [
    PrizeTier(id=1, name="Grand Prize", quantity=1),
    PrizeTier(id=2, name="Second Prize", quantity=2),
]


def _people(*ids: str) -> list[Participant]:
    return [Participant(id=pid, name=f"Person {pid}") for pid in ids]


class OrchestratorTestCase(unittest.TestCase):
    def make(self, *ids: str, tiers=TIERS, animator=None) -> DrawOrchestrator:
        self.animator = animator or ScriptedAnimator()
        return DrawOrchestrator(
            _people(*ids),
            tiers,
            animator=self.animator,
            rng=random.Random(1),
            clock=FixedClock(),
        )

    def draw(self, orchestrator: DrawOrchestrator, winner_id: str) -> None:
        self.animator.next_winner_id = winner_id
        self.assertTrue(orchestrator.start_spin())
        self.assertTrue(orchestrator.request_stop())
        self.assertEqual(orchestrator.pending_winner.id, winner_id)

    def pool_ids(self, orchestrator: DrawOrchestrator) -> set[str]:
        return {p.id for p in orchestrator.participants()}


class DrawCycleTests(OrchestratorTestCase):
    def test_initial_state(self) -> None:
        orch = self.make("A", "B")
        state = orch.get_state()
        self.assertEqual(state.phase, DrawPhase.READY)
        self.assertEqual(state.cursor, 0)
        self.assertEqual(state.current_prize.tier_id, 2)
        self.assertEqual(state.current_prize.instance_number, 1)
        self.assertEqual(state.total_prizes, 3)
        self.assertEqual(state.remaining_count, 3)
        self.assertEqual(state.participant_count, 2)
        self.assertIsNone(state.pending_winner)
        self.assertTrue(orch.can_draw())

    def test_spin_stop_confirm_then_undo(self) -> None:
        orch = self.make("A", "B")
        self.assertTrue(orch.start_spin())
        self.assertEqual(orch.phase, DrawPhase.SPINNING)
        self.animator.next_winner_id = "A"
        self.assertTrue(orch.request_stop())

        self.assertEqual(orch.phase, DrawPhase.STOPPED)
        self.assertEqual(orch.pending_winner.id, "A")

        result = orch.confirm()
        self.assertTrue(result)
        self.assertEqual(result.entry.participant.id, "A")
        self.assertEqual(len(orch.winners()), 1)
        self.assertEqual(orch.winners()[0].prize.tier_id, 2)
        self.assertEqual(orch.winners()[0].prize.instance_number, 1)
        self.assertEqual([p.id for p in orch.participants()], ["B"])
        self.assertEqual(orch.cursor, 1)
        self.assertEqual(orch.phase, DrawPhase.READY)

        undone = orch.undo()
        self.assertTrue(undone)
        self.assertEqual(undone.entry.participant.id, "A")
        self.assertEqual(orch.winners(), [])
        self.assertEqual(self.pool_ids(orch), {"A", "B"})
        self.assertEqual(orch.cursor, 0)

    def test_second_confirm_is_rejected(self) -> None:
        orch = self.make("A", "B")
        self.draw(orch, "A")
        self.assertTrue(orch.confirm())

        again = orch.confirm()
        self.assertFalse(again)
        self.assertIsInstance(again.error, IllegalTransitionError)
        self.assertEqual(len(orch.winners()), 1)
        self.assertEqual(orch.cursor, 1)

    def test_respin_discards_pending_only(self) -> None:
        orch = self.make("A", "B")
        self.draw(orch, "B")
        self.assertTrue(orch.respin())
        self.assertIsNone(orch.pending_winner)
        self.assertEqual(orch.phase, DrawPhase.READY)
        self.assertEqual(orch.winners(), [])
        self.assertEqual(self.pool_ids(orch), {"A", "B"})
        self.assertEqual(orch.cursor, 0)
        self.assertFalse(orch.respin())

    def test_start_spin_guards(self) -> None:
        orch = self.make()
        result = orch.start_spin()
        self.assertFalse(result)
        self.assertIsInstance(result.error, EmptyPoolError)
        self.assertEqual(orch.phase, DrawPhase.READY)

        orch = self.make("A", "B")
        self.assertTrue(orch.start_spin())
        again = orch.start_spin()
        self.assertFalse(again)
        self.assertIsInstance(again.error, IllegalTransitionError)

    def test_failing_animator_leaves_draw_ready(self) -> None:
        animator = ScriptedAnimator()
        orch = self.make("A", "B", animator=animator)
        token_before = orch.session_token

        with mock.patch.object(animator, "arm", side_effect=RuntimeError("reel offline")):
            with self.assertLogs("luckydraw.prize_draw.orchestrator", level="ERROR"):
                result = orch.start_spin()

        self.assertFalse(result)
        self.assertIsInstance(result.error, IllegalTransitionError)
        self.assertEqual(orch.phase, DrawPhase.READY)
        self.assertGreater(orch.session_token, token_before)

        self.draw(orch, "B")
        self.assertTrue(orch.confirm())

    def test_stop_only_once_per_spin(self) -> None:
        orch = self.make("A", "B", animator=ScriptedAnimator(auto_report=False))
        self.assertFalse(orch.request_stop())
        self.assertTrue(orch.start_spin())
        self.assertTrue(orch.request_stop())
        self.assertFalse(orch.request_stop())
        self.assertEqual(self.animator.stop_count, 1)
        self.assertEqual(orch.phase, DrawPhase.SPINNING)

    def test_report_for_non_member_is_refused(self) -> None:
        orch = self.make("A", "B", animator=ScriptedAnimator(auto_report=False))
        orch.start_spin()
        orch.request_stop()
        result = self.animator.report(Participant(id="Z", name="Stranger"))
        self.assertFalse(result)
        self.assertIsInstance(result.error, EmptyPoolError)
        self.assertIsNone(orch.pending_winner)
        self.assertEqual(orch.phase, DrawPhase.SPINNING)

    def test_corrections_refused_while_spinning(self) -> None:
        orch = self.make("A", "B")
        self.draw(orch, "A")
        orch.confirm()
        orch.start_spin()
        self.assertFalse(orch.undo())
        self.assertFalse(orch.readd_winner("A"))
        self.assertFalse(orch.manual_select_tier(1))
        self.assertEqual(len(orch.winners()), 1)

    def test_instant_animator_draws_from_pool(self) -> None:
        orch = DrawOrchestrator(
            _people("A", "B", "C"),
            TIERS,
            animator=InstantSelectionAnimator(),
            rng=random.Random(3),
        )
        orch.start_spin()
        orch.request_stop()
        self.assertEqual(orch.phase, DrawPhase.STOPPED)
        self.assertIn(orch.pending_winner.id, {"A", "B", "C"})


class DrawLawTests(OrchestratorTestCase):
    def test_confirms_followed_by_undos_round_trip(self) -> None:
        orch = self.make("A", "B", "C", "D")
        before_pool = self.pool_ids(orch)
        before_cursor = orch.cursor

        for winner_id in ("C", "A", "D"):
            self.draw(orch, winner_id)
            self.assertTrue(orch.confirm())
        self.assertTrue(orch.is_complete)
        self.assertEqual(orch.phase, DrawPhase.COMPLETE)

        for _ in range(3):
            self.assertTrue(orch.undo())

        self.assertEqual(orch.winners(), [])
        self.assertEqual(self.pool_ids(orch), before_pool)
        self.assertEqual(orch.cursor, before_cursor)
        self.assertFalse(orch.undo())

    def test_completion_follows_ledger_not_cursor(self) -> None:
        orch = self.make("A", "B", "C", "D")

        # Jump straight to the grand prize; the cursor runs off the end.
        self.assertTrue(orch.manual_select_tier(1))
        self.assertEqual(orch.cursor, 2)
        self.draw(orch, "A")
        orch.confirm()
        self.assertEqual(orch.cursor, 3)
        self.assertIsNone(orch.current_prize)
        self.assertFalse(orch.is_complete)
        self.assertEqual(orch.phase, DrawPhase.READY)
        self.assertFalse(orch.can_draw())

        self.assertTrue(orch.auto_select_next_tier())
        self.assertEqual(orch.current_prize.tier_id, 2)
        for winner_id in ("B", "C"):
            self.draw(orch, winner_id)
            orch.confirm()

        self.assertTrue(orch.is_complete)
        self.assertEqual(orch.phase, DrawPhase.COMPLETE)
        self.assertEqual(orch.get_state().remaining_count, 0)
        self.assertFalse(orch.start_spin())

    def test_out_of_order_selection_never_over_awards_a_tier(self) -> None:
        tiers = [
            PrizeTier(id=3, name="Third Prize", quantity=1),
            PrizeTier(id=2, name="Second Prize", quantity=1),
            PrizeTier(id=1, name="Grand Prize", quantity=1),
        ]
        orch = self.make("A", "B", "C", "D", tiers=tiers)

        orch.manual_select_tier(2)
        self.draw(orch, "A")
        orch.confirm()
        orch.manual_select_tier(3)
        self.draw(orch, "B")
        orch.confirm()

        # The cursor advanced onto the already awarded Second Prize slot.
        self.assertEqual(orch.current_prize.tier_id, 2)
        self.assertFalse(orch.can_draw())
        result = orch.start_spin()
        self.assertFalse(result)
        self.assertIsInstance(result.error, IllegalTransitionError)
        self.assertEqual(orch.phase, DrawPhase.READY)

        self.assertTrue(orch.auto_select_next_tier())
        self.assertEqual(orch.current_prize.tier_id, 1)
        self.draw(orch, "C")
        self.assertTrue(orch.confirm())

        self.assertEqual(orch.phase, DrawPhase.COMPLETE)
        self.assertEqual(
            [(s.tier.id, s.awarded) for s in orch.tier_summaries()],
            [(3, 1), (2, 1), (1, 1)],
        )

    def test_manual_select_refuses_exhausted_tier(self) -> None:
        orch = self.make("A", "B", "C")
        orch.manual_select_tier(1)
        self.draw(orch, "A")
        orch.confirm()

        result = orch.manual_select_tier(1)
        self.assertFalse(result)
        self.assertEqual(orch.cursor, 3)
        self.assertFalse(orch.manual_select_tier(99))

    def test_manual_select_lands_on_next_unawarded_instance(self) -> None:
        orch = self.make("A", "B", "C")
        self.draw(orch, "A")
        orch.confirm()
        orch.manual_select_tier(1)
        self.assertTrue(orch.manual_select_tier(2))
        self.assertEqual(orch.cursor, 1)
        self.assertEqual(orch.current_prize.instance_number, 2)

    def test_readd_winner_keeps_cursor(self) -> None:
        orch = self.make("A", "B", "C")
        for winner_id in ("A", "B"):
            self.draw(orch, winner_id)
            orch.confirm()
        self.assertEqual(orch.cursor, 2)

        result = orch.readd_winner("A")
        self.assertTrue(result)
        self.assertEqual(result.entry.prize.instance_number, 1)
        self.assertIn("A", self.pool_ids(orch))
        self.assertEqual([e.participant.id for e in orch.winners()], ["B"])
        self.assertEqual(orch.cursor, 2)
        self.assertEqual(orch.get_state().remaining_count, 2)

        self.assertFalse(orch.readd_winner("A"))
        self.assertFalse(orch.readd_winner("nobody"))

    def test_auto_select_keeps_tier_with_instances_left(self) -> None:
        orch = self.make("A", "B", "C")
        self.draw(orch, "A")
        orch.confirm()
        self.assertTrue(orch.auto_select_next_tier())
        self.assertEqual(orch.cursor, 1)

    def test_tier_summaries(self) -> None:
        orch = self.make("A", "B", "C")
        self.draw(orch, "A")
        orch.confirm()
        summaries = {s.tier.id: (s.awarded, s.remaining) for s in orch.tier_summaries()}
        self.assertEqual(summaries, {1: (0, 1), 2: (1, 1)})
        self.assertEqual([e.participant.id for e in orch.winners_for_tier(2)], ["A"])


class SessionTokenTests(OrchestratorTestCase):
    def test_stale_report_after_reset_is_discarded(self) -> None:
        orch = self.make("A", "B", animator=ScriptedAnimator(auto_report=False))
        orch.start_spin()
        orch.request_stop()
        stale_token = self.animator.token

        self.assertTrue(orch.reset())
        self.assertEqual(self.animator.cancel_count, 1)
        self.assertGreater(orch.session_token, stale_token)

        result = self.animator.report(Participant(id="A", name="Person A"))
        self.assertFalse(result)
        self.assertIsInstance(result.error, StaleReportError)
        self.assertIsNone(orch.pending_winner)
        self.assertEqual(orch.phase, DrawPhase.READY)

    def test_report_from_previous_spin_is_discarded(self) -> None:
        orch = self.make("A", "B", animator=ScriptedAnimator(auto_report=False))
        orch.start_spin()
        first_on_winner, first_token = self.animator.on_winner, self.animator.token
        orch.reset()
        orch.start_spin()

        result = first_on_winner(first_token, Participant(id="A", name="Person A"))
        self.assertIsInstance(result.error, StaleReportError)
        self.assertEqual(orch.phase, DrawPhase.SPINNING)

    def test_import_mid_spin_cancels_selection(self) -> None:
        orch = self.make("A", "B", animator=ScriptedAnimator(auto_report=False))
        orch.start_spin()
        orch.import_participants(_people("X", "Y", "Z"))
        self.assertEqual(orch.phase, DrawPhase.READY)
        self.assertEqual(self.pool_ids(orch), {"X", "Y", "Z"})
        self.assertFalse(self.animator.report(Participant(id="X", name="Person X")))


class WholeStateTests(OrchestratorTestCase):
    def test_reset_restores_original_participants(self) -> None:
        orch = self.make("A", "B", "C")
        self.draw(orch, "A")
        orch.confirm()
        orch.manual_select_tier(1)

        self.assertTrue(orch.reset())
        self.assertEqual(orch.winners(), [])
        self.assertEqual(self.pool_ids(orch), {"A", "B", "C"})
        self.assertEqual(orch.cursor, 0)
        self.assertEqual(orch.phase, DrawPhase.READY)

    def test_reset_with_invalid_originals_changes_nothing(self) -> None:
        orch = self.make("A", "B")
        self.draw(orch, "A")
        orch.confirm()
        with self.assertRaises(ValidationError):
            orch.reset([Participant(id="Q", name="Q"), Participant(id="Q", name="Q2")])
        self.assertEqual(len(orch.winners()), 1)

    def test_import_prize_tiers_rebuilds_queue(self) -> None:
        orch = self.make("A", "B")
        self.draw(orch, "A")
        orch.confirm()
        orch.import_prize_tiers([PrizeTier(id=5, name="Mug", quantity=4)])
        self.assertEqual(orch.total_prizes, 4)
        self.assertEqual(orch.winners(), [])
        self.assertEqual(self.pool_ids(orch), {"A", "B"})
        self.assertEqual(orch.current_prize.name, "Mug")

    def test_invalid_tier_import_changes_nothing(self) -> None:
        orch = self.make("A", "B")
        with self.assertRaises(ValidationError):
            orch.import_prize_tiers([PrizeTier(id=5, name="Mug", quantity=0)])
        self.assertEqual(orch.total_prizes, 3)

    def test_restore_clamps_cursor_and_repairs_winners(self) -> None:
        orch = self.make("A", "B", "C")
        self.draw(orch, "A")
        orch.confirm()
        snapshot = orch.snapshot()

        snapshot.cursor = 99
        snapshot.winners = snapshot.winners + snapshot.winners
        snapshot.participants = snapshot.participants + [Participant(id="A", name="Person A")]

        restored = self.make("A", "B", "C")
        with self.assertLogs("luckydraw.prize_draw.orchestrator", level="WARNING"):
            self.assertTrue(restored.restore(snapshot))
        self.assertEqual(restored.cursor, 3)
        self.assertEqual([e.participant.id for e in restored.winners()], ["A"])
        self.assertEqual(self.pool_ids(restored), {"B", "C"})

    def test_from_snapshot_resumes_draw(self) -> None:
        orch = self.make("A", "B", "C")
        self.draw(orch, "B")
        orch.confirm()

        snapshot = DrawSnapshot.from_json_str(orch.snapshot().to_json_str())
        resumed = DrawOrchestrator.from_snapshot(snapshot, animator=ScriptedAnimator())
        self.assertEqual(resumed.cursor, 1)
        self.assertEqual(resumed.winners(), orch.winners())
        self.assertEqual(self.pool_ids(resumed), {"A", "C"})
        self.assertEqual({p.id for p in resumed.original_participants}, {"A", "B", "C"})

        resumed.reset()
        self.assertEqual(self.pool_ids(resumed), {"A", "B", "C"})


class NotificationTests(OrchestratorTestCase):
    def test_events_flag_committed_changes(self) -> None:
        orch = self.make("A", "B")
        events: list[DrawEvent] = []
        orch.subscribe(events.append)

        self.draw(orch, "A")
        orch.confirm()

        self.assertEqual(
            [(e.kind, e.committed) for e in events],
            [
                ("spin_started", False),
                ("stop_requested", False),
                ("winner_reported", False),
                ("confirmed", True),
            ],
        )
        self.assertEqual(events[-1].state.awarded_count, 1)

    def test_failing_subscriber_does_not_block_others(self) -> None:
        orch = self.make("A", "B")
        seen: list[str] = []

        def broken(event: DrawEvent) -> None:
            raise RuntimeError("display crashed")

        orch.subscribe(broken)
        orch.subscribe(lambda event: seen.append(event.kind))

        with self.assertLogs("luckydraw.prize_draw.orchestrator", level="ERROR"):
            self.assertTrue(orch.manual_select_tier(1))
        self.assertEqual(seen, ["tier_selected"])
        self.assertEqual(orch.cursor, 2)

    def test_unsubscribe(self) -> None:
        orch = self.make("A", "B")
        seen: list[str] = []
        unsubscribe = orch.subscribe(lambda event: seen.append(event.kind))
        unsubscribe()
        orch.manual_select_tier(1)
        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main()
