from __future__ import annotations

import unittest
from datetime import datetime, timezone

from luckydraw.prize_draw import (
    Participant,
    PrizeQueueEntry,
    ValidationError,
    WinnerEntry,
    WinnerLedger,
)


def _entry(pid: str, tier_id: int = 2, instance: int = 1) -> WinnerEntry:
    return WinnerEntry(
        participant=Participant(id=pid, name=f"Person {pid}"),
        prize=PrizeQueueEntry(
            tier_id=tier_id, name=f"Tier {tier_id}", quantity=2, instance_number=instance
        ),
        timestamp=datetime(2024, 12, 31, 18, 0, tzinfo=timezone.utc),
    )


class WinnerLedgerTests(unittest.TestCase):
    def test_append_and_pop_last(self) -> None:
        ledger = WinnerLedger()
        self.assertFalse(ledger)
        self.assertIsNone(ledger.pop_last())

        ledger.append(_entry("A"))
        ledger.append(_entry("B", instance=2))
        self.assertEqual(len(ledger), 2)
        self.assertEqual(ledger.last().participant_id, "B")

        popped = ledger.pop_last()
        self.assertEqual(popped.participant_id, "B")
        self.assertEqual(ledger.ids(), ["A"])

    def test_remove_by_id(self) -> None:
        ledger = WinnerLedger([_entry("A"), _entry("B", instance=2), _entry("C", tier_id=1)])
        removed = ledger.remove_by_id("B")
        self.assertEqual(removed.prize.instance_number, 2)
        self.assertNotIn("B", ledger)
        self.assertIsNone(ledger.remove_by_id("B"))
        self.assertEqual(ledger.ids(), ["A", "C"])

    def test_tier_queries(self) -> None:
        ledger = WinnerLedger([_entry("A"), _entry("B", instance=2), _entry("C", tier_id=1)])
        self.assertEqual(ledger.count_for_tier(2), 2)
        self.assertEqual(ledger.count_for_tier(1), 1)
        self.assertEqual(ledger.count_for_tier(5), 0)
        self.assertEqual([e.participant_id for e in ledger.entries_for_tier(2)], ["A", "B"])

    def test_entries_returns_copy(self) -> None:
        ledger = WinnerLedger([_entry("A")])
        ledger.entries().clear()
        self.assertEqual(len(ledger), 1)
        ledger.clear()
        self.assertEqual(len(ledger), 0)


class WinnerEntrySerializationTests(unittest.TestCase):
    def test_json_shape(self) -> None:
        data = _entry("A").to_json()
        self.assertEqual(data["participant"], {"id": "A", "name": "Person A"})
        self.assertEqual(data["prize"]["tier_id"], 2)
        self.assertEqual(data["timestamp"], "2024-12-31T18:00:00+00:00")
        self.assertEqual(WinnerEntry.from_json(data), _entry("A"))

    def test_invalid_timestamp_rejected(self) -> None:
        data = _entry("A").to_json()
        data["timestamp"] = "yesterday"
        with self.assertRaises(ValidationError):
            WinnerEntry.from_json(data)
        data["timestamp"] = None
        with self.assertRaises(ValidationError):
            WinnerEntry.from_json(data)


if __name__ == "__main__":
    unittest.main()
