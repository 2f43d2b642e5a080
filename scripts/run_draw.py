"""Run a prize draw from the terminal.

Participants and prizes are read from CSV or JSON files. Every committed
step is saved to the configured database, so restarting the script resumes
the same draw.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import shlex
from pathlib import Path
from typing import Optional

from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.importers import (
    export_winners_csv,
    parse_participants_csv,
    parse_prize_tiers_csv,
    participants_from_json,
    prize_tiers_from_json,
    results_filename,
)
from luckydraw.models import Base
from luckydraw.prize_draw import DrawOrchestrator, DrawPhase, ValidationError
from luckydraw.store import SqlSnapshotStore
from luckydraw.workflows import (
    import_participants,
    import_prize_tiers,
    open_draw,
    reset_draw,
    winners_by_tier,
)

logger = logging.getLogger("luckydraw.run_draw")

HELP = """Commands:
  spin             start the draw
  stop             settle on a winner
  confirm          award the current prize to the pending winner
  respin           discard the pending winner
  undo             reverse the last award
  readd <id>       return a winner to the pool
  select <tier>    jump to a prize tier
  status           show progress
  winners          list winners by tier
  import-participants <file>
  import-prizes <file>
  export [file]    write winners CSV
  reset            start over
  quit"""


def _load_participants(path: Path):
    text = path.read_text(encoding="utf-8-sig")
    if path.suffix.lower() == ".json":
        return participants_from_json(json.loads(text))
    return parse_participants_csv(text)


def _load_prize_tiers(path: Path):
    text = path.read_text(encoding="utf-8-sig")
    if path.suffix.lower() == ".json":
        return prize_tiers_from_json(json.loads(text))
    return parse_prize_tiers_csv(text)


def _print_status(orch: DrawOrchestrator, localized: bool) -> None:
    state = orch.get_state()
    prize = state.current_prize.label(localized=localized) if state.current_prize else "-"
    print(
        f"[{state.phase.value}] prize: {prize} | awarded {state.awarded_count}/"
        f"{state.total_prizes} | participants left: {state.participant_count}"
    )
    if state.pending_winner is not None:
        print(f"  pending: {state.pending_winner.name} ({state.pending_winner.id})")


def _print_winners(orch: DrawOrchestrator, localized: bool) -> None:
    grouped = winners_by_tier(orch)
    for summary in orch.tier_summaries():
        tier = summary.tier
        print(f"{tier.display_name(localized=localized)}: {summary.awarded}/{tier.quantity}")
        for entry in grouped.get(tier.id, []):
            print(f"  {entry.prize.label(localized=localized)}: {entry.participant.name} ({entry.participant.id})")


def _report(result) -> None:
    if not result:
        print(f"! {result.reason}")


def run_command(
    orch: DrawOrchestrator,
    store: SqlSnapshotStore,
    command: str,
    args: list[str],
    *,
    localized: bool = False,
) -> bool:
    """Execute one console command; returns ``False`` when the loop should end."""
    if command in ("quit", "exit", "q"):
        return False
    if command == "help":
        print(HELP)
    elif command == "spin":
        result = orch.start_spin()
        _report(result)
        if result:
            print("Spinning... type 'stop' to pick a winner")
    elif command == "stop":
        _report(orch.request_stop())
        if orch.pending_winner is not None:
            print(f"Winner: {orch.pending_winner.name} ({orch.pending_winner.id})")
    elif command == "confirm":
        result = orch.confirm()
        _report(result)
        if result:
            print(f"Awarded {result.entry.prize.label(localized=localized)} to {result.entry.participant.name}")
            if orch.phase is DrawPhase.COMPLETE:
                print("All prizes have been awarded.")
            else:
                orch.auto_select_next_tier()
    elif command == "respin":
        _report(orch.respin())
    elif command == "undo":
        result = orch.undo()
        _report(result)
        if result:
            print(f"Undid {result.entry.prize.label(localized=localized)} for {result.entry.participant.name}")
    elif command == "readd" and args:
        _report(orch.readd_winner(args[0]))
    elif command == "select" and args:
        try:
            tier_id = int(args[0])
        except ValueError:
            print(f"! Not a tier id: {args[0]}")
        else:
            _report(orch.manual_select_tier(tier_id))
    elif command == "status":
        _print_status(orch, localized)
    elif command == "winners":
        _print_winners(orch, localized)
    elif command == "import-participants" and args:
        import_participants(orch, Path(args[0]).read_text(encoding="utf-8-sig"), store=store)
    elif command == "import-prizes" and args:
        import_prize_tiers(orch, Path(args[0]).read_text(encoding="utf-8-sig"), store=store)
    elif command == "export":
        target = Path(args[0]) if args else Path(results_filename())
        target.write_text(export_winners_csv(orch.winners(), localized=localized), encoding="utf-8")
        print(f"Wrote {len(orch.winners())} winners to {target}")
    elif command == "reset":
        _report(reset_draw(orch, store=store))
    else:
        print(HELP)
    return True


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a live prize draw in the terminal")
    parser.add_argument(
        "--participants",
        default="data/participants.csv",
        help="CSV (id,name) or JSON list of participants",
    )
    parser.add_argument(
        "--prizes",
        default="data/prizes.csv",
        help="CSV (id,name,name_vi,quantity) or JSON list of prize tiers",
    )
    parser.add_argument("--key", default=None, help="Saved draw key (default: LUCKYDRAW_SNAPSHOT_KEY)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for a reproducible rehearsal")
    parser.add_argument("--localized", action="store_true", help="Show localized prize names")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        participants = _load_participants(Path(args.participants))
        tiers = _load_prize_tiers(Path(args.prizes))
    except (OSError, ValueError) as exc:
        # ValidationError is a ValueError
        print(f"Cannot load draw data: {exc}")
        return 2

    engine = make_engine()
    Base.metadata.create_all(engine)
    store = SqlSnapshotStore(get_sessionmaker(engine), key=args.key)
    rng = random.Random(args.seed) if args.seed is not None else None
    orch = open_draw(participants, tiers, store=store, rng=rng)
    logger.info("Opened draw %r (%s/%s awarded)", store.key, orch.awarded_count, orch.total_prizes)

    print(HELP)
    _print_status(orch, args.localized)
    while True:
        try:
            line = input("draw> ")
        except EOFError:
            break
        try:
            parts = shlex.split(line)
        except ValueError as exc:
            print(f"! {exc}")
            continue
        if not parts:
            continue
        try:
            if not run_command(orch, store, parts[0].lower(), parts[1:], localized=args.localized):
                break
        except ValidationError as exc:
            print(f"! {exc}")
        except OSError as exc:
            print(f"! {exc}")
    engine.dispose()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
