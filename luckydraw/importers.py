"""CSV and JSON import/export for participants, prize tiers and results."""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .prize_draw.errors import ValidationError
from .prize_draw.ledger import WinnerEntry
from .prize_draw.participants import Participant, ensure_unique_ids
from .prize_draw.queue import PrizeTier, validate_tiers

logger = logging.getLogger(__name__)

MAX_IMPORT_BYTES = 1024 * 1024
MAX_IMPORT_ROWS = 10_000

UTF8_BOM = "\ufeff"


def _read_csv_rows(text: str) -> list[dict[str, str]]:
    """Parse CSV text with a header row into stripped string dicts.

    Blank lines are skipped. Raises :class:`ValidationError` when the input
    is too large, has no data rows, or exceeds :data:`MAX_IMPORT_ROWS`.
    """
    if len(text.encode("utf-8")) > MAX_IMPORT_BYTES:
        raise ValidationError("File too large. Maximum size is 1MB.")
    if text.startswith(UTF8_BOM):
        text = text[len(UTF8_BOM) :]

    reader = csv.reader(io.StringIO(text.strip()))
    try:
        header = next(reader)
    except StopIteration:
        header = []
    columns = [column.strip() for column in header]

    rows: list[dict[str, str]] = []
    for values in reader:
        if not values or (len(values) == 1 and values[0].strip() == ""):
            continue
        rows.append(
            {
                column: (values[index].strip() if index < len(values) else "")
                for index, column in enumerate(columns)
            }
        )
        if len(rows) > MAX_IMPORT_ROWS:
            raise ValidationError(f"Too many items. Maximum is {MAX_IMPORT_ROWS}")

    if not rows:
        raise ValidationError(
            "No data found in CSV file. Make sure there is a header row and at "
            "least one data row."
        )
    return rows


def _parse_int(raw: Any) -> int:
    """Parse a leading integer the lenient way spreadsheets export them; 0 if absent."""
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else 0
    text = str(raw or "").strip()
    digits = ""
    for index, char in enumerate(text):
        if char.isdigit() or (index == 0 and char in "+-"):
            digits += char
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0


def parse_participants_csv(text: str) -> list[Participant]:
    """Parse an ``id,name`` CSV into participants.

    Raises
    ------
    ValidationError
        If any row lacks a valid id (1-50 chars) or name (1-100 chars), or ids
        repeat.
    """
    participants: list[Participant] = []
    for line_number, row in enumerate(_read_csv_rows(text), start=2):
        try:
            participants.append(Participant(id=row.get("id", ""), name=row.get("name", "")))
        except ValidationError as exc:
            raise ValidationError(
                f"CSV must have columns: id, name. Row {line_number}: {exc}"
            ) from exc
    result = ensure_unique_ids(participants)
    logger.info("Parsed %s participants from CSV", len(result))
    return result


def parse_prize_tiers_csv(text: str) -> list[PrizeTier]:
    """Parse an ``id,name,name_vi,quantity`` CSV into prize tiers.

    ``name_vi`` is optional and becomes :attr:`PrizeTier.localized_name`,
    falling back to ``name``.
    """
    tiers: list[PrizeTier] = []
    for line_number, row in enumerate(_read_csv_rows(text), start=2):
        name = row.get("name", "")
        tier = PrizeTier(
            id=_parse_int(row.get("id")),
            name=name,
            quantity=_parse_int(row.get("quantity")),
            localized_name=row.get("name_vi") or name,
        )
        try:
            tier.validate()
        except ValidationError as exc:
            raise ValidationError(
                "CSV must have columns: id, name, name_vi (optional), quantity. "
                f"Row {line_number}: {exc}"
            ) from exc
        tiers.append(tier)
    result = validate_tiers(tiers)
    logger.info("Parsed %s prize tiers from CSV", len(result))
    return result


def participants_from_json(data: object) -> list[Participant]:
    """Build participants from a decoded JSON list of ``{"id", "name"}`` objects.

    Numeric ids are accepted and converted to strings.
    """
    if not isinstance(data, list):
        raise ValidationError("Participants data must be a list of objects.")
    participants: list[Participant] = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ValidationError(f"Invalid participant entry: {entry!r}")
        raw_id = entry.get("id", "")
        if isinstance(raw_id, int) and not isinstance(raw_id, bool):
            raw_id = str(raw_id)
        name = entry.get("name", "")
        participants.append(
            Participant(
                id=raw_id.strip() if isinstance(raw_id, str) else raw_id,
                name=name.strip() if isinstance(name, str) else name,
            )
        )
    return ensure_unique_ids(participants)


def prize_tiers_from_json(data: object) -> list[PrizeTier]:
    """Build prize tiers from a decoded JSON list.

    Each object needs ``id``, ``name`` and ``quantity``; the localized name is
    read from ``localized_name`` or the legacy ``name_vi`` key.
    """
    if not isinstance(data, list):
        raise ValidationError("Prize data must be a list of objects.")
    tiers: list[PrizeTier] = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ValidationError(f"Invalid prize entry: {entry!r}")
        tiers.append(
            PrizeTier(
                id=entry.get("id"),  # type: ignore[arg-type]
                name=entry.get("name"),  # type: ignore[arg-type]
                quantity=entry.get("quantity"),  # type: ignore[arg-type]
                localized_name=entry.get("localized_name") or entry.get("name_vi"),
            )
        )
    return validate_tiers(tiers)


def export_winners_csv(
    entries: Iterable[WinnerEntry],
    *,
    localized: bool = False,
    bom: bool = True,
    tz: Optional[timezone] = None,
) -> str:
    """Render winners as CSV with columns ``ID,Name,Prize,Prize ID,Time``.

    Parameters
    ----------
    entries : Iterable[WinnerEntry]
        Ledger entries in award order.
    localized : bool, default: False
        Use the tiers' localized names for the Prize column.
    bom : bool, default: True
        Prefix a UTF-8 byte order mark so spreadsheet tools detect the encoding.
    tz : Optional[timezone], default: None
        Zone for the Time column; local time when omitted.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["ID", "Name", "Prize", "Prize ID", "Time"])
    for entry in entries:
        timestamp = entry.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        writer.writerow(
            [
                entry.participant.id,
                entry.participant.name,
                entry.prize.label(localized=localized),
                entry.prize.tier_id,
                timestamp.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S"),
            ]
        )
    content = buffer.getvalue()
    return UTF8_BOM + content if bom else content


def results_filename(prefix: str = "lucky-draw-winners", now: Optional[datetime] = None) -> str:
    """Return ``<prefix>-YYYY-MM-DD.csv`` for the given (or current UTC) date."""
    moment = now or datetime.now(timezone.utc)
    return f"{prefix}-{moment.date().isoformat()}.csv"


__all__ = [
    "MAX_IMPORT_BYTES",
    "MAX_IMPORT_ROWS",
    "export_winners_csv",
    "parse_participants_csv",
    "parse_prize_tiers_csv",
    "participants_from_json",
    "prize_tiers_from_json",
    "results_filename",
]
