# cronometer_export/reports.py
from __future__ import annotations

import csv
import datetime as dt
import io
from collections import OrderedDict
from pathlib import Path
from typing import List, Optional

import structlog

from .models import Serving
from .utils import iso_date, parse_float, round_2dp

logger = structlog.get_logger()

# Column names of Cronometer's servings export
SERVINGS_DAY = "Day"
SERVINGS_TIME = "Time"
SERVINGS_GROUP = "Group"
SERVINGS_FOOD = "Food Name"
SERVINGS_AMOUNT = "Amount"
SERVINGS_ENERGY = "Energy (kcal)"


def report_path(directory: Path, kind: str, day: dt.date, ext: str = "csv") -> Path:
    return Path(directory) / f"{kind}_{iso_date(day)}.{ext}"


def write_report(directory: Path, kind: str, day: dt.date, content: str, ext: str = "csv") -> Path:
    """Write ``content`` to ``{kind}_{date}.{ext}`` under ``directory``, replacing any earlier export."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = report_path(directory, kind, day, ext)
    # newline="" keeps the exporter's own line endings
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(content)
    logger.info("report_saved", kind=kind, path=str(path), bytes=len(content))
    return path


def read_rows(path: Path) -> List[List[str]]:
    with Path(path).open("r", encoding="utf-8", newline="") as f:
        return [row for row in csv.reader(f)]


def data_rows(rows: List[List[str]]) -> List[List[str]]:
    """Everything after the header row; blank lines are not data."""
    return [r for r in rows[1:] if r and any(cell.strip() for cell in r)]


def _split_amount(value: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    # "1.50 cup" -> ("1.50", "cup"); "3" -> ("3", None)
    if not value:
        return None, None
    parts = value.strip().split(None, 1)
    if parse_float(parts[0]) is None:
        return None, value.strip()
    return parts[0], (parts[1] if len(parts) > 1 else None)


def parse_servings(text: str) -> List[Serving]:
    reader = csv.DictReader(io.StringIO(text, newline=""))
    servings: List[Serving] = []
    for rec in reader:
        if not any((v or "").strip() for v in rec.values() if isinstance(v, str)):
            continue
        amount, unit = _split_amount(rec.get(SERVINGS_AMOUNT))
        servings.append(
            Serving(
                day=(rec.get(SERVINGS_DAY) or "").strip(),
                time=(rec.get(SERVINGS_TIME) or "").strip() or None,
                group=(rec.get(SERVINGS_GROUP) or "").strip() or None,
                food_name=(rec.get(SERVINGS_FOOD) or "").strip() or None,
                amount=amount,
                unit=unit,
                energy_kcal=parse_float(rec.get(SERVINGS_ENERGY)),
            )
        )
    return servings


def render_servings_summary(servings: List[Serving], day: dt.date) -> str:
    """Plain-text summary of one day's servings, grouped by meal."""
    lines = [f"Cronometer servings for {iso_date(day)}", "=" * 40]
    if not servings:
        lines.append("No servings recorded.")
        return "\n".join(lines) + "\n"

    groups: "OrderedDict[str, List[Serving]]" = OrderedDict()
    for s in servings:
        groups.setdefault(s.group or "Uncategorized", []).append(s)

    total = 0.0
    for group, items in groups.items():
        group_kcal = sum(s.energy_kcal or 0.0 for s in items)
        total += group_kcal
        lines.append("")
        lines.append(f"{group} ({round_2dp(group_kcal)} kcal)")
        for s in items:
            stamp = f"[{s.time}] " if s.time else ""
            kcal = f"{round_2dp(s.energy_kcal)} kcal" if s.energy_kcal is not None else "n/a"
            qty = f", {s.quantity}" if s.quantity else ""
            lines.append(f"  - {stamp}{s.food_name or '?'}{qty}: {kcal}")

    lines.append("")
    lines.append(f"Total: {round_2dp(total)} kcal across {len(servings)} servings")
    return "\n".join(lines) + "\n"
