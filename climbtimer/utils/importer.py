# climbtimer/utils/importer.py
"""
Spreadsheet import.

Each sheet becomes one round. The first row of a sheet holds category names
(one per column, at most four); every row below lists climber names under
their category. The whole workbook is validated before anything is built, so
a rejected import never leaves partial rounds behind.
"""
import logging
from pathlib import Path
from typing import Any, List, Mapping, Sequence, Tuple

import pandas as pd

from climbtimer.competition.models import Category, Round
from climbtimer.exceptions import ImportRejected

logger = logging.getLogger(__name__)

MAX_CATEGORIES_PER_ROUND = 4

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


def _cell(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _columns(rows: Sequence[Sequence[Any]]) -> List[Tuple[int, str]]:
    if not rows:
        return []
    return [(i, _cell(v)) for i, v in enumerate(rows[0]) if _cell(v)]


def parse_sheets(sheets: Mapping[str, Sequence[Sequence[Any]]], next_id: int) -> Tuple[List[Round], int]:
    """
    Turn ``{sheet name: rows}`` into rounds.

    Returns the rounds and the next free category id.
    """
    # validate every sheet first
    for sheet_name, rows in sheets.items():
        columns = _columns(rows)
        if len(columns) > MAX_CATEGORIES_PER_ROUND:
            raise ImportRejected(
                f'Sheet "{sheet_name}" has {len(columns)} categories; '
                f"at most {MAX_CATEGORIES_PER_ROUND} are allowed per round",
                sheet=sheet_name,
            )

    rounds = []
    for sheet_name, rows in sheets.items():
        columns = _columns(rows)
        if not columns:
            logger.info("Skipping sheet %r: no category headers", sheet_name)
            continue

        categories = []
        for col, name in columns:
            climbers = []
            for row in rows[1:]:
                value = _cell(row[col]) if col < len(row) else ""
                if value:
                    climbers.append(value)
            categories.append(Category.create(next_id, name, climbers))
            next_id += 1
        rounds.append(Round(name=str(sheet_name).strip() or f"Round {len(rounds) + 1}", categories=categories))

    if not rounds:
        raise ImportRejected("No valid sheets found: every sheet needs a header row of category names")

    logger.info(
        "Parsed %d round(s) with %d categories",
        len(rounds), sum(len(r.categories) for r in rounds),
    )
    return rounds, next_id


def read_workbook(stream, filename: str) -> dict:
    """Read an uploaded .xlsx/.xls/.csv into ``{sheet name: rows}``."""
    suffix = Path(filename or "").suffix.lower()
    try:
        if suffix == ".csv":
            frame = pd.read_csv(stream, header=None, dtype=str, keep_default_na=False)
            return {Path(filename).stem: frame.values.tolist()}
        if suffix in EXCEL_SUFFIXES:
            frames = pd.read_excel(stream, sheet_name=None, header=None, dtype=str)
            return {name: frame.values.tolist() for name, frame in frames.items()}
    except Exception as e:
        logger.warning("Could not read spreadsheet %r: %s", filename, e)
        raise ImportRejected(f"Could not read spreadsheet: {e}") from e
    raise ImportRejected(f"Unsupported file type {suffix or '(none)'}; upload .xlsx, .xls or .csv")
