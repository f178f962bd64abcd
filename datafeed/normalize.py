from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union


Cell = Union[int, float, str]
NormalizedRecord = Dict[str, Cell]

NUMERIC_PATTERN = re.compile(r"^[+-]?\d+(\.\d+)?$")


@dataclass
class NormalizedSheet:
    headers: List[str] = field(default_factory=list)
    rows: List[NormalizedRecord] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.rows


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_cell(value: Any) -> Cell:
    """Coerce one spreadsheet cell.

    Order matters: ``%`` strings are parsed first (``"50%"`` -> 50.0, not 0.5),
    empty cells become ``0``, signed decimals become floats, everything else
    stays the original string.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = _cell_text(value)
    if "%" in text:
        stripped = text.replace("%", "", 1).strip()
        if NUMERIC_PATTERN.match(stripped):
            return float(stripped)
    if text == "":
        return 0
    if NUMERIC_PATTERN.match(text):
        return float(text)
    return text


def normalize_header(value: Any) -> str:
    return _cell_text(value).strip()


def normalize_records(headers: Sequence[Any], body: Sequence[Sequence[Any]]) -> List[NormalizedRecord]:
    keys = [normalize_header(h) for h in headers]
    records: List[NormalizedRecord] = []
    for row in body:
        if not row:
            continue
        record: NormalizedRecord = {}
        for idx, key in enumerate(keys):
            record[key] = normalize_cell(row[idx] if idx < len(row) else "")
        records.append(record)
    return records


def normalize_rows(raw_rows: Optional[Sequence[Sequence[Any]]]) -> NormalizedSheet:
    """Turn header + body rows into typed records sharing the header's keys."""
    if not raw_rows:
        return NormalizedSheet()
    headers = [normalize_header(h) for h in raw_rows[0]]
    return NormalizedSheet(headers=headers, rows=normalize_records(headers, raw_rows[1:]))
