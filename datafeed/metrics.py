from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from datafeed.normalize import NormalizedRecord


@dataclass(frozen=True)
class MetricAggregate:
    target: float = 0.0
    actual: float = 0.0
    achievement: float = 0.0

    @classmethod
    def from_totals(cls, target: float, actual: float) -> "MetricAggregate":
        return cls(target=float(target), actual=float(actual), achievement=calculate_achievement(actual, target))

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def calculate_achievement(actual: float, target: float) -> float:
    """actual / target as a percentage, one decimal; 0 when there is no target."""
    if not target or target <= 0:
        return 0.0
    return round_half_up(float(actual) / float(target) * 100, 1) or 0.0


def group_key(value: Any) -> Optional[str]:
    """Label used for grouping and charts; falsy cells form no group."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value == 0 or pd.isna(value):
            return None
        return str(int(value)) if float(value).is_integer() else str(value)
    text = str(value)
    return text if text.strip() else None


def records_frame(records: Sequence[NormalizedRecord], columns: Sequence[str]) -> pd.DataFrame:
    """DataFrame of ``columns`` with missing or non-numeric values as 0."""
    frame = pd.DataFrame.from_records(list(records)) if records else pd.DataFrame()
    out = pd.DataFrame(index=frame.index)
    for col in dict.fromkeys(columns):
        if col in frame.columns:
            out[col] = pd.to_numeric(frame[col], errors="coerce").fillna(0.0).astype(float)
        else:
            out[col] = 0.0
    return out


def aggregate(records: Sequence[NormalizedRecord], target_column: str, actual_column: str) -> MetricAggregate:
    frame = records_frame(records, [target_column, actual_column])
    return MetricAggregate.from_totals(frame[target_column].sum(), frame[actual_column].sum())


def aggregate_by(
    records: Sequence[NormalizedRecord],
    group_column: str,
    target_column: str,
    actual_column: str,
) -> Dict[str, MetricAggregate]:
    grouped = aggregate_metrics_by(records, group_column, {"value": (target_column, actual_column)})
    return {key: metrics["value"] for key, metrics in grouped.items()}


def aggregate_metrics(records: Sequence[NormalizedRecord], metrics: Mapping[str, Tuple[str, str]]) -> Dict[str, MetricAggregate]:
    columns = [c for pair in metrics.values() for c in pair]
    frame = records_frame(records, columns)
    totals = frame.sum()
    return {key: MetricAggregate.from_totals(totals[t], totals[a]) for key, (t, a) in metrics.items()}


def aggregate_metrics_by(
    records: Sequence[NormalizedRecord],
    group_column: str,
    metrics: Mapping[str, Tuple[str, str]],
) -> Dict[str, Dict[str, MetricAggregate]]:
    """Per-group aggregates in order of first appearance of each group key."""
    rows = list(records)
    if not rows:
        return {}
    columns = [c for pair in metrics.values() for c in pair]
    frame = records_frame(rows, columns)
    frame["_group"] = [group_key(r.get(group_column)) for r in rows]
    frame = frame.dropna(subset=["_group"])
    if frame.empty:
        return {}
    sums = frame.groupby("_group", sort=False)[list(dict.fromkeys(columns))].sum()
    out: Dict[str, Dict[str, MetricAggregate]] = {}
    for key, row in sums.iterrows():
        out[str(key)] = {name: MetricAggregate.from_totals(row[t], row[a]) for name, (t, a) in metrics.items()}
    return out


def metric_columns(metrics: Sequence[Any]) -> Dict[str, Tuple[str, str]]:
    """``{key: (target, actual)}`` from :class:`~datafeed.sheet_types.Metric` entries."""
    return {m.key: (m.target, m.actual) for m in metrics}


def totals_table(grouped: Mapping[str, Mapping[str, MetricAggregate]]) -> List[Dict[str, Any]]:
    rows = []
    for key, metrics in grouped.items():
        row: Dict[str, Any] = {"name": key}
        for metric_key, agg in metrics.items():
            row[f"{metric_key}Target"] = agg.target
            row[f"{metric_key}Actual"] = agg.actual
            row[f"{metric_key}Achievement"] = agg.achievement
        rows.append(row)
    return rows
