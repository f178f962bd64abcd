from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import altair as alt
import pandas as pd

from datafeed.metrics import group_key
from datafeed.normalize import NormalizedRecord

alt.data_transformers.disable_max_rows()

CHART_TYPES = ("bar", "line", "pie")


@dataclass
class ChartSeries:
    name: str
    values: List[float] = field(default_factory=list)


@dataclass
class ChartData:
    labels: List[str] = field(default_factory=list)
    series: List[ChartSeries] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"labels": list(self.labels), "series": [{"name": s.name, "values": list(s.values)} for s in self.series]}

    def to_frame(self) -> pd.DataFrame:
        """Long form: one row per (label, series) pair."""
        rows = [
            {"position": i, "label": label, "series": s.name, "value": s.values[i]}
            for s in self.series
            for i, label in enumerate(self.labels)
        ]
        return pd.DataFrame(rows, columns=["position", "label", "series", "value"])


def to_number(value: Any) -> float:
    """Lenient numeric coercion for chart values; anything unparseable is 0."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        out = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(out) or math.isinf(out):
        return 0.0
    return out


def build_chart_data(
    records: Sequence[NormalizedRecord],
    label_column: str,
    series: Sequence[Tuple[str, str]],
) -> ChartData:
    labels = []
    for idx, record in enumerate(records, start=1):
        label = group_key(record.get(label_column))
        labels.append(label if label is not None else f"Row {idx}")
    out = ChartData(labels=labels)
    for name, column in series:
        out.series.append(ChartSeries(name=name, values=[to_number(r.get(column)) for r in records]))
    return out


def from_mapping(labels: Sequence[str], series: Dict[str, Sequence[Any]]) -> ChartData:
    return ChartData(
        labels=[str(label) for label in labels],
        series=[ChartSeries(name=name, values=[to_number(v) for v in values]) for name, values in series.items()],
    )


def check_chart_type(chart_type: str) -> str:
    if chart_type not in CHART_TYPES:
        raise ValueError(f"Unsupported chart type {chart_type!r}; expected one of {', '.join(CHART_TYPES)}")
    return chart_type


def to_widget_data(chart: ChartData, chart_type: str = "bar") -> Dict[str, Any]:
    """``{type, labels, datasets}`` as consumed by Chart.js-style widgets."""
    return {
        "type": check_chart_type(chart_type),
        "labels": list(chart.labels),
        "datasets": [{"label": s.name, "data": list(s.values)} for s in chart.series],
    }


def build_chart(chart: ChartData, chart_type: str = "bar", title: str = "") -> alt.Chart:
    check_chart_type(chart_type)
    frame = chart.to_frame()
    sort = list(dict.fromkeys(chart.labels))
    if chart_type == "pie":
        # Pies show a single series; the first one wins.
        first = chart.series[0].name if chart.series else ""
        pie = frame[frame["series"] == first]
        out = (
            alt.Chart(pie)
            .mark_arc()
            .encode(
                theta=alt.Theta("value:Q"),
                color=alt.Color("label:N", sort=sort, title=None),
                tooltip=["label", alt.Tooltip("value:Q", format=",")],
            )
        )
    elif chart_type == "line":
        out = (
            alt.Chart(frame)
            .mark_line(point=True)
            .encode(
                x=alt.X("label:N", sort=sort, title=None),
                y=alt.Y("value:Q", title=None),
                color=alt.Color("series:N", title=None),
                tooltip=["label", "series", alt.Tooltip("value:Q", format=",")],
            )
        )
    else:
        out = (
            alt.Chart(frame)
            .mark_bar()
            .encode(
                x=alt.X("label:N", sort=sort, title=None),
                xOffset="series:N",
                y=alt.Y("value:Q", title=None),
                color=alt.Color("series:N", title=None),
                tooltip=["label", "series", alt.Tooltip("value:Q", format=",")],
            )
        )
    if title:
        out = out.properties(title=title)
    return out.properties(height=280)


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()
