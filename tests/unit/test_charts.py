from __future__ import annotations

import pytest

from datafeed.charts import (
    ChartData,
    ChartSeries,
    build_chart,
    build_chart_data,
    check_chart_type,
    from_mapping,
    to_number,
    to_vega_spec,
    to_widget_data,
)


RECORDS = [
    {"Branch": "Gurugram", "Target": 50.0, "Actual": 12.0},
    {"Branch": "", "Target": "x", "Actual": 3.0},
    {"Branch": 0, "Target": 5.0},
]


def test_labels_fall_back_to_row_numbers():
    chart = build_chart_data(RECORDS, "Branch", [("Target", "Target"), ("Actual", "Actual")])
    assert chart.labels == ["Gurugram", "Row 2", "Row 3"]


def test_series_lengths_match_labels_and_values_are_numbers():
    chart = build_chart_data(RECORDS, "Branch", [("Target", "Target"), ("Actual", "Actual")])
    assert [s.name for s in chart.series] == ["Target", "Actual"]
    for series in chart.series:
        assert len(series.values) == len(chart.labels)
    assert chart.series[0].values == [50.0, 0.0, 5.0]
    assert chart.series[1].values == [12.0, 3.0, 0.0]


def test_empty_records_give_empty_chart():
    chart = build_chart_data([], "Branch", [("Target", "Target")])
    assert chart.labels == []
    assert chart.series[0].values == []


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 0.0), ("", 0.0), ("12", 12.0), (" 7.5 ", 7.5), ("50%", 0.0), ("abc", 0.0), (True, 1.0), (float("nan"), 0.0)],
)
def test_to_number(raw, expected):
    assert to_number(raw) == expected


def test_widget_shape():
    chart = from_mapping(["A", "B"], {"Target": [1, "2"], "Actual": [3, None]})
    widget = to_widget_data(chart, "line")
    assert widget == {
        "type": "line",
        "labels": ["A", "B"],
        "datasets": [{"label": "Target", "data": [1.0, 2.0]}, {"label": "Actual", "data": [3.0, 0.0]}],
    }


def test_unknown_chart_type_is_rejected():
    with pytest.raises(ValueError):
        check_chart_type("radar")


def test_to_frame_is_long_form():
    chart = ChartData(labels=["A", "B"], series=[ChartSeries("T", [1.0, 2.0]), ChartSeries("U", [3.0, 4.0])])
    frame = chart.to_frame()
    assert len(frame) == 4
    assert list(frame.columns) == ["position", "label", "series", "value"]


@pytest.mark.parametrize("chart_type, mark", [("bar", "bar"), ("line", "line"), ("pie", "arc")])
def test_vega_spec_marks(chart_type, mark):
    chart = from_mapping(["A", "B"], {"Target": [1, 2], "Actual": [2, 1]})
    spec = to_vega_spec(build_chart(chart, chart_type, title="Leads"))
    spec_mark = spec["mark"]
    assert (spec_mark["type"] if isinstance(spec_mark, dict) else spec_mark) == mark
    assert spec["title"] == "Leads"
