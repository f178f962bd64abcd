from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Sequence

from datafeed.charts import from_mapping
from datafeed.filters import DashboardFilters, resolve_column
from datafeed.metrics import aggregate_metrics, aggregate_metrics_by, metric_columns
from datafeed.normalize import NormalizedRecord
from datafeed.sheet_types import KPI_SUMMARY, SheetType


def date_info(now: datetime, time_frame: str) -> Dict[str, Any]:
    return {
        "date": now.isoformat(),
        "formattedDate": f"{now:%A, %B} {now.day}, {now.year}",
        "day": now.day,
        "month": now.month,
        "year": now.year,
        "timeframe": time_frame,
    }


def compute_dashboard(
    records: Sequence[NormalizedRecord],
    filters: DashboardFilters,
    *,
    now: datetime,
    sheet_type: SheetType = KPI_SUMMARY,
) -> Dict[str, Any]:
    """KPI totals, per-cluster performance and the achievement chart for the CEO dashboard."""
    metrics = metric_columns(sheet_type.metrics)
    kpis = aggregate_metrics(records, metrics)

    columns = list(records[0].keys()) if records else list(sheet_type.headers)
    cluster_col = resolve_column(columns, sheet_type.aliases.get("cluster", ()))
    grouped = aggregate_metrics_by(records, cluster_col, metrics) if cluster_col else {}

    cluster_performance = {
        cluster: {key: agg.to_dict() for key, agg in per_metric.items()} for cluster, per_metric in grouped.items()
    }
    labels = list(grouped.keys())
    performance = from_mapping(
        labels,
        {f"{m.label} Achievement": [grouped[c][m.key].achievement for c in labels] for m in sheet_type.metrics[:2]},
    )

    return {
        "kpis": {key: agg.to_dict() for key, agg in kpis.items()},
        "clusterPerformance": cluster_performance,
        "performanceData": performance.to_dict(),
        "dateInfo": date_info(now, filters.time_frame),
        "timestamp": now.isoformat(),
        "filters": {
            "region": filters.region,
            "branchAge": filters.branch_age,
            "timeFrame": filters.time_frame,
            "userBranch": filters.selection.branch,
            "userCluster": filters.selection.cluster,
        },
    }
