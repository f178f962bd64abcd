from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Tuple

from datafeed.filters import DEFAULT_ALIASES


@dataclass(frozen=True)
class Metric:
    key: str
    label: str
    target: str
    actual: str


@dataclass(frozen=True)
class SheetType:
    """Declared shape of one dashboard sheet: headers, column aliases and metrics."""

    key: str
    title: str
    headers: Tuple[str, ...]
    label_column: str
    metrics: Tuple[Metric, ...] = ()
    series: Tuple[Tuple[str, str], ...] = ()
    aliases: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_ALIASES))

    def metric(self, key: str) -> Metric:
        for m in self.metrics:
            if m.key == key:
                return m
        raise KeyError(f"{self.key} has no metric {key!r}")

    def chart_series(self, metric_key: str = "") -> List[Tuple[str, str]]:
        if metric_key:
            m = self.metric(metric_key)
            return [("Target", m.target), ("Actual", m.actual)]
        if self.series:
            return list(self.series)
        if self.metrics:
            m = self.metrics[0]
            return [("Target", m.target), ("Actual", m.actual)]
        return []


BRANCH_TARGET_LEADS = SheetType(
    key="branch_target_leads",
    title="Branch Target Leads",
    headers=(
        "Date",
        "Branch",
        "Branch Open Date",
        "No of Months operational",
        "Cluster",
        "Daily Target Leads",
        "Daily Actual Leads",
        "Variance",
        "Variance %",
        "MTD Target Leads",
        "MTD Actual Leads",
        "MTD Variance",
        "MTD Variance %",
    ),
    label_column="Branch",
    metrics=(
        Metric("mtdLeads", "MTD Leads", "MTD Target Leads", "MTD Actual Leads"),
        Metric("dailyLeads", "Daily Leads", "Daily Target Leads", "Daily Actual Leads"),
    ),
)

BRANCH_DISBURSEMENT = SheetType(
    key="branch_disbursement",
    title="Branch Disbursement",
    headers=("Branch Name", "Cluster", "MTD Disbursement Target Nos", "MTD Disbursement Actual Nos", "MTD Variance %"),
    label_column="Branch Name",
    metrics=(Metric("mtdDisbursement", "MTD Disbursement", "MTD Disbursement Target Nos", "MTD Disbursement Actual Nos"),),
)

KPI_SUMMARY = SheetType(
    key="kpi_summary",
    title="Sheet1",
    headers=(
        "Branch Name",
        "Cluster Name",
        "Branch Vintage (Vintage > 6Months, Vintage < 6 Months)",
        "Visits Target MTD",
        "Visits Actual MTD",
        "LOS Log Target MTD In Nos.",
        "LOS Log Actual MTD In Nos.",
        "Credit Login Target",
        "Credit Login ACH",
        "Santion Target",
        "Santion Ach",
        "Disbursement Target MTD In Nos.",
        "Disbursement Actuals MTD In Nos.",
    ),
    label_column="Branch Name",
    metrics=(
        Metric("salesBuddyLogin", "Sales Buddy Login", "Visits Target MTD", "Visits Actual MTD"),
        Metric("completedLead", "Completed Lead", "LOS Log Target MTD In Nos.", "LOS Log Actual MTD In Nos."),
        Metric("creditLogin", "Credit Login", "Credit Login Target", "Credit Login ACH"),
        Metric("casesSanctioned", "Cases Sanctioned", "Santion Target", "Santion Ach"),
        Metric("casesDisbursed", "Cases Disbursed", "Disbursement Target MTD In Nos.", "Disbursement Actuals MTD In Nos."),
    ),
)

GREEN_AMBER_LEADS = SheetType(
    key="green_amber_leads",
    title="Green Amber Leads",
    headers=("Branch Name", "Cluster", "Green Leads", "Amber Leads", "Total Leads", "Green Leads %", "Amber Leads %"),
    label_column="Branch Name",
    series=(("Green Leads", "Green Leads"), ("Amber Leads", "Amber Leads")),
)

CREDIT_LOGINS = SheetType(
    key="credit_logins",
    title="Credit Logins",
    headers=("Branch Name", "Cluster", "Green Leads To Logins %", "Amber Leads To Logins %"),
    label_column="Branch Name",
    series=(("Green Leads To Logins %", "Green Leads To Logins %"), ("Amber Leads To Logins %", "Amber Leads To Logins %")),
)

SHEET_TYPES: Dict[str, SheetType] = {
    st.key: st for st in (BRANCH_TARGET_LEADS, BRANCH_DISBURSEMENT, KPI_SUMMARY, GREEN_AMBER_LEADS, CREDIT_LOGINS)
}


def get_sheet_type(key: str) -> SheetType:
    try:
        return SHEET_TYPES[key.replace("-", "_")]
    except KeyError:
        raise ValueError(f"Unknown sheet type {key!r}; expected one of {', '.join(SHEET_TYPES)}") from None


def sheet_type_for_title(title: str) -> SheetType | None:
    lowered = title.strip().lower()
    for st in SHEET_TYPES.values():
        if st.title.lower() == lowered:
            return st
    return None
