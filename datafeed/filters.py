from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from datafeed.clusters import ALL_BRANCHES, ALL_CLUSTERS, ClusterMap, cluster_in_region
from datafeed.normalize import NormalizedRecord


ROLE_CEO = "Chief Executive Officer"
ROLE_CLUSTER = "Cluster Level"
ROLE_BRANCH = "Branch Level"
VIEWER_ROLES = (ROLE_CEO, ROLE_CLUSTER, ROLE_BRANCH)

REGIONS = ("All", "North", "South", "West", "East")
BRANCH_AGES = ("All", "0-6M", "6M+")
TIME_FRAMES = ("MTD", "Daily")

# Branch-age filter value -> vintage cell value.
VINTAGE_VALUES = {"0-6M": "<6M", "6M+": ">6M"}

DEFAULT_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "branch": ("branch", "branchName", "Branch Name"),
    "cluster": ("cluster", "clusterName", "Cluster Name"),
    "vintage": ("Branch Vintage (Vintage > 6Months, Vintage < 6 Months)", "Branch Vintage", "vintage"),
}


class InvalidViewerError(ValueError):
    pass


@dataclass(frozen=True)
class ViewerIdentity:
    role: str = ROLE_CEO
    cluster: Optional[str] = None
    branch: Optional[str] = None

    def __post_init__(self) -> None:
        if self.role not in VIEWER_ROLES:
            raise InvalidViewerError(f"Unknown role {self.role!r}; expected one of {', '.join(VIEWER_ROLES)}")
        if self.role == ROLE_BRANCH and not self.branch:
            raise InvalidViewerError("Branch Level viewers need a branch")
        if self.role == ROLE_CLUSTER and not self.cluster:
            raise InvalidViewerError("Cluster Level viewers need a cluster")

    @property
    def is_unrestricted(self) -> bool:
        return self.role == ROLE_CEO


@dataclass(frozen=True)
class Selection:
    """Explicit dashboard drill-down, independent of the viewer's role."""

    branch: Optional[str] = None
    cluster: Optional[str] = None


def _clean(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_identity(role: object = None, cluster: object = None, branch: object = None) -> Optional[ViewerIdentity]:
    """Build a viewer identity from request parameters; no role means no identity."""
    role_s = _clean(role)
    if role_s is None:
        return None
    branch_s = _clean(branch)
    if branch_s == ALL_BRANCHES:
        # A branch viewer scoped to every branch is a cluster viewer.
        branch_s = None
        if role_s == ROLE_BRANCH:
            role_s = ROLE_CLUSTER
    return ViewerIdentity(role=role_s, cluster=_clean(cluster), branch=branch_s)


def selection_for(identity: Optional[ViewerIdentity], cluster: object = None, branch: object = None) -> Selection:
    """Request ``branch``/``cluster`` parameters become drill-downs.

    A branch always acts as an explicit selection. A cluster only does for
    unrestricted viewers; for a Cluster Level viewer it is their own scope.
    """
    branch_s = _clean(branch)
    cluster_s = _clean(cluster)
    if branch_s == ALL_BRANCHES:
        branch_s = None
    if cluster_s == ALL_CLUSTERS:
        cluster_s = None
    if identity is not None and not identity.is_unrestricted:
        cluster_s = None
    return Selection(branch=branch_s, cluster=cluster_s)


def resolve_column(columns: Iterable[str], aliases: Sequence[str]) -> Optional[str]:
    """Return the first column equal (ignoring case) to one of ``aliases``."""
    lowered = {}
    for col in columns:
        lowered.setdefault(str(col).lower(), col)
    for alias in aliases:
        hit = lowered.get(alias.lower())
        if hit is not None:
            return hit
    return None


def _columns_of(records: Sequence[NormalizedRecord], columns: Optional[Sequence[str]]) -> Sequence[str]:
    if columns is not None:
        return columns
    return list(records[0].keys()) if records else []


def apply_role_filter(
    records: Sequence[NormalizedRecord],
    identity: Optional[ViewerIdentity],
    *,
    cluster_map: ClusterMap,
    selection: Selection = Selection(),
    aliases: Mapping[str, Tuple[str, ...]] = DEFAULT_ALIASES,
    columns: Optional[Sequence[str]] = None,
) -> List[NormalizedRecord]:
    """Restrict ``records`` to the rows ``identity`` may see.

    Precedence: explicit branch, Branch Level, Cluster Level, explicit cluster,
    everything. Without a branch column the filter passes all rows through.
    """
    rows = list(records)
    cols = _columns_of(rows, columns)
    branch_col = resolve_column(cols, aliases.get("branch", ()))
    if branch_col is None:
        return rows
    cluster_col = resolve_column(cols, aliases.get("cluster", ()))

    def in_cluster(row: NormalizedRecord, cluster: str) -> bool:
        if cluster_map.contains(cluster, row.get(branch_col)):
            return True
        return cluster_col is not None and row.get(cluster_col) == cluster

    if selection.branch:
        return [r for r in rows if r.get(branch_col) == selection.branch]
    if identity is not None and identity.role == ROLE_BRANCH:
        return [r for r in rows if r.get(branch_col) == identity.branch]
    if identity is not None and identity.role == ROLE_CLUSTER:
        if identity.cluster == ALL_CLUSTERS:
            return rows
        return [r for r in rows if in_cluster(r, identity.cluster)]
    if selection.cluster:
        return [r for r in rows if in_cluster(r, selection.cluster)]
    return rows


@dataclass(frozen=True)
class DashboardFilters:
    region: str = "All"
    branch_age: str = "All"
    time_frame: str = "MTD"
    selection: Selection = field(default_factory=Selection)


def normalize_filters(raw: dict) -> DashboardFilters:
    region = _clean(raw.get("region")) or "All"
    if region not in REGIONS:
        region = "All"
    branch_age = _clean(raw.get("branch_age")) or "All"
    if branch_age not in BRANCH_AGES:
        branch_age = "All"
    time_frame = _clean(raw.get("time_frame")) or "MTD"
    if time_frame not in TIME_FRAMES:
        time_frame = "MTD"
    selection = raw.get("selection") or Selection()
    return DashboardFilters(region=region, branch_age=branch_age, time_frame=time_frame, selection=selection)


def apply_dashboard_filters(
    records: Sequence[NormalizedRecord],
    filters: DashboardFilters,
    *,
    aliases: Mapping[str, Tuple[str, ...]] = DEFAULT_ALIASES,
) -> List[NormalizedRecord]:
    """Region and branch-age narrowing; runs after the role filter."""
    rows = list(records)
    cols = _columns_of(rows, None)
    if filters.region != "All":
        cluster_col = resolve_column(cols, aliases.get("cluster", ()))
        if cluster_col is not None:
            rows = [r for r in rows if cluster_in_region(r.get(cluster_col), filters.region)]
    if filters.branch_age != "All":
        vintage_col = resolve_column(cols, aliases.get("vintage", ()))
        if vintage_col is not None:
            wanted = VINTAGE_VALUES[filters.branch_age]
            rows = [r for r in rows if str(r.get(vintage_col, "")).strip() == wanted]
    return rows
