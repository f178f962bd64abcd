from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple


logger = logging.getLogger(__name__)

ALL_CLUSTERS = "All Clusters"
ALL_BRANCHES = "All Branches"

# Single source of truth for cluster membership. Panipat is listed under
# Karnal only; older copies also placed it under Delhi.
CANONICAL_CLUSTER_BRANCHES: Dict[str, Tuple[str, ...]] = {
    "Gurugram": ("Gurugram", "Bhiwadi", "Rewari", "Narnaul", "Pataudi", "Sohna", "Behror"),
    "Karnataka": ("Yelahanka", "Davanagere", "Kengeri", "Ramnagar", "Kanakpura", "Mandya"),
    "Faridabad": ("Faridabad", "Mathura", "Palwal", "Badarpur", "Goverdhan", "Jewar"),
    "Delhi": ("Pitampura", "Alipur", "Nangloi", "Sonipat"),
    "Ghaziabad": ("East Delhi", "Ghaziabad", "Hapur", "Loni", "Surajpur"),
    "Karnal": ("Karnal", "Panipat"),
    "Maharashtra": ("Kalyan", "West"),
}

REGION_CLUSTERS: Dict[str, Tuple[str, ...]] = {
    "North": ("Delhi", "Ghaziabad", "Gurugram", "Faridabad", "Karnal"),
    "South": ("Karnataka",),
    "West": ("Maharashtra",),
    "East": (),
}

_REGION_PREFIX = re.compile(r"^(North|South|East|West)-(?=\S)", re.IGNORECASE)


def canonical_branch_name(value: object) -> str:
    """Strip the ``<Region>-`` prefix some sheets put in front of branch names."""
    text = str(value).strip() if value is not None else ""
    return _REGION_PREFIX.sub("", text, count=1)


@dataclass(frozen=True)
class ClusterMap:
    clusters: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: dict(CANONICAL_CLUSTER_BRANCHES))

    def names(self) -> List[str]:
        return list(self.clusters.keys())

    def branches_for(self, cluster: Optional[str]) -> Tuple[str, ...]:
        if not cluster:
            return ()
        return tuple(self.clusters.get(cluster, ()))

    def cluster_for(self, branch: object) -> Optional[str]:
        name = canonical_branch_name(branch)
        for cluster, branches in self.clusters.items():
            if name in branches:
                return cluster
        return None

    def contains(self, cluster: Optional[str], branch: object) -> bool:
        if not cluster or branch is None:
            return False
        members = self.branches_for(cluster)
        return branch in members or canonical_branch_name(branch) in members

    def all_branches(self) -> List[str]:
        seen: Dict[str, None] = {}
        for branches in self.clusters.values():
            for branch in branches:
                seen.setdefault(branch, None)
        return list(seen)

    def duplicate_branches(self) -> Dict[str, List[str]]:
        owners: Dict[str, List[str]] = {}
        for cluster, branches in self.clusters.items():
            for branch in branches:
                owners.setdefault(branch, []).append(cluster)
        return {branch: clusters for branch, clusters in owners.items() if len(clusters) > 1}

    def to_dict(self) -> Dict[str, List[str]]:
        return {cluster: list(branches) for cluster, branches in self.clusters.items()}


def build_cluster_map(raw: Mapping[str, Iterable[object]]) -> ClusterMap:
    clusters: Dict[str, Tuple[str, ...]] = {}
    for cluster, branches in raw.items():
        name = str(cluster).strip()
        if not name:
            continue
        clusters[name] = tuple(dict.fromkeys(str(b).strip() for b in branches if str(b).strip()))
    cmap = ClusterMap(clusters)
    duplicates = cmap.duplicate_branches()
    if duplicates:
        # Kept as configured; membership checks then match every owning cluster.
        logger.warning("Cluster map lists branches under several clusters: %s", duplicates)
    return cmap


def load_cluster_map(path: Optional[Path] = None) -> ClusterMap:
    if path is None:
        return ClusterMap()
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Cluster map {path} must be a JSON object of cluster -> [branches]")
    logger.info("Loaded cluster map override from %s (%d clusters)", path, len(raw))
    return build_cluster_map(raw)


def region_for_cluster(cluster: object) -> Optional[str]:
    text = str(cluster or "")
    for region, clusters in REGION_CLUSTERS.items():
        if text in clusters:
            return region
    return None


def cluster_in_region(cluster: object, region: str) -> bool:
    text = str(cluster or "")
    if not text:
        return False
    members = REGION_CLUSTERS.get(region, ())
    if text in members:
        return True
    # Sheets sometimes tag clusters like "East Delhi" with the region name itself.
    return not members and region.lower() in text.lower()
