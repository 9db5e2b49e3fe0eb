"""Fixed lookup tables: remediation paths, effort and priority scoring."""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable

from ..core.models import SEVERITIES, Finding


def _paths(recommended: str, alternative: str | None) -> MappingProxyType:
    return MappingProxyType({"recommended": recommended, "alternative": alternative})


PATTERN_PATHS = MappingProxyType({
    "deprecated_only": MappingProxyType({
        "flow_first": _paths(
            "Migrate all deprecated automation to a single Record-Triggered Flow",
            "Consolidate into a new Apex Trigger handler",
        ),
        "apex_first": _paths(
            "Consolidate all deprecated automation into a new Apex Trigger handler",
            "Migrate to a Record-Triggered Flow",
        ),
        "balanced": _paths(
            "Migrate all deprecated automation to a Record-Triggered Flow",
            "Consolidate into a new Apex Trigger handler",
        ),
    }),
    "deprecated_plus_flow": MappingProxyType({
        "flow_first": _paths(
            "Consolidate existing Flows, then migrate deprecated automation into the unified Flow",
            "Migrate everything to a single Apex Trigger handler",
        ),
        "apex_first": _paths(
            "Consolidate all automation (deprecated and Flows) into a single Apex Trigger handler",
            "Consolidate Flows and migrate deprecated automation into a unified Flow",
        ),
        "balanced": _paths(
            "Consolidate Flows, then migrate deprecated automation into the unified Flow",
            "Evaluate whether Apex or Flow is the better long-term consolidation target",
        ),
    }),
    "deprecated_plus_apex": MappingProxyType({
        "flow_first": _paths(
            "Migrate deprecated automation to a new Flow; evaluate whether Apex logic can also move to Flow",
            "Consolidate deprecated automation into the existing Apex Trigger handler",
        ),
        "apex_first": _paths(
            "Consolidate deprecated automation into the existing Apex Trigger handler",
            "Migrate deprecated automation to a new Flow alongside the existing Apex Trigger",
        ),
        "balanced": _paths(
            "Migrate deprecated automation to a Flow; keep Apex only for operations that require it",
            "Consolidate all into the existing Apex Trigger handler",
        ),
    }),
    "deprecated_plus_mixed": MappingProxyType({
        "flow_first": _paths(
            "Consolidate all automation into a single Record-Triggered Flow where feasible; "
            "keep Apex only for operations requiring it",
            "Consolidate all into a single Apex Trigger handler pattern",
        ),
        "apex_first": _paths(
            "Consolidate all automation into a single Apex Trigger handler pattern",
            "Migrate simple logic to a Flow; consolidate complex logic in Apex",
        ),
        "balanced": _paths(
            "Segregate responsibilities: keep Apex for complex operations, consolidate simple logic into a Flow",
            "Consolidate all into a single Apex Trigger handler",
        ),
    }),
    "flow_fragmented": MappingProxyType({
        "flow_first": _paths(
            "Merge all Record-Triggered Flows into a single Flow using Decision elements",
            "Consolidate all Flow logic into a single Apex Trigger handler",
        ),
        "apex_first": _paths(
            "Consolidate all Flow logic into a single Apex Trigger handler",
            "Merge all Flows into a single Flow using Decision elements",
        ),
        "balanced": _paths(
            "Merge all Record-Triggered Flows into a single Flow using Decision elements",
            "Consolidate into a single Apex Trigger handler",
        ),
    }),
    "apex_fragmented": MappingProxyType({
        "flow_first": _paths(
            "Consolidate triggers into a single handler pattern; evaluate migrating simple logic to a Flow",
            "Consolidate into a single Apex Trigger handler pattern",
        ),
        "apex_first": _paths(
            "Consolidate multiple Apex Triggers into a single trigger handler pattern",
            "Evaluate migrating simpler trigger logic to a Flow",
        ),
        "balanced": _paths(
            "Consolidate multiple Apex Triggers into a single trigger handler pattern",
            "Evaluate migrating simpler logic to a Flow after consolidation",
        ),
    }),
    "flow_and_apex": MappingProxyType({
        "flow_first": _paths(
            "Evaluate migrating Apex Trigger logic into the existing Flow; "
            "document the coexistence if Apex must remain",
            "Consolidate all logic into the Apex Trigger handler",
        ),
        "apex_first": _paths(
            "Evaluate migrating Flow logic into the Apex Trigger handler; "
            "document the coexistence if the Flow must remain",
            "Keep the Flow and add explicit dependency documentation to both automations",
        ),
        "balanced": _paths(
            "Document the coexistence explicitly in both automations; evaluate consolidating "
            "into whichever type handles the majority of the logic",
            None,
        ),
    }),
    # Clean objects get no per-object recommendation; kept so the table is total
    "clean": MappingProxyType({
        "flow_first": _paths("No consolidation required; keep new logic in Record-Triggered Flows", None),
        "apex_first": _paths("No consolidation required; keep new logic in the Apex Trigger handler", None),
        "balanced": _paths("No consolidation required", None),
    }),
})

SEVERITY_WEIGHTS = MappingProxyType({"error": 100, "warning": 50, "info": 10})
EFFORT_PENALTIES = MappingProxyType({"low": 0, "medium": 10, "high": 25})

_UNKNOWN_SEVERITY_WEIGHT = 10
_UNKNOWN_EFFORT_PENALTY = 10
_PER_ITEM_WEIGHT = 5

_DEPRECATED_PATTERNS = frozenset({"deprecated_only", "deprecated_plus_flow", "deprecated_plus_apex"})


def paths_for(pattern: str, preference: str) -> tuple[str, str | None]:
    """Return (recommended, alternative) for a pattern and automation preference."""
    entry = PATTERN_PATHS[pattern][preference]
    return entry["recommended"], entry["alternative"]


def estimate_effort(pattern: str, item_count: int) -> str:
    if pattern in ("deprecated_plus_mixed", "apex_fragmented"):
        return "high"
    if item_count > 5:
        return "high"
    if pattern in _DEPRECATED_PATTERNS:
        return "high" if item_count > 2 else "medium"
    if pattern in ("flow_fragmented", "flow_and_apex"):
        return "medium"
    return "low"


def compute_score(severity: str, affected_count: int, effort: str) -> int:
    return (
        SEVERITY_WEIGHTS.get(severity, _UNKNOWN_SEVERITY_WEIGHT)
        + _PER_ITEM_WEIGHT * affected_count
        - EFFORT_PENALTIES.get(effort, _UNKNOWN_EFFORT_PENALTY)
    )


def worst_severity(findings: Iterable[Finding]) -> str:
    """Most severe finding severity; ``info`` when there are none."""
    rank = len(SEVERITIES) - 1
    for finding in findings:
        if finding.severity in SEVERITIES:
            rank = min(rank, SEVERITIES.index(finding.severity))
    return SEVERITIES[rank]
