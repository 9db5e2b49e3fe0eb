"""One analysis pass over a snapshot, and the store that publishes passes."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from ..recommend.global_recs import build_global_recommendations
from ..recommend.synthesizer import build_object_recommendations, group_by_object
from .engine import RuleEvaluator
from .models import STATUSES, AutomationItem, CustomerProfile, Finding, Recommendation, Rule
from .rules import select_active_rules

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    findings: list[Finding]
    recommendations: list[Recommendation]
    warnings: list[str] = field(default_factory=list)
    rule_count: int = 0


def rank_recommendations(recs: Iterable[Recommendation]) -> list[Recommendation]:
    """Sort by priority score, highest first; ties keep their build order."""
    return sorted(recs, key=lambda r: -r.priority_score)


def run_analysis(
    items: Iterable[AutomationItem],
    rules: Iterable[Rule],
    profile: CustomerProfile,
) -> AnalysisResult:
    """Evaluate rules and synthesize recommendations for one snapshot.

    ``rules`` may be the raw rule table; it is copied and filtered against the
    profile once, so edits made while the pass runs apply to the next pass.
    """
    items = list(items)
    active_rules = select_active_rules(list(rules), profile)

    evaluation = RuleEvaluator(active_rules).evaluate(items, profile)
    logger.info(
        "evaluated %d rules over %d items: %d findings",
        len(active_rules), len(items), len(evaluation.findings),
    )

    by_object, _ = group_by_object(items)
    recs = build_object_recommendations(items, evaluation.findings, profile)
    recs.extend(build_global_recommendations(items, by_object))

    return AnalysisResult(
        findings=evaluation.findings,
        recommendations=rank_recommendations(recs),
        warnings=evaluation.warnings,
        rule_count=len(active_rules),
    )


class ResultStore:
    """Holds the latest result per pass id.

    A pass is swapped in whole, so readers see either the previous result or
    the new one, never a mix.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._passes: dict[str, AnalysisResult] = {}

    def replace(self, pass_id: str, result: AnalysisResult) -> None:
        with self._lock:
            self._passes[pass_id] = result

    def get(self, pass_id: str) -> AnalysisResult:
        with self._lock:
            try:
                return self._passes[pass_id]
            except KeyError:
                raise KeyError(f"unknown pass '{pass_id}'") from None

    def __contains__(self, pass_id: str) -> bool:
        with self._lock:
            return pass_id in self._passes

    def set_status(self, pass_id: str, index: int, status: str) -> Recommendation:
        """Mark one recommendation (by rank) as open, accepted or dismissed."""
        if status not in STATUSES:
            raise ValueError(f"invalid status '{status}', expected one of {list(STATUSES)}")
        with self._lock:
            try:
                result = self._passes[pass_id]
            except KeyError:
                raise KeyError(f"unknown pass '{pass_id}'") from None
            if not 0 <= index < len(result.recommendations):
                raise KeyError(f"pass '{pass_id}' has no recommendation {index}")
            rec = result.recommendations[index]
            rec.status = status
            return rec
