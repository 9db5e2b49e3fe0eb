from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from .checks import CHECKS, RuleCheck
from .condition import evaluate_conditions
from .models import AutomationItem, CustomerProfile, Finding, Rule

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass
class EvalResult:
    """Result of a rule evaluation pass: findings + any warnings produced."""
    findings: list[Finding]
    warnings: list[str] = field(default_factory=list)


def apply_template(template: str, item: AutomationItem) -> str:
    """Substitute ``{{name}}`` tokens from the item; unknown tokens render empty."""

    def substitute(match: re.Match) -> str:
        value = item.attribute(match.group(1))
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return str(value)

    return _PLACEHOLDER.sub(substitute, template or "")


class RuleEvaluator:
    """Applies a fixed, already-filtered rule list to an item snapshot."""

    def __init__(self, rules: Iterable[Rule]) -> None:
        self._rules: list[Rule] = list(rules)

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    def evaluate(self, items: list[AutomationItem], profile: CustomerProfile) -> EvalResult:
        findings: list[Finding] = []
        warnings: list[str] = []

        for rule in self._rules:
            check = _bound_check(rule)
            if rule.check_type == "cross_item":
                if check is None:
                    logger.debug("skipping cross-item rule %s: no heuristic bound", rule.id)
                    continue
                findings.extend(_run_cross_item(rule, check, items, profile, warnings))
            else:
                findings.extend(_run_per_item(rule, check, items, profile, warnings))

        return EvalResult(findings=findings, warnings=warnings)


def _bound_check(rule: Rule) -> RuleCheck | None:
    """Heuristics are reserved for built-in rules of the matching check type."""
    if not rule.is_builtin:
        return None
    check = CHECKS.get(rule.id)
    if check is None or check.check_type != rule.check_type:
        return None
    return check


def _run_per_item(
    rule: Rule,
    check: RuleCheck | None,
    items: list[AutomationItem],
    profile: CustomerProfile,
    warnings: list[str],
) -> list[Finding]:
    """A rule that raises on any item contributes no findings at all."""
    findings: list[Finding] = []
    for item in items:
        if rule.applies_to and item.kind not in rule.applies_to:
            continue
        try:
            if check is not None:
                triggered = bool(check.func(item, profile))
            else:
                triggered = evaluate_conditions(rule.conditions, item)
        except Exception as e:
            logger.warning("check %s failed for item %s: %s", rule.id, item.id, e)
            warnings.append(f"check {rule.id} failed for item {item.id}: {e}")
            return []
        if triggered:
            findings.append(Finding(
                rule_id=rule.id,
                severity=rule.severity,
                message=apply_template(rule.message_template, item),
                item_id=item.id,
                api_name=item.api_name,
                object_name=item.object_name,
            ))
    return findings


def _run_cross_item(
    rule: Rule,
    check: RuleCheck,
    items: list[AutomationItem],
    profile: CustomerProfile,
    warnings: list[str],
) -> list[Finding]:
    try:
        results = list(check.func(items, profile))
    except Exception as e:
        logger.warning("cross-item check %s failed: %s", rule.id, e)
        warnings.append(f"cross-item check {rule.id} failed: {e}")
        return []

    findings: list[Finding] = []
    for item, message in results:
        findings.append(Finding(
            rule_id=rule.id,
            severity=rule.severity,
            message=message,
            item_id=item.id if item is not None else None,
            api_name=item.api_name if item is not None else None,
            object_name=item.object_name if item is not None else None,
        ))
    return findings
