"""Rule store: the built-in YAML library plus user-authored custom rules."""
from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable

import yaml

from .checks import CHECKS
from .condition import parse_condition, validate_conditions
from .models import CHECK_TYPES, KINDS, LAYERS, SEVERITIES, CustomerProfile, Rule

logger = logging.getLogger(__name__)

BUILTIN_RULES_PATH = Path(__file__).resolve().parent.parent / "policies" / "builtin_rules.yaml"

_REQUIRED_RULE_KEYS = {"id", "layer", "severity", "check_type"}
_BUILTIN_EDITABLE = {"severity", "message_template", "is_active"}
_CUSTOM_EDITABLE = {
    "layer", "name", "description", "severity", "check_type", "applies_to",
    "conditions", "message_template", "is_active", "sort_order",
}


class RuleLoadError(Exception):
    """Raised when a rule file is malformed."""


class RuleValidationError(Exception):
    """Raised when a rule definition fails validation."""


class RuleEditError(Exception):
    """Raised when an edit breaks the built-in / custom rule contract."""


def validate_rule(raw: Any, *, builtin: bool) -> list[str]:
    """Return a list of error strings for one raw rule mapping."""
    if not isinstance(raw, dict):
        return [f"expected dict, got {type(raw).__name__}"]

    errors: list[str] = []
    missing = _REQUIRED_RULE_KEYS - raw.keys()
    if missing:
        errors.append(f"missing keys: {sorted(missing)}")
    if "id" in raw and (not isinstance(raw["id"], str) or not raw["id"]):
        errors.append("id: expected a non-empty string")
    if "layer" in raw and raw["layer"] not in LAYERS:
        errors.append(f"unknown layer '{raw['layer']}'")
    if "severity" in raw and raw["severity"] not in SEVERITIES:
        errors.append(f"unknown severity '{raw['severity']}'")
    if "check_type" in raw and raw["check_type"] not in CHECK_TYPES:
        errors.append(f"unknown check_type '{raw['check_type']}'")

    applies_to = raw.get("applies_to") or []
    if not isinstance(applies_to, list):
        errors.append("applies_to: expected list")
    else:
        unknown = [k for k in applies_to if k not in KINDS]
        if unknown:
            errors.append(f"applies_to: unknown kinds {unknown}")

    rule_id = raw.get("id")
    if builtin:
        if rule_id not in CHECKS and not raw.get("conditions"):
            errors.append("built-in rule has neither a registered check nor conditions")
        if raw.get("conditions"):
            errors.extend(validate_conditions(raw["conditions"]))
    else:
        errors.extend(validate_conditions(raw.get("conditions")))
    return errors


def rule_from_dict(raw: dict, *, builtin: bool) -> Rule:
    return Rule(
        id=str(raw["id"]),
        layer=raw["layer"],
        severity=raw["severity"],
        check_type=raw["check_type"],
        name=raw.get("name", ""),
        description=raw.get("description", ""),
        applies_to=tuple(raw.get("applies_to") or ()),
        conditions=tuple(parse_condition(c) for c in raw.get("conditions") or ()),
        message_template=raw.get("message_template", ""),
        is_builtin=builtin,
        is_active=bool(raw.get("is_active", True)),
        sort_order=int(raw.get("sort_order", 0)),
    )


def _load_rule_file(path: Path) -> list:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise RuleLoadError(f"{path}: cannot load rules: {e}") from e

    if not isinstance(data, dict):
        raise RuleLoadError(f"{path}: expected a YAML mapping at top level")
    rules = data.get("rules", [])
    if not isinstance(rules, list):
        raise RuleLoadError(f"{path}: 'rules' must be a list")
    return rules


def select_active_rules(rules: Iterable[Rule], profile: CustomerProfile) -> list[Rule]:
    """Filter a raw rule table to the rules a pass should run, in run order."""
    layers = set(profile.active_rule_layers)
    suppressed = set(profile.suppressed_rule_ids)
    selected = [
        r for r in rules
        if r.is_active and r.layer in layers and r.id not in suppressed
    ]
    return sorted(selected, key=lambda r: (r.sort_order, r.id))


class RuleStore:
    """In-memory rule table keyed by rule id.

    Rules are frozen; every edit swaps in a new Rule, so a list returned by
    :meth:`snapshot` is unaffected by later edits.
    """

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            if rule.id in self._rules:
                raise RuleValidationError(f"duplicate rule id '{rule.id}'")
            self._rules[rule.id] = rule

    @classmethod
    def builtin(cls, path: Path = BUILTIN_RULES_PATH) -> RuleStore:
        raw_rules = _load_rule_file(path)
        errors: list[str] = []
        for i, raw in enumerate(raw_rules):
            rid = raw.get("id", "?") if isinstance(raw, dict) else "?"
            for err in validate_rule(raw, builtin=True):
                errors.append(f"rules[{i}] (id={rid}): {err}")
        if errors:
            joined = "\n  ".join(errors)
            raise RuleLoadError(f"{path}: rule validation failed:\n  {joined}")
        try:
            return cls(rule_from_dict(raw, builtin=True) for raw in raw_rules)
        except RuleValidationError as e:
            raise RuleLoadError(f"{path}: {e}") from e

    def load_custom(self, path: Path) -> list[Rule]:
        """Add every custom rule in a YAML file; all-or-nothing."""
        raw_rules = _load_rule_file(path)
        errors: list[str] = []
        seen: set[str] = set()
        for i, raw in enumerate(raw_rules):
            rid = raw.get("id", "?") if isinstance(raw, dict) else "?"
            problems = validate_rule(raw, builtin=False)
            if isinstance(rid, str):
                if rid in self._rules or rid in seen:
                    problems.append("rule id already exists")
                seen.add(rid)
            for err in problems:
                errors.append(f"rules[{i}] (id={rid}): {err}")
        if errors:
            joined = "\n  ".join(errors)
            raise RuleLoadError(f"{path}: rule validation failed:\n  {joined}")

        added = [rule_from_dict(raw, builtin=False) for raw in raw_rules]
        for rule in added:
            self._rules[rule.id] = rule
        logger.debug("loaded %d custom rules from %s", len(added), path)
        return added

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules

    def get(self, rule_id: str) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise KeyError(f"unknown rule '{rule_id}'") from None

    def snapshot(self) -> list[Rule]:
        """All rules, active or not, ordered by (sort_order, id)."""
        return sorted(self._rules.values(), key=lambda r: (r.sort_order, r.id))

    def active_rules(self, profile: CustomerProfile) -> list[Rule]:
        return select_active_rules(self._rules.values(), profile)

    def add_custom(self, raw: dict) -> Rule:
        errors = validate_rule(raw, builtin=False)
        if isinstance(raw, dict) and isinstance(raw.get("id"), str) and raw["id"] in self._rules:
            errors.append("rule id already exists")
        if errors:
            raise RuleValidationError(f"rule {raw.get('id', '?') if isinstance(raw, dict) else '?'}: " + "; ".join(errors))
        rule = rule_from_dict(raw, builtin=False)
        self._rules[rule.id] = rule
        return rule

    def update(self, rule_id: str, **changes: Any) -> Rule:
        rule = self.get(rule_id)
        allowed = _BUILTIN_EDITABLE if rule.is_builtin else _CUSTOM_EDITABLE
        forbidden = set(changes) - allowed
        if forbidden:
            kind = "built-in" if rule.is_builtin else "custom"
            raise RuleEditError(f"{kind} rule '{rule_id}': cannot edit {sorted(forbidden)}")

        merged = {
            "id": rule.id,
            "layer": rule.layer,
            "name": rule.name,
            "description": rule.description,
            "severity": rule.severity,
            "check_type": rule.check_type,
            "applies_to": list(rule.applies_to),
            "conditions": [
                {"field": c.field, "op": c.op, "value": list(c.value) if isinstance(c.value, tuple) else c.value}
                for c in rule.conditions
            ],
            "message_template": rule.message_template,
            "is_active": rule.is_active,
            "sort_order": rule.sort_order,
            **changes,
        }
        errors = validate_rule(merged, builtin=rule.is_builtin)
        if errors:
            raise RuleValidationError(f"rule {rule_id}: " + "; ".join(errors))

        if rule.is_builtin:
            updated = replace(
                rule,
                severity=merged["severity"],
                message_template=merged["message_template"],
                is_active=bool(merged["is_active"]),
            )
        else:
            updated = rule_from_dict(merged, builtin=False)
        self._rules[rule_id] = updated
        return updated

    def delete(self, rule_id: str) -> None:
        rule = self.get(rule_id)
        if rule.is_builtin:
            raise RuleEditError(f"built-in rule '{rule_id}' cannot be deleted; deactivate it instead")
        del self._rules[rule_id]
