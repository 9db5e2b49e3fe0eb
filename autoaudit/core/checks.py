"""Built-in heuristic checks, keyed by rule id.

Per-item checks take ``(item, profile)`` and return a bool. Cross-item checks
take ``(items, profile)`` and return ``(item, message)`` pairs. Custom rules
never bind a check; they are evaluated from their declarative conditions.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable

from .models import (
    AUTOLAUNCHED_FLOW,
    LEGACY_PROCESS,
    LEGACY_RULE,
    RECORD_FLOW,
    SCRIPTED_CLASS,
    SCRIPTED_TRIGGER,
    AutomationItem,
    CustomerProfile,
)
from .profile import compile_naming_pattern

CrossResult = list[tuple[AutomationItem | None, str]]

_CODE_KINDS = {SCRIPTED_TRIGGER, SCRIPTED_CLASS}
_FLOW_LIKE_KINDS = {RECORD_FLOW, AUTOLAUNCHED_FLOW, LEGACY_PROCESS}

# Minimum API version considered current
_MIN_API_VERSION = 55


@dataclass(frozen=True)
class RuleCheck:
    rule_id: str
    check_type: str
    func: Callable


_registry: dict[str, RuleCheck] = {}


def _per_item(rule_id: str):
    def register(func: Callable[[AutomationItem, CustomerProfile], bool]):
        _registry[rule_id] = RuleCheck(rule_id, "per_item", func)
        return func
    return register


def _cross_item(rule_id: str):
    def register(func: Callable[[list[AutomationItem], CustomerProfile], CrossResult]):
        _registry[rule_id] = RuleCheck(rule_id, "cross_item", func)
        return func
    return register


def _flag_check(rule_id: str, kinds: set[str], flag: str) -> None:
    """Register a per-item check firing on a parser flag of non-managed code."""

    def check(item: AutomationItem, profile: CustomerProfile) -> bool:
        return item.kind in kinds and not item.is_managed_package and item.meta_flag(flag)

    check.__name__ = f"check_{rule_id.lower()}"
    _per_item(rule_id)(check)


# --- platform ---

@_per_item("WFR001")
def _active_workflow_rule(item, profile):
    return item.kind == LEGACY_RULE and item.is_active


@_per_item("WFR002")
def _inactive_workflow_rule(item, profile):
    return item.kind == LEGACY_RULE and not item.is_active


@_per_item("WFR003")
def _workflow_outbound_message(item, profile):
    return item.kind == LEGACY_RULE and "Outbound Message" in item.meta_list("actionTypes")


@_per_item("PB001")
def _active_process_builder(item, profile):
    return item.kind == LEGACY_PROCESS and item.is_active


@_per_item("PB002")
def _inactive_process_builder(item, profile):
    return item.kind == LEGACY_PROCESS and not item.is_active


# --- quality ---

@_per_item("DESC001")
def _missing_description(item, profile):
    return item.is_active and not item.is_managed_package and not item.has_description


@_per_item("NAME001")
def _naming_convention(item, profile):
    pattern = compile_naming_pattern(profile.naming_convention_pattern)
    if pattern is None:
        return False
    return pattern.search(item.api_name or "") is None


@_per_item("FLOW001")
def _flow_missing_object(item, profile):
    return item.kind == RECORD_FLOW and not item.object_name


# --- risk ---

@_per_item("APEX001")
def _active_apex_trigger(item, profile):
    return item.kind == SCRIPTED_TRIGGER and item.is_active


@_per_item("APEX002")
def _trigger_without_handler(item, profile):
    return (
        item.kind == SCRIPTED_TRIGGER
        and item.is_active
        and not item.is_managed_package
        and not item.metadata.get("handlerClass")
    )


@_per_item("APEX003")
def _dml_in_trigger_body(item, profile):
    return (
        item.kind == SCRIPTED_TRIGGER
        and item.is_active
        and not item.is_managed_package
        and item.meta_flag("hasDmlInBody")
    )


@_per_item("APEX004")
def _soql_in_trigger_body(item, profile):
    return (
        item.kind == SCRIPTED_TRIGGER
        and item.is_active
        and not item.is_managed_package
        and item.meta_flag("hasSoqlInBody")
    )


@_per_item("APEX007")
def _outdated_api_version(item, profile):
    if item.kind not in _CODE_KINDS or item.is_managed_package:
        return False
    version = item.metadata.get("apiVersion")
    if not version:
        return False
    try:
        return float(version) < _MIN_API_VERSION
    except (TypeError, ValueError):
        return False


_flag_check("APEX005", _CODE_KINDS, "hasHardcodedIds")
_flag_check("APEX006", {SCRIPTED_CLASS}, "hasFutureMethods")
_flag_check("APEX008", {SCRIPTED_CLASS}, "hasSeeAllDataTrue")
_flag_check("APEX009", {SCRIPTED_CLASS}, "hasTestMethodKeyword")
_flag_check("APEX010", {SCRIPTED_CLASS}, "hasGlobalModifier")
_flag_check("APEX011", _CODE_KINDS, "hasDebugWithoutLevel")
_flag_check("APEX012", {SCRIPTED_CLASS}, "isQueueableWithoutFinalizer")
_flag_check("APEX013", {SCRIPTED_CLASS}, "isTestClassWithoutAsserts")
_flag_check("APEX014", {SCRIPTED_CLASS}, "isTestClassWithoutRunAs")

# --- security ---

_flag_check("SEC001", {SCRIPTED_CLASS}, "hasInsecureEndpoint")
_flag_check("SEC002", _CODE_KINDS, "hasXssFromEscapeFalse")
_flag_check("SEC003", {SCRIPTED_CLASS}, "hasDangerousMethodCall")
_flag_check("SEC004", {SCRIPTED_CLASS}, "missesShareDeclaration")
_flag_check("SEC005", _CODE_KINDS, "hasSoqlInjectionRisk")
_flag_check("SEC006", {SCRIPTED_CLASS}, "hasCrudViolationRisk")
_flag_check("SEC007", {SCRIPTED_CLASS}, "hasHardcodedCrypto")
_flag_check("SEC008", {SCRIPTED_CLASS}, "hasHardcodedCredentials")
_flag_check("SEC009", {SCRIPTED_CLASS}, "hasOpenRedirectRisk")


# --- housekeeping ---

@_per_item("INACT001")
def _inactive_unmanaged(item, profile):
    return not item.is_active and not item.is_managed_package


@_per_item("PKG001")
def _managed_package(item, profile):
    return item.is_managed_package


# --- cross-item ---

def _group_active(items: Iterable[AutomationItem], kinds: set[str], key=None) -> dict:
    """Group active, object-bound items of the given kinds, in first-seen order."""
    groups: dict = {}
    for item in items:
        if item.kind not in kinds or not item.is_active or not item.object_name:
            continue
        k = key(item) if key else item.object_name
        groups.setdefault(k, []).append(item)
    return groups


def _names(items: Iterable[AutomationItem]) -> str:
    return ", ".join(i.api_name for i in items)


@_cross_item("MULTI001")
def _multiple_flows_same_event(items, profile):
    groups = _group_active(
        items, {RECORD_FLOW},
        key=lambda i: (i.object_name, tuple(sorted(i.trigger_events))),
    )
    results: CrossResult = []
    for (object_name, events), group in groups.items():
        if len(group) < 2:
            continue
        event_text = ", ".join(events) or "unspecified event"
        names = _names(group)
        for item in group:
            results.append((
                item,
                f"Multiple active Record-Triggered Flows on {object_name} ({event_text}): {names}",
            ))
    return results


@_cross_item("MULTI002")
def _trigger_and_flow(items, profile):
    triggers = _group_active(items, {SCRIPTED_TRIGGER})
    flows = _group_active(items, {RECORD_FLOW})
    results: CrossResult = []
    for object_name, group in triggers.items():
        if object_name not in flows:
            continue
        flow_names = _names(flows[object_name])
        for item in group:
            results.append((
                item,
                f"Apex Trigger '{item.api_name}' and Record-Triggered Flow(s) [{flow_names}] "
                f"both operate on {object_name}",
            ))
    return results


@_cross_item("MULTI003")
def _multiple_triggers(items, profile):
    results: CrossResult = []
    for object_name, group in _group_active(items, {SCRIPTED_TRIGGER}).items():
        if len(group) < 2:
            continue
        names = _names(group)
        for item in group:
            results.append((
                item,
                f"Multiple active Apex Triggers on {object_name} fire in undefined order: {names}",
            ))
    return results


@_cross_item("MULTI004")
def _workflow_and_flow(items, profile):
    rules = _group_active(items, {LEGACY_RULE})
    flows = _group_active(items, _FLOW_LIKE_KINDS)
    results: CrossResult = []
    for object_name, group in rules.items():
        if object_name not in flows:
            continue
        flow_names = _names(flows[object_name])
        for item in group:
            results.append((
                item,
                f"Workflow Rule '{item.api_name}' and Flow(s) [{flow_names}] both operate on "
                f"{object_name}; the automation is redundant",
            ))
    return results


CHECKS: MappingProxyType = MappingProxyType(dict(_registry))
del _registry


def get_check(rule_id: str) -> RuleCheck | None:
    return CHECKS.get(rule_id)
