"""Per-object recommendation synthesis.

For each object whose active automation does not classify as ``clean`` the
synthesizer combines the stack pattern, the order-of-execution audit and the
handler resolution into one ranked :class:`Recommendation`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ..core.models import (
    SCRIPTED_CLASS,
    SCRIPTED_TRIGGER,
    WARNING_MARK,
    AutomationItem,
    CustomerProfile,
    Finding,
    OrderAudit,
    Recommendation,
)
from .classifier import CLEAN, classify_stack, flows_share_event, split_stack
from .handlers import (
    HandlerPair,
    build_class_map,
    build_handler_warnings,
    find_handler_pairs,
)
from .ordering import audit_order_of_execution, format_sequence_step
from .tables import compute_score, estimate_effort, paths_for, worst_severity

logger = logging.getLogger(__name__)

_HIGH_HAZARD_PHRASES = {
    "undefined_order": "undefined Apex trigger execution order",
    "retrigger_risk": "Workflow Rule re-trigger risk",
}

_TITLES = {
    "deprecated_plus_flow": "Consolidate and Migrate All Automation on {obj}",
    "deprecated_plus_apex": "Migrate Deprecated Automation and Evaluate Apex Coverage on {obj}",
    "deprecated_plus_mixed": "Full Automation Consolidation Required on {obj}",
    "flow_fragmented": "Consolidate Fragmented Flows on {obj}",
    "apex_fragmented": "Consolidate Multiple Apex Triggers on {obj}",
    "flow_and_apex": "Review Flow and Apex Coexistence on {obj}",
}


def plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


def quoted(names: Iterable[str]) -> str:
    return ", ".join(f'"{n}"' for n in names)


def name_list(items: Iterable[AutomationItem]) -> str:
    return quoted(i.api_name for i in items)


@dataclass
class ObjectContext:
    """Everything the title, rationale and step builders need for one object."""
    object_name: str
    pattern: str
    active: list[AutomationItem]
    audit: OrderAudit
    pairs: list[HandlerPair]
    handler_warnings: list[str]
    preference: str

    def __post_init__(self) -> None:
        self.legacy, self.flows, self.triggers = split_stack(self.active)

    def describe_triggers(self) -> str:
        handlers = {p.trigger.id: p.handler for p in self.pairs}
        parts = []
        for trigger in self.triggers:
            handler = handlers.get(trigger.id)
            if handler is not None:
                parts.append(f'"{trigger.api_name}" (delegates to {handler.api_name})')
            else:
                parts.append(f'"{trigger.api_name}"')
        return ", ".join(parts)


def build_title(ctx: ObjectContext) -> str:
    if ctx.pattern == "deprecated_only":
        return f"Migrate {plural(len(ctx.legacy), 'Deprecated Automation')} on {ctx.object_name}"
    template = _TITLES.get(ctx.pattern, "Review Automation on {obj}")
    return template.format(obj=ctx.object_name)


def build_rationale(ctx: ObjectContext) -> str:
    parts = []
    labels = list(dict.fromkeys(i.label for i in ctx.active))
    parts.append(
        f"{ctx.object_name} has {plural(len(ctx.active), 'active automation')} "
        f"across {plural(len(labels), 'type')}: {', '.join(labels)}."
    )

    if ctx.legacy:
        kinds = " and ".join(dict.fromkeys(i.label for i in ctx.legacy))
        verb = "is" if len(ctx.legacy) == 1 else "are"
        parts.append(
            f"{plural(len(ctx.legacy), kinds)} {verb} deprecated and scheduled for platform "
            f"retirement; migration is required before the deadline."
        )

    if ctx.pattern == "flow_fragmented":
        parts.append(
            f"{plural(len(ctx.flows), 'Record-Triggered Flow')} share the same trigger event, "
            f"so execution order is fragile and must be consolidated."
        )
    elif ctx.pattern == "apex_fragmented":
        parts.append(
            f"{plural(len(ctx.triggers), 'Apex Trigger')} fire in undefined order, "
            f"a high-risk anti-pattern with data integrity risk."
        )
    elif ctx.pattern == "flow_and_apex":
        parts.append(
            "A Flow and an Apex Trigger coexist on this object; "
            "document their execution order and dependencies explicitly."
        )

    if ctx.pairs:
        triggers = ", ".join(f'"{p.trigger.api_name}"' for p in ctx.pairs)
        handlers = list(dict.fromkeys(p.handler.api_name for p in ctx.pairs))
        one = len(ctx.pairs) == 1
        parts.append(
            f"{triggers} delegate{'s' if one else ''} to handler "
            f"class{'' if len(handlers) == 1 else 'es'} {quoted(handlers)}; "
            f"include {'it' if len(handlers) == 1 else 'them'} in any consolidation audit."
        )

    resolved = {p.trigger.id for p in ctx.pairs}
    inline = [t for t in ctx.triggers if t.meta_flag("hasDmlInBody") and t.id not in resolved]
    if inline:
        verb = "has" if len(inline) == 1 else "have"
        parts.append(
            f"{name_list(inline)} {verb} DML directly in the trigger body instead of a handler "
            f"class, which is harder to test and consolidate."
        )

    conflicts = list(dict.fromkeys(h.field_name for h in ctx.audit.hazards if h.type == "field_conflict"))
    if conflicts:
        verb = "is" if len(conflicts) == 1 else "are"
        parts.append(
            f"{quoted(conflicts)} {verb} written by multiple automations; "
            f"reconcile values before consolidating."
        )

    high = [h for h in ctx.audit.hazards if h.severity == "high"]
    if high:
        phrases = dict.fromkeys(_HIGH_HAZARD_PHRASES.get(h.type, h.type.replace("_", " ")) for h in high)
        parts.append(f"High-severity risks detected: {' and '.join(phrases)}. See implementation steps.")

    return " ".join(parts)


# --- step builders ---
#
# Each builder returns (audit steps, consolidation steps, items to retire).
# build_steps places the sequence listing and every warning line between the
# two step groups and closes with the deactivation step.

def _steps_deprecated_only(ctx: ObjectContext) -> tuple[list[str], list[str], str]:
    obj, legacy = ctx.object_name, name_list(ctx.legacy)
    audit = [f"Audit {legacy} on {obj}: document criteria, field updates, email alerts, and action sequences."]
    if ctx.preference == "apex_first":
        target = "Apex Trigger handler"
        build = (
            f"Build a new Apex Trigger on {obj} with a handler class. "
            f"Implement each deprecated automation's criteria as a separate handler method."
        )
    else:
        target = "Record-Triggered Flow"
        build = (
            f"Build a new Record-Triggered Flow on {obj} with Decision branches "
            f"for each deprecated automation's criteria and actions."
        )
    consolidate = [build, f"Test the new {target} in a full sandbox against the expected behavior of {legacy}."]
    return audit, consolidate, legacy


def _steps_deprecated_plus_flow(ctx: ObjectContext) -> tuple[list[str], list[str], str]:
    obj, legacy, flows = ctx.object_name, name_list(ctx.legacy), name_list(ctx.flows)
    flow_count = plural(len(ctx.flows), "Flow")
    legacy_audit = f"Audit {legacy}: document criteria, field updates, and action sequences."

    if ctx.preference == "apex_first":
        audit = [
            f"Audit the existing {flow_count} on {obj}: {flows}. Document all elements and field updates.",
            legacy_audit,
        ]
        consolidate = [
            f"Consolidate all logic from the {flow_count} and deprecated automations "
            f"into a single Apex Trigger handler on {obj}.",
            "Test the consolidated trigger against the expected behavior of all replaced automations.",
        ]
        return audit, consolidate, name_list(ctx.flows + ctx.legacy)

    fragmented = flows_share_event(ctx.flows)
    if fragmented:
        first = (
            f"Consolidate {flow_count} on {obj} ({flows}) into a single Flow; they share a "
            f"trigger event. Merge logic using Decision elements."
        )
    else:
        first = f"Review the existing {flow_count} on {obj}: {flows}. This is the consolidation target for the deprecated automations."
    consolidate = [
        f"Migrate {legacy} into the {'consolidated' if fragmented else 'existing'} Flow using Decision branches.",
        "Test the updated Flow against the expected behavior of all migrated automations.",
    ]
    return [first, legacy_audit], consolidate, legacy + (" and redundant Flows" if fragmented else "")


def _steps_deprecated_plus_apex(ctx: ObjectContext) -> tuple[list[str], list[str], str]:
    obj, legacy, apex = ctx.object_name, name_list(ctx.legacy), ctx.describe_triggers()
    note = " Audit the handler class(es), not just the trigger body." if ctx.pairs else ""
    audit = [
        f"Audit {apex} on {obj}: map trigger events, field writes, DML, and callouts.{note}",
        f"Audit {legacy}: document criteria, field updates, and action sequences.",
    ]
    if ctx.preference == "flow_first":
        move = (
            f"Evaluate whether {apex} can move to a Flow. If it requires callouts or complex DML, keep it "
            f"and document the dependency. Migrate {legacy} into a new or existing Flow on {obj}."
        )
    else:
        move = f"Consolidate {legacy} into the existing Apex Trigger handler on {obj}."
    consolidate = [move, "Test the consolidated automation against the expected behavior of all replaced items."]
    return audit, consolidate, legacy


def _steps_deprecated_plus_mixed(ctx: ObjectContext) -> tuple[list[str], list[str], str]:
    obj, legacy, apex = ctx.object_name, name_list(ctx.legacy), ctx.describe_triggers()
    note = " Audit handler class(es) directly." if ctx.pairs else ""
    audit = [
        f"Full audit required on {obj}; complex stack: {name_list(ctx.active)}.",
        f"Audit {apex}: map trigger events, field writes, DML, callouts, and async patterns.{note}",
        f"Audit {name_list(ctx.flows)}: document all elements, field updates, and criteria.",
        f"Audit {legacy}: document criteria, field updates, and action sequences.",
    ]
    if ctx.preference == "apex_first":
        consolidate = [
            f"Consolidate all automation into a single Apex Trigger handler on {obj}. "
            f"Migrate Flow and deprecated logic as separate handler methods.",
            "Build a full regression test suite before deactivating any existing automation.",
        ]
        return audit, consolidate, name_list(ctx.legacy + ctx.flows)

    consolidate = [
        f"Evaluate whether {apex} can move to the consolidated Flow. If not, document the Apex dependency. "
        f"Consolidate {plural(len(ctx.flows), 'Flow')} and migrate {legacy} into a single "
        f"Record-Triggered Flow on {obj}.",
        "Build a full regression test suite before deactivating any existing automation.",
    ]
    return audit, consolidate, legacy + (" and redundant Flows" if len(ctx.flows) > 1 else "")


def _steps_flow_fragmented(ctx: ObjectContext) -> tuple[list[str], list[str], str]:
    flows = name_list(ctx.flows)
    audit = [
        f"Audit {plural(len(ctx.flows), 'Flow')} on {ctx.object_name}: {flows}. "
        f"Multiple Flows share the same trigger event."
    ]
    consolidate = [
        "Merge all Flows into a single Record-Triggered Flow using Decision elements for each original Flow's logic.",
        "Test the consolidated Flow against the expected behavior of all merged Flows.",
    ]
    return audit, consolidate, f"the redundant Flows among {flows}"


def _steps_apex_fragmented(ctx: ObjectContext) -> tuple[list[str], list[str], str]:
    obj = ctx.object_name
    note = " Check referenced handler classes." if ctx.pairs else ""
    audit = [
        f"Audit {ctx.describe_triggers()} on {obj}: map trigger events, field writes, and DML.{note} "
        f"Multiple triggers fire in undefined order, which is high risk."
    ]
    if ctx.pairs:
        handlers = ", ".join(dict.fromkeys(p.handler.api_name for p in ctx.pairs))
        merge = f"Merge logic from {handlers} into a unified handler with explicit method ordering."
    else:
        merge = "Move each trigger's logic into a handler class with explicit execution order."
    consolidate = [
        f"Implement a single trigger handler for {obj}. {merge}",
        f"Replace all {plural(len(ctx.triggers), 'trigger')} with a single dispatch trigger delegating to the handler.",
        "Test the consolidated handler against the expected behavior of all merged triggers.",
    ]
    return audit, consolidate, f"the redundant triggers among {name_list(ctx.triggers)}"


def _steps_flow_and_apex(ctx: ObjectContext) -> tuple[list[str], list[str], str]:
    note = " Audit the handler class directly." if ctx.pairs else ""
    audit = [
        f"Audit {name_list(ctx.flows)} (Flow): document elements, criteria, and field updates.",
        f"Audit {ctx.describe_triggers()} (Apex): document trigger events, field writes, DML, and callouts.{note}",
    ]
    if ctx.preference == "flow_first":
        evaluate = (
            "Evaluate migrating Apex logic into the existing Flow. If it requires callouts or complex DML, "
            "document the coexistence with explicit comments in both automations."
        )
        retire = name_list(ctx.triggers)
    else:
        evaluate = (
            "Evaluate migrating Flow logic into the Apex handler. If the Flow is simpler to maintain "
            "declaratively, document the coexistence explicitly instead."
        )
        retire = name_list(ctx.flows)
    consolidate = [
        evaluate,
        "Ensure both automations have descriptions referencing each other and explaining the dependency.",
    ]
    return audit, consolidate, f"any of {retire} made redundant by the migration"


_STEP_BUILDERS = {
    "deprecated_only": _steps_deprecated_only,
    "deprecated_plus_flow": _steps_deprecated_plus_flow,
    "deprecated_plus_apex": _steps_deprecated_plus_apex,
    "deprecated_plus_mixed": _steps_deprecated_plus_mixed,
    "flow_fragmented": _steps_flow_fragmented,
    "apex_fragmented": _steps_apex_fragmented,
    "flow_and_apex": _steps_flow_and_apex,
}


def build_steps(ctx: ObjectContext) -> list[str]:
    builder = _STEP_BUILDERS.get(ctx.pattern)
    if builder is None:
        return []
    audit, consolidate, retire = builder(ctx)

    steps = list(audit)
    sequence_step = format_sequence_step(ctx.audit.sequence)
    if sequence_step:
        steps.append(sequence_step)
    steps.extend(h.text for h in ctx.audit.hazards)
    steps.extend(ctx.handler_warnings)
    steps.extend(consolidate)
    steps.append(f"{WARNING_MARK} Deactivate {retire} only after full regression testing passes.")
    return steps


def synthesize_object(
    object_name: str,
    items: list[AutomationItem],
    findings: list[Finding],
    profile: CustomerProfile,
    class_map: dict[str, AutomationItem],
) -> Recommendation | None:
    """Build the recommendation for one object, or None when its stack is clean."""
    active = [i for i in items if i.is_active]
    if not active:
        return None
    pattern = classify_stack(active)
    if pattern == CLEAN:
        return None

    triggers = [i for i in active if i.kind == SCRIPTED_TRIGGER]
    others = [i for i in active if i.kind != SCRIPTED_TRIGGER]
    pairs = find_handler_pairs(triggers, class_map)
    ctx = ObjectContext(
        object_name=object_name,
        pattern=pattern,
        active=active,
        audit=audit_order_of_execution(active),
        pairs=pairs,
        handler_warnings=build_handler_warnings(pairs, triggers, others),
        preference=profile.automation_preference,
    )

    item_ids = {i.id for i in items}
    severity = worst_severity(f for f in findings if f.item_id in item_ids)
    effort = estimate_effort(pattern, len(active))
    recommended, alternative = paths_for(pattern, profile.automation_preference)
    affected = tuple(dict.fromkeys(i.id for i in active))

    logger.debug("object %s classified as %s (%d active items)", object_name, pattern, len(active))
    return Recommendation(
        object_name=object_name,
        pattern=pattern,
        title=build_title(ctx),
        rationale=build_rationale(ctx),
        steps=build_steps(ctx),
        recommended_path=recommended,
        alternative_path=alternative,
        severity=severity,
        effort=effort,
        affected_item_ids=affected,
        priority_score=compute_score(severity, len(affected), effort),
    )


def group_by_object(items: Iterable[AutomationItem]) -> tuple[dict[str, list[AutomationItem]], list[AutomationItem]]:
    """Group non-class items by object in first-seen order; objectless items go to the second list."""
    by_object: dict[str, list[AutomationItem]] = {}
    unassigned: list[AutomationItem] = []
    for item in items:
        if item.kind == SCRIPTED_CLASS:
            continue
        if item.object_name:
            by_object.setdefault(item.object_name, []).append(item)
        else:
            unassigned.append(item)
    return by_object, unassigned


def build_object_recommendations(
    items: list[AutomationItem],
    findings: list[Finding],
    profile: CustomerProfile,
) -> list[Recommendation]:
    class_map = build_class_map(items)
    by_object, _ = group_by_object(items)
    recs = []
    for object_name, group in by_object.items():
        rec = synthesize_object(object_name, group, findings, profile, class_map)
        if rec is not None:
            recs.append(rec)
    return recs
