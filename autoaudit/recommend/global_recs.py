"""Org-level recommendations that do not depend on per-object classification."""
from __future__ import annotations

from typing import Iterable

from ..core.models import (
    LEGACY_KINDS,
    LEGACY_PROCESS,
    LEGACY_RULE,
    RECORD_FLOW,
    SCRIPTED_CLASS,
    SCRIPTED_TRIGGER,
    WARNING_MARK,
    AutomationItem,
    Recommendation,
)
from .synthesizer import name_list, plural
from .tables import compute_score

# Fewer items than this are not worth a standalone recommendation
MIN_GLOBAL_ITEMS = 3


def _recommendation(**kwargs) -> Recommendation:
    rec = Recommendation(**kwargs)
    rec.priority_score = compute_score(rec.severity, len(rec.affected_item_ids), rec.effort)
    return rec


def _ids(items: Iterable[AutomationItem]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(i.id for i in items))


def undocumented_recommendation(items: list[AutomationItem]) -> Recommendation | None:
    undocumented = [i for i in items if i.is_active and not i.has_description and not i.is_managed_package]
    if len(undocumented) < MIN_GLOBAL_ITEMS:
        return None
    return _recommendation(
        object_name=None,
        pattern="global_description",
        title=f"Add Descriptions to {plural(len(undocumented), 'Undocumented Automation')}",
        rationale=(
            f"{plural(len(undocumented), 'active automation')} lack descriptions, "
            f"making the org harder to audit and hand off."
        ),
        steps=[
            f"Add descriptions to: {name_list(undocumented)}.",
            "Each description should include purpose, business process, triggering condition, and dependencies.",
        ],
        recommended_path="Add inline descriptions to all undocumented active automations",
        severity="warning",
        effort="medium" if len(undocumented) > 10 else "low",
        affected_item_ids=_ids(undocumented),
    )


def inactive_recommendation(items: list[AutomationItem]) -> Recommendation | None:
    inactive = [i for i in items if not i.is_active and not i.is_managed_package]
    if len(inactive) < MIN_GLOBAL_ITEMS:
        return None
    return _recommendation(
        object_name=None,
        pattern="global_inactive",
        title=f"Clean Up {plural(len(inactive), 'Inactive Automation')}",
        rationale=(
            f"{plural(len(inactive), 'inactive automation')} exist outside managed packages; "
            f"they add noise and complicate audits."
        ),
        steps=[
            f"Review each inactive automation and confirm whether it is still needed: {name_list(inactive)}.",
            "Delete confirmed-unused automations. For retained automations, add a description "
            "explaining the inactive status.",
        ],
        recommended_path="Delete or archive all confirmed-unused inactive automations",
        severity="info",
        effort="low",
        affected_item_ids=_ids(inactive),
    )


def legacy_recommendation(
    object_name: str | None,
    legacy: list[AutomationItem],
    on_object: list[AutomationItem],
) -> Recommendation:
    """One migration plan for the active legacy items sharing an object.

    ``on_object`` is every item on the same object; active record-triggered
    flows there are preferred as the migration target over Apex triggers.
    """
    modern = [i for i in on_object if i.is_active and i.kind not in LEGACY_KINDS and i.kind != SCRIPTED_CLASS]
    flows = [i for i in modern if i.kind == RECORD_FLOW]
    triggers = [i for i in modern if i.kind == SCRIPTED_TRIGGER]

    rules = [i for i in legacy if i.kind == LEGACY_RULE]
    processes = [i for i in legacy if i.kind == LEGACY_PROCESS]
    kind_parts = []
    if rules:
        kind_parts.append(f"{plural(len(rules), 'Workflow Rule')} ({name_list(rules)})")
    if processes:
        kind_parts.append(f"{plural(len(processes), 'Process Builder')} ({name_list(processes)})")
    kinds_text = " and ".join(kind_parts)

    on = f" on {object_name}" if object_name else ""
    legacy_names = name_list(legacy)
    flow_target = f'"{flows[0].api_name}"' if len(flows) == 1 else f"the existing Flows ({name_list(flows)})"

    rationale = "Workflow Rules and Process Builder are deprecated by the platform. "
    if object_name:
        rationale += f"{object_name} has {kinds_text} still active."
    else:
        rationale += f"This org has {kinds_text} without an object association still active."
    if flows:
        existing = f'Flow "{flows[0].api_name}"' if len(flows) == 1 else f"Flows ({name_list(flows)})"
        rationale += f" Existing {existing}{on} can serve as the consolidation target."
    elif triggers:
        rationale += f" Existing Apex Trigger {name_list(triggers)}{on} is a consolidation candidate."
    elif object_name:
        rationale += f" No modern automation exists on {object_name}; a new Flow or Apex Trigger will be needed."

    steps = [f"Audit {legacy_names}{on}: document criteria, field updates, email alerts, and action sequences."]
    if flows:
        steps.append(f"Migrate logic from {legacy_names} into {flow_target} using Decision branches.")
        recommended = f"Migrate into existing {flow_target if len(flows) == 1 else 'Flows'}{on}"
    elif triggers:
        steps.append(
            f"Migrate logic from {legacy_names} into the existing Apex Trigger {name_list(triggers)} as handler methods."
        )
        recommended = f"Consolidate into existing Apex Trigger{on}"
    else:
        if object_name:
            steps.append(
                f"Build a new Record-Triggered Flow on {object_name} with Decision branches "
                f"for each automation's criteria and actions."
            )
        else:
            steps.append("Map the logic to a new Record-Triggered Flow or Apex Trigger.")
        recommended = f"Migrate to a new Record-Triggered Flow{on}"
    steps.append("Test the replacement in a full sandbox regression.")
    steps.append(f"{WARNING_MARK} Deactivate and delete legacy automation only after full validation.")

    if any("Outbound Message" in r.meta_list("actionTypes") for r in rules):
        alternative = "Automations using Outbound Messages should migrate to a Flow with Platform Events or Apex callouts"
    elif flows:
        alternative = "Consolidate into an Apex Trigger handler if complex logic requires it"
    else:
        alternative = "Consolidate into a new Apex Trigger handler"

    if len(legacy) == 1:
        title = f'Migrate "{legacy[0].api_name}"{on}'
    else:
        title = f"Migrate {plural(len(legacy), 'Legacy Automation')}{on}"

    return _recommendation(
        object_name=None,
        pattern="global_legacy",
        title=title,
        rationale=rationale,
        steps=steps,
        recommended_path=recommended,
        alternative_path=alternative,
        severity="error",
        effort="high" if len(legacy) > 3 else "medium",
        affected_item_ids=_ids(legacy),
    )


def build_global_recommendations(
    items: list[AutomationItem],
    by_object: dict[str, list[AutomationItem]],
) -> list[Recommendation]:
    recs = [
        rec for rec in (undocumented_recommendation(items), inactive_recommendation(items))
        if rec is not None
    ]

    legacy_groups: dict[str | None, list[AutomationItem]] = {}
    for item in items:
        if item.is_active and not item.is_managed_package and item.kind in LEGACY_KINDS:
            legacy_groups.setdefault(item.object_name or None, []).append(item)

    for object_name, legacy in legacy_groups.items():
        on_object = by_object.get(object_name, []) if object_name else []
        recs.append(legacy_recommendation(object_name, legacy, on_object))
    return recs
