"""Static order-of-execution audit for the active automation on one object.

Phases (lower fires earlier):

    1  Before-save Flow       fires before Apex triggers
    2  Apex before trigger
    3  Apex after trigger
    4  Workflow Rule          after save; a field update re-saves the record
    5  Process Builder        after Workflow Rules
    6  After-save Flow        fires last

Re-saves caused by phases 4 and 5 are flagged as hazards, never simulated.
"""
from __future__ import annotations

from typing import Iterable

from ..core.models import (
    BEFORE_SAVE,
    LEGACY_PROCESS,
    LEGACY_RULE,
    RECORD_FLOW,
    SCRIPTED_TRIGGER,
    WARNING_MARK,
    AutomationItem,
    Hazard,
    OrderAudit,
    SequenceEntry,
)

BEFORE_FLOW = 1
APEX_BEFORE = 2
APEX_AFTER = 3
WORKFLOW_RULE = 4
PROCESS_BUILDER = 5
AFTER_FLOW = 6

PHASE_LABELS = {
    BEFORE_FLOW: "Before-save Flow",
    APEX_BEFORE: "Apex before trigger",
    APEX_AFTER: "Apex after trigger",
    WORKFLOW_RULE: "Workflow Rule (after save)",
    PROCESS_BUILDER: "Process Builder (after save)",
    AFTER_FLOW: "After-save Flow",
}

# Field names listed in a re-trigger hazard before collapsing into "+N more"
_FIELD_LIST_LIMIT = 3


def execution_phases(item: AutomationItem) -> list[int]:
    """Phases one item occupies; an Apex trigger may occupy both 2 and 3."""
    if item.kind == LEGACY_RULE:
        return [WORKFLOW_RULE]
    if item.kind == LEGACY_PROCESS:
        return [PROCESS_BUILDER]
    if item.kind == RECORD_FLOW:
        before = (
            item.metadata.get("triggerType") == "RecordBeforeSave"
            or BEFORE_SAVE in item.trigger_events
        )
        return [BEFORE_FLOW] if before else [AFTER_FLOW]
    if item.kind == SCRIPTED_TRIGGER:
        events = [str(e).strip().lower() for e in item.meta_list("events") or item.trigger_events]
        phases = []
        if any(e.startswith("before") for e in events):
            phases.append(APEX_BEFORE)
        if any(e.startswith("after") for e in events):
            phases.append(APEX_AFTER)
        return phases or [APEX_BEFORE]
    return []


def _quoted(names: Iterable[str], sep: str = ", ") -> str:
    return sep.join(f'"{n}"' for n in names)


def _unique_names(entries: list[tuple[AutomationItem, int]]) -> list[str]:
    return list(dict.fromkeys(item.api_name for item, _ in entries))


def _field_writes(item: AutomationItem) -> list[str]:
    return [f for f in item.meta_list("fieldUpdateFields") if f]


def _field_list(fields: list[str]) -> str:
    text = _quoted(fields[:_FIELD_LIST_LIMIT])
    if len(fields) > _FIELD_LIST_LIMIT:
        text += f" +{len(fields) - _FIELD_LIST_LIMIT} more"
    return text


def audit_order_of_execution(active_items: Iterable[AutomationItem]) -> OrderAudit:
    entries = [(item, phase) for item in active_items for phase in execution_phases(item)]
    entries.sort(key=lambda e: (e[1], e[0].api_name))

    by_phase: dict[int, list[tuple[AutomationItem, int]]] = {}
    for entry in entries:
        by_phase.setdefault(entry[1], []).append(entry)

    hazards: list[Hazard] = []

    for phase, timing in ((APEX_BEFORE, "before"), (APEX_AFTER, "after")):
        group = by_phase.get(phase, [])
        if len(group) >= 2:
            names = _quoted((item.api_name for item, _ in group), sep=" and ")
            quantifier = "both" if len(group) == 2 else "all"
            hazards.append(Hazard(
                type="undefined_order",
                severity="high",
                text=(
                    f"{WARNING_MARK} Undefined order: {names} are {quantifier} {timing}-trigger Apex triggers "
                    f"and the platform does not guarantee which fires first. "
                    f"Consolidate them into a single trigger handler."
                ),
            ))

    for phase, timing in ((BEFORE_FLOW, "before-save"), (AFTER_FLOW, "after-save")):
        group = by_phase.get(phase, [])
        if len(group) >= 2:
            names = sorted(item.api_name for item, _ in group)
            hazards.append(Hazard(
                type="flow_order",
                severity="warning",
                text=(
                    f"{WARNING_MARK} Flow order: multiple {timing} Flows fire alphabetically "
                    f"({_quoted(names, sep=' → ')}); verify this is intentional if they share fields."
                ),
            ))

    apex_entries = by_phase.get(APEX_BEFORE, []) + by_phase.get(APEX_AFTER, [])
    apex_names = _quoted(_unique_names(apex_entries))

    rule_writers = [e for e in by_phase.get(WORKFLOW_RULE, []) if _field_writes(e[0])]
    if rule_writers and apex_entries:
        fields = list(dict.fromkeys(f for item, _ in rule_writers for f in _field_writes(item)))
        verb = "updates" if len(rule_writers) == 1 else "update"
        hazards.append(Hazard(
            type="retrigger_risk",
            severity="high",
            text=(
                f"{WARNING_MARK} Re-trigger: {_quoted(_unique_names(rule_writers))} {verb} "
                f"{_field_list(fields)}, re-saving the record and re-firing {apex_names}. "
                f"Confirm the trigger has a recursion guard."
            ),
        ))

    process_entries = by_phase.get(PROCESS_BUILDER, [])
    if process_entries and apex_entries:
        process_writers = [e for e in process_entries if _field_writes(e[0])]
        if process_writers:
            fields = list(dict.fromkeys(f for item, _ in process_writers for f in _field_writes(item)))
            text = (
                f"{WARNING_MARK} Re-trigger: {_quoted(_unique_names(process_writers))} "
                f"{'updates' if len(process_writers) == 1 else 'update'} {_field_list(fields)}, "
                f"which may re-save the record and re-fire {apex_names}. "
                f"Confirm a recursion guard is in place."
            )
        else:
            # No field-write data captured for these processes
            text = (
                f"{WARNING_MARK} Re-trigger: if {_quoted(_unique_names(process_entries))} "
                f"{'updates' if len(process_entries) == 1 else 'update'} this object's fields, "
                f"{apex_names} will re-fire. Confirm a recursion guard is in place."
            )
        hazards.append(Hazard(type="pb_retrigger", severity="warning", text=text))

    writers_by_field: dict[str, list[tuple[AutomationItem, int]]] = {}
    for entry in entries:
        for field_name in dict.fromkeys(_field_writes(entry[0])):
            writers_by_field.setdefault(field_name, []).append(entry)
    for field_name, writers in writers_by_field.items():
        if len(writers) < 2:
            continue
        # entries are already in phase order, so the last writer fires last
        winner = writers[-1][0]
        writer_list = ", ".join(f'"{item.api_name}" ({PHASE_LABELS[phase]})' for item, phase in writers)
        hazards.append(Hazard(
            type="field_conflict",
            severity="warning",
            text=(
                f'{WARNING_MARK} Field conflict on "{field_name}": {writer_list}. '
                f'"{winner.api_name}" fires last and its value is likely to win; verify this is intentional.'
            ),
            field_name=field_name,
            writers=tuple(item.api_name for item, _ in writers),
            winner=winner.api_name,
        ))

    sequence = tuple(
        SequenceEntry(name=item.api_name, kind=item.kind, phase=phase, phase_label=PHASE_LABELS[phase])
        for item, phase in entries
    )
    return OrderAudit(sequence=sequence, hazards=tuple(hazards))


def format_sequence_step(sequence: Iterable[SequenceEntry]) -> str | None:
    """Render the 1-indexed firing order, or None when there is nothing to order."""
    sequence = list(sequence)
    if len(sequence) <= 1:
        return None
    lines = "\n".join(f"  {i}. {s.name} ({s.phase_label})" for i, s in enumerate(sequence, start=1))
    return f"Order of execution on this object (earliest → latest):\n{lines}"
