"""Trigger to handler-class resolution and DML conflict warnings."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..core.models import SCRIPTED_CLASS, WARNING_MARK, AutomationItem


@dataclass(frozen=True)
class HandlerPair:
    trigger: AutomationItem
    handler: AutomationItem


def build_class_map(items: Iterable[AutomationItem]) -> dict[str, AutomationItem]:
    """Index every Apex class in the snapshot by API name."""
    return {item.api_name: item for item in items if item.kind == SCRIPTED_CLASS}


def _candidate_names(trigger: AutomationItem) -> list[str]:
    names = []
    captured = trigger.metadata.get("handlerClass")
    if captured:
        names.append(str(captured))
    names.append(f"{trigger.api_name}Handler")
    if trigger.object_name:
        obj = trigger.object_name.removesuffix("__c")
        names.append(f"{obj}TriggerHandler")
        names.append(f"{obj}Handler")
    return names


def resolve_handler(trigger: AutomationItem, class_map: dict[str, AutomationItem]) -> AutomationItem | None:
    """The captured handlerClass reference wins; naming conventions are the fallback."""
    for name in _candidate_names(trigger):
        handler = class_map.get(name)
        if handler is not None:
            return handler
    return None


def find_handler_pairs(
    triggers: Iterable[AutomationItem],
    class_map: dict[str, AutomationItem],
) -> list[HandlerPair]:
    pairs = []
    for trigger in triggers:
        handler = resolve_handler(trigger, class_map)
        if handler is not None:
            pairs.append(HandlerPair(trigger=trigger, handler=handler))
    return pairs


def _dml_objects(handler: AutomationItem) -> list[str]:
    return [str(o) for o in handler.meta_list("dmlObjects") if o]


def build_handler_warnings(
    pairs: Iterable[HandlerPair],
    triggers: Iterable[AutomationItem],
    others: Iterable[AutomationItem],
) -> list[str]:
    """Warning lines for handler DML conflicts and inline trigger DML.

    ``others`` is the active non-trigger automation on the same object.
    """
    others = list(others)
    pairs = list(pairs)
    warnings: list[str] = []

    for pair in pairs:
        object_name = pair.trigger.object_name or ""
        dml_objects = _dml_objects(pair.handler)
        same = [o for o in dml_objects if o.lower() == object_name.lower()]
        cross = [o for o in dml_objects if o.lower() != object_name.lower()]

        if same and others:
            other_names = ", ".join(f'"{i.api_name}"' for i in others)
            warnings.append(
                f'{WARNING_MARK} Handler class conflict: "{pair.handler.api_name}" performs DML on '
                f"{object_name} and {other_names} also execute on this object. Audit for duplicate "
                f"field writes or conflicting record updates across these automations."
            )
        if cross:
            warnings.append(
                f'{WARNING_MARK} Cross-object DML: "{pair.handler.api_name}" also performs DML on '
                f"{', '.join(cross)}. Verify governor limit headroom and check these updates do not "
                f"conflict with other automation on those objects."
            )

    resolved = {pair.trigger.id for pair in pairs}
    for trigger in triggers:
        if trigger.meta_flag("hasDmlInBody") and trigger.id not in resolved:
            warnings.append(
                f'{WARNING_MARK} Best practice violation: "{trigger.api_name}" contains DML or logic '
                f"directly in the trigger body. Delegate all logic and DML to a dedicated handler "
                f"class so the trigger is easier to test and consolidate."
            )
    return warnings
