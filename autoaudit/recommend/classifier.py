"""Event normalization and stack classification for one object's active automation."""
from __future__ import annotations

from collections import Counter
from typing import Iterable

from ..core.models import (
    AFTER_SAVE,
    BEFORE_DELETE,
    BEFORE_SAVE,
    CANONICAL_EVENTS,
    LEGACY_KINDS,
    RECORD_FLOW,
    SCRIPTED_TRIGGER,
    AutomationItem,
)

CLEAN = "clean"
PATTERNS = (
    "deprecated_plus_mixed",
    "deprecated_plus_flow",
    "deprecated_plus_apex",
    "deprecated_only",
    "flow_and_apex",
    "apex_fragmented",
    "flow_fragmented",
    CLEAN,
)

# Flow start-element trigger types
FLOW_TRIGGER_TYPES = {
    "RecordBeforeSave": BEFORE_SAVE,
    "RecordAfterSave": AFTER_SAVE,
    "RecordBeforeDelete": BEFORE_DELETE,
}


def normalize_raw_event(event: str) -> str | None:
    """Map one raw trigger event (``before update``, ``RecordAfterSave``) to a canonical one."""
    text = str(event).strip()
    if text in FLOW_TRIGGER_TYPES:
        return FLOW_TRIGGER_TYPES[text]
    text = text.lower()
    if text in CANONICAL_EVENTS:
        return text
    words = text.split()
    if len(words) != 2 or words[0] not in ("before", "after"):
        return None
    timing, operation = words
    if operation in ("insert", "update", "undelete", "save"):
        return BEFORE_SAVE if timing == "before" else AFTER_SAVE
    if operation == "delete":
        return BEFORE_DELETE
    return None


def normalize_events(item: AutomationItem) -> list[str]:
    """Reduce an item's events to canonical events for cross-kind comparison."""
    if item.kind in LEGACY_KINDS:
        return [AFTER_SAVE]
    if item.kind == RECORD_FLOW:
        events = list(item.trigger_events)
        trigger_type = item.metadata.get("triggerType")
        if not events and trigger_type in FLOW_TRIGGER_TYPES:
            events = [FLOW_TRIGGER_TYPES[trigger_type]]
        return _dedupe(e for e in (normalize_raw_event(x) for x in events) if e)
    if item.kind == SCRIPTED_TRIGGER:
        raw = item.meta_list("events") or list(item.trigger_events)
        return _dedupe(e for e in (normalize_raw_event(x) for x in raw) if e)
    return []


def _dedupe(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def split_stack(active_items: Iterable[AutomationItem]) -> tuple[list, list, list]:
    """Partition items into (legacy, modern flow, scripted trigger) buckets."""
    legacy, flows, triggers = [], [], []
    for item in active_items:
        if item.kind in LEGACY_KINDS:
            legacy.append(item)
        elif item.kind == RECORD_FLOW:
            flows.append(item)
        elif item.kind == SCRIPTED_TRIGGER:
            triggers.append(item)
    return legacy, flows, triggers


def flows_share_event(flows: Iterable[AutomationItem]) -> bool:
    counts = Counter(e for f in flows for e in normalize_events(f))
    return any(c > 1 for c in counts.values())


def classify_stack(active_items: Iterable[AutomationItem]) -> str:
    legacy, flows, triggers = split_stack(active_items)

    if legacy and flows and triggers:
        return "deprecated_plus_mixed"
    if legacy and flows:
        return "deprecated_plus_flow"
    if legacy and triggers:
        return "deprecated_plus_apex"
    if legacy:
        return "deprecated_only"

    if flows and triggers:
        return "flow_and_apex"
    if len(triggers) > 1:
        return "apex_fragmented"
    # Several flows only fragment when they collide on an event
    if len(flows) > 1 and flows_share_event(flows):
        return "flow_fragmented"
    return CLEAN
