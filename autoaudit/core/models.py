from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Mapping

# Automation kinds
LEGACY_RULE = "legacy-rule"
LEGACY_PROCESS = "legacy-branching-process"
RECORD_FLOW = "record-triggered-flow"
AUTOLAUNCHED_FLOW = "autolaunched-flow"
SCREEN_FLOW = "screen-flow"
SCRIPTED_TRIGGER = "scripted-trigger"
SCRIPTED_CLASS = "scripted-class"

KINDS = frozenset({
    LEGACY_RULE, LEGACY_PROCESS, RECORD_FLOW, AUTOLAUNCHED_FLOW,
    SCREEN_FLOW, SCRIPTED_TRIGGER, SCRIPTED_CLASS,
})

KIND_LABELS = MappingProxyType({
    LEGACY_RULE: "Workflow Rule",
    LEGACY_PROCESS: "Process Builder",
    RECORD_FLOW: "Record-Triggered Flow",
    AUTOLAUNCHED_FLOW: "Autolaunched Flow",
    SCREEN_FLOW: "Screen Flow",
    SCRIPTED_TRIGGER: "Apex Trigger",
    SCRIPTED_CLASS: "Apex Class",
})

LEGACY_KINDS = frozenset({LEGACY_RULE, LEGACY_PROCESS})

# Canonical trigger events
BEFORE_SAVE = "before save"
AFTER_SAVE = "after save"
BEFORE_DELETE = "before delete"
CANONICAL_EVENTS = (BEFORE_SAVE, AFTER_SAVE, BEFORE_DELETE)

SEVERITIES = ("error", "warning", "info")
LAYERS = ("platform", "quality", "risk", "housekeeping")
CHECK_TYPES = ("per_item", "cross_item")
EFFORTS = ("low", "medium", "high")
PREFERENCES = ("flow_first", "apex_first", "balanced")
STATUSES = ("open", "accepted", "dismissed")

WARNING_MARK = "⚠"


@dataclass(frozen=True)
class AutomationItem:
    id: str
    kind: str
    api_name: str
    object_name: str | None = None
    trigger_events: tuple[str, ...] = ()
    is_active: bool = False
    has_description: bool = False
    is_managed_package: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)
    summary: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "trigger_events", tuple(self.trigger_events))
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    @property
    def label(self) -> str:
        return KIND_LABELS.get(self.kind, self.kind)

    def meta_list(self, key: str) -> list:
        """Return a metadata list value, or [] when absent or malformed."""
        value = self.metadata.get(key)
        if isinstance(value, (list, tuple, set, frozenset)):
            return list(value)
        return []

    def meta_flag(self, key: str) -> bool:
        return self.metadata.get(key) is True

    def attribute(self, name: str) -> Any:
        """Look up a top-level attribute, falling back to the metadata bag."""
        if name in _ITEM_FIELDS:
            return getattr(self, name)
        return self.metadata.get(name)

    def with_summary(self, summary: str | None) -> AutomationItem:
        return replace(self, summary=summary)


_ITEM_FIELDS = frozenset(f.name for f in fields(AutomationItem)) | {"label"}


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class Rule:
    id: str
    layer: str
    severity: str
    check_type: str = "per_item"
    name: str = ""
    description: str = ""
    applies_to: tuple[str, ...] = ()
    conditions: tuple[Condition, ...] = ()
    message_template: str = ""
    is_builtin: bool = False
    is_active: bool = True
    sort_order: int = 0


@dataclass(frozen=True)
class Finding:
    rule_id: str
    severity: str
    message: str
    item_id: str | None = None
    api_name: str | None = None
    object_name: str | None = None


@dataclass(frozen=True)
class CustomerProfile:
    automation_preference: str = "flow_first"
    active_rule_layers: tuple[str, ...] = LAYERS
    suppressed_rule_ids: tuple[str, ...] = ()
    naming_convention_pattern: str | None = None


@dataclass(frozen=True)
class SequenceEntry:
    name: str
    kind: str
    phase: int
    phase_label: str


@dataclass(frozen=True)
class Hazard:
    type: str
    severity: str
    text: str
    # Set for field_conflict hazards only
    field_name: str | None = None
    writers: tuple[str, ...] = ()
    winner: str | None = None


@dataclass(frozen=True)
class OrderAudit:
    sequence: tuple[SequenceEntry, ...] = ()
    hazards: tuple[Hazard, ...] = ()


@dataclass
class Recommendation:
    object_name: str | None
    pattern: str
    title: str
    rationale: str
    steps: list[str]
    recommended_path: str
    severity: str
    effort: str
    alternative_path: str | None = None
    affected_item_ids: tuple[str, ...] = ()
    priority_score: int = 0
    status: str = "open"

    def numbered_steps(self) -> list[dict]:
        return [{"step": i, "text": text} for i, text in enumerate(self.steps, start=1)]

    def to_dict(self) -> dict:
        return {
            "object_name": self.object_name,
            "pattern": self.pattern,
            "title": self.title,
            "rationale": self.rationale,
            "steps": self.numbered_steps(),
            "recommended_path": self.recommended_path,
            "alternative_path": self.alternative_path,
            "severity": self.severity,
            "effort_estimate": self.effort,
            "priority_score": self.priority_score,
            "affected_item_ids": list(self.affected_item_ids),
            "status": self.status,
        }
