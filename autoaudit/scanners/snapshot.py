from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from ..core.models import KIND_LABELS, KINDS, SCRIPTED_TRIGGER, AutomationItem
from ..recommend.classifier import normalize_raw_event

logger = logging.getLogger(__name__)

# Kind ids and display labels, case-insensitive
_KIND_ALIASES = {
    **{kind: kind for kind in KINDS},
    **{label.lower(): kind for kind, label in KIND_LABELS.items()},
}

_TRUE_STRINGS = {"true", "yes", "1", "on"}


class SnapshotError(Exception):
    """Raised when an inventory snapshot cannot be read or is malformed."""


def _read_document(path: Path) -> Any:
    """Load a snapshot file, auto-detecting JSON vs YAML."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SnapshotError(f"{path}: cannot read snapshot: {e}") from e

    if path.suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise SnapshotError(f"{path}: invalid JSON: {e}") from e

    # Try JSON first (files that happen to be JSON)
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        pass

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SnapshotError(f"{path}: invalid YAML: {e}") from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def resolve_kind(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return _KIND_ALIASES.get(value.strip()) or _KIND_ALIASES.get(value.strip().lower())


def item_from_dict(raw: dict) -> AutomationItem:
    """Build one item from a raw mapping; raises ValueError on unusable input."""
    kind = resolve_kind(raw.get("kind") or raw.get("automation_type") or raw.get("type"))
    if kind is None:
        raise ValueError(f"unknown kind {raw.get('kind') or raw.get('automation_type') or raw.get('type')!r}")
    api_name = raw.get("api_name")
    if not api_name:
        raise ValueError("missing api_name")

    metadata = raw.get("metadata")
    if metadata is None:
        metadata = raw.get("parsed_data")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ValueError("metadata: expected mapping")
    metadata = dict(metadata)

    raw_events = [str(e) for e in _as_list(raw.get("trigger_events"))]
    if kind == SCRIPTED_TRIGGER and raw_events and "events" not in metadata:
        # Apex phase placement needs the raw before/after insert/update spelling
        metadata["events"] = raw_events
    events = list(dict.fromkeys(e for e in (normalize_raw_event(x) for x in raw_events) if e))

    return AutomationItem(
        id=str(raw.get("id") or api_name),
        kind=kind,
        api_name=str(api_name),
        object_name=raw.get("object_name") or None,
        trigger_events=tuple(events),
        is_active=_as_bool(raw.get("is_active", False)),
        has_description=_as_bool(raw.get("has_description", False)),
        is_managed_package=_as_bool(raw.get("is_managed_package", False)),
        metadata=metadata,
        summary=raw.get("summary"),
    )


def load_snapshot(path: Path) -> list[AutomationItem]:
    """Read an inventory file: a list of items, or a mapping with an ``items`` list."""
    path = Path(path)
    data = _read_document(path)
    if isinstance(data, dict):
        data = data.get("items")
    if data is None:
        data = []
    if not isinstance(data, list):
        raise SnapshotError(f"{path}: expected a list of items or a mapping with an 'items' list")

    items: list[AutomationItem] = []
    errors: list[str] = []
    seen: set[str] = set()
    for i, raw in enumerate(data):
        if not isinstance(raw, dict):
            errors.append(f"items[{i}]: expected dict, got {type(raw).__name__}")
            continue
        try:
            item = item_from_dict(raw)
        except ValueError as e:
            errors.append(f"items[{i}] (api_name={raw.get('api_name', '?')}): {e}")
            continue
        if item.id in seen:
            errors.append(f"items[{i}] (api_name={item.api_name}): duplicate id '{item.id}'")
            continue
        seen.add(item.id)
        items.append(item)

    if errors:
        joined = "\n  ".join(errors)
        raise SnapshotError(f"{path}: snapshot validation failed:\n  {joined}")

    logger.debug("loaded %d items from %s", len(items), path)
    return items
