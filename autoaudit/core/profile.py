"""Customer profile: automation preference, enabled rule layers, suppressions."""
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from .models import LAYERS, PREFERENCES, CustomerProfile

DEFAULT_PROFILE = CustomerProfile()


class ProfileError(Exception):
    """Raised when a profile file is malformed."""


def profile_from_dict(data: dict[str, Any]) -> CustomerProfile:
    """Build a profile from a mapping, applying defaults for missing keys."""
    errors: list[str] = []

    preference = str(data.get("automation_preference") or DEFAULT_PROFILE.automation_preference)
    preference = preference.strip().lower().replace("-", "_")
    if preference not in PREFERENCES:
        errors.append(f"automation_preference: unknown value '{preference}' (valid: {', '.join(PREFERENCES)})")

    layers = data.get("active_rule_layers")
    if layers is None:
        layers = list(LAYERS)
    if not isinstance(layers, list):
        errors.append(f"active_rule_layers: expected list, got {type(layers).__name__}")
        layers = []
    unknown = [layer for layer in layers if layer not in LAYERS]
    if unknown:
        errors.append(f"active_rule_layers: unknown layers {unknown}")

    suppressed = data.get("suppressed_rule_ids") or []
    if not isinstance(suppressed, list):
        errors.append(f"suppressed_rule_ids: expected list, got {type(suppressed).__name__}")
        suppressed = []

    pattern = data.get("naming_convention_pattern") or None
    if pattern is not None and not isinstance(pattern, str):
        errors.append("naming_convention_pattern: expected a string")

    if errors:
        raise ProfileError("profile validation failed:\n  " + "\n  ".join(errors))

    return CustomerProfile(
        automation_preference=preference,
        active_rule_layers=tuple(layers),
        suppressed_rule_ids=tuple(str(s) for s in suppressed),
        naming_convention_pattern=pattern,
    )


def load_profile(path: Path) -> CustomerProfile:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ProfileError(f"{path}: cannot load profile: {e}") from e

    if data is None:
        return DEFAULT_PROFILE
    if not isinstance(data, dict):
        raise ProfileError(f"{path}: expected a YAML mapping at top level")
    try:
        return profile_from_dict(data)
    except ProfileError as e:
        raise ProfileError(f"{path}: {e}") from e


@lru_cache(maxsize=32)
def compile_naming_pattern(pattern: str | None) -> re.Pattern | None:
    """Compile the naming convention; an invalid pattern yields None."""
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error:
        return None
