"""Entry point: python -m autoaudit [--json] [--fail-on LEVEL] <snapshot>"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from . import __version__
from .core.analysis import run_analysis
from .core.profile import DEFAULT_PROFILE, ProfileError, load_profile
from .core.rules import RuleLoadError, RuleStore
from .scanners.snapshot import SnapshotError, load_snapshot

_SEVERITY_RANK = {"info": 0, "warning": 1, "error": 2}
_SCHEMA_VERSION = "0.1"


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="autoaudit",
        description="Automation conflict audit and consolidation recommendations",
    )
    parser.add_argument("snapshot", type=Path, help="Path to an automation inventory (JSON or YAML)")
    parser.add_argument("--json", action="store_true", dest="json_output", help="Output results as JSON")
    parser.add_argument("--rules", type=Path, help="Path to a custom rules YAML file")
    parser.add_argument("--profile", type=Path, help="Path to a customer profile YAML file")
    parser.add_argument(
        "--fail-on",
        choices=list(_SEVERITY_RANK),
        default="error",
        help="Minimum finding severity that causes a non-zero exit code (default: error)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        store = RuleStore.builtin()
        if args.rules:
            store.load_custom(args.rules)
        profile = load_profile(args.profile) if args.profile else DEFAULT_PROFILE
        items = load_snapshot(args.snapshot)
    except (RuleLoadError, ProfileError, SnapshotError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    result = run_analysis(items, store.snapshot(), profile)

    for w in result.warnings:
        print(f"warning: {w}", file=sys.stderr)

    if args.json_output:
        meta: dict = {
            "schema_version": _SCHEMA_VERSION,
            "tool_version": __version__,
            "snapshot_path": str(args.snapshot),
            "rule_count": result.rule_count,
            "finding_count": len(result.findings),
            "recommendation_count": len(result.recommendations),
        }
        if result.warnings:
            meta["warnings"] = result.warnings
        output = {
            "meta": meta,
            "findings": [asdict(f) for f in result.findings],
            "recommendations": [r.to_dict() for r in result.recommendations],
        }
        print(json.dumps(output, indent=2, default=str, ensure_ascii=False))
    elif not result.findings and not result.recommendations:
        print(f"Audit complete ({result.rule_count} rules, {len(items)} items). No issues found.")
    else:
        print(
            f"Audit complete: {result.rule_count} rules, {len(items)} items, "
            f"{len(result.findings)} findings, {len(result.recommendations)} recommendations."
        )
        print()
        for finding in result.findings:
            print(f"[{finding.severity.upper()}] {finding.rule_id}: {finding.message}")
        if result.findings:
            print()
        for rank, rec in enumerate(result.recommendations, start=1):
            print(f"#{rank} [{rec.severity.upper()}] {rec.title}  (score {rec.priority_score}, effort {rec.effort})")
            print(f"  {rec.rationale}")
            print(f"  recommended: {rec.recommended_path}")
            if rec.alternative_path:
                print(f"  alternative: {rec.alternative_path}")
            for step in rec.numbered_steps():
                text = step["text"].replace("\n", "\n     ")
                print(f"  {step['step']:>2}. {text}")
            print()

    # Exit code based on --fail-on threshold
    threshold = _SEVERITY_RANK[args.fail_on]
    return 1 if any(_SEVERITY_RANK.get(f.severity, 0) >= threshold for f in result.findings) else 0


if __name__ == "__main__":
    sys.exit(main())
