from unittest.mock import patch

from autoaudit.core.checks import RuleCheck
from autoaudit.core.engine import RuleEvaluator, apply_template
from autoaudit.core.models import AutomationItem, Condition, CustomerProfile, Rule
from autoaudit.core.rules import RuleStore

PROFILE = CustomerProfile()


def _item(**kwargs) -> AutomationItem:
    defaults = {"id": "1", "kind": "legacy-rule", "api_name": "Set_Status", "object_name": "Account"}
    defaults.update(kwargs)
    return AutomationItem(**defaults)


def _custom(rule_id="CUST001", **kwargs) -> Rule:
    defaults = {
        "id": rule_id,
        "layer": "quality",
        "severity": "warning",
        "check_type": "per_item",
        "conditions": (Condition("object_name", "eq", "Account"),),
        "message_template": "{{api_name}} runs on {{object_name}}",
    }
    defaults.update(kwargs)
    return Rule(**defaults)


# --- apply_template ---

def test_template_substitutes_item_fields_and_metadata():
    item = _item(metadata={"apiVersion": "48.0"})
    text = apply_template("{{label}} {{api_name}} v{{apiVersion}}", item)
    assert text == "Workflow Rule Set_Status v48.0"


def test_template_unknown_token_renders_empty():
    assert apply_template("[{{nope}}]", _item()) == "[]"


def test_template_none_value_renders_empty():
    assert apply_template("on {{object_name}}", _item(object_name=None)) == "on "


def test_template_joins_sequence_values():
    item = _item(kind="scripted-trigger", trigger_events=("before save", "after save"))
    assert apply_template("events: {{trigger_events}}", item) == "events: before save, after save"


# --- per-item rules ---

def test_custom_rule_fires_from_conditions():
    result = RuleEvaluator([_custom()]).evaluate([_item()], PROFILE)
    assert len(result.findings) == 1
    f = result.findings[0]
    assert f.rule_id == "CUST001"
    assert f.severity == "warning"
    assert f.message == "Set_Status runs on Account"
    assert f.item_id == "1"
    assert f.object_name == "Account"
    assert result.warnings == []


def test_applies_to_filters_kinds():
    rule = _custom(applies_to=("scripted-trigger",))
    result = RuleEvaluator([rule]).evaluate([_item()], PROFILE)
    assert result.findings == []


def test_custom_rule_never_binds_builtin_heuristic():
    # Same id as a built-in heuristic, but custom rules only use conditions
    rule = _custom(rule_id="WFR001", conditions=(Condition("object_name", "eq", "Contact"),))
    result = RuleEvaluator([rule]).evaluate([_item(is_active=True)], PROFILE)
    assert result.findings == []


def test_builtin_rule_without_conditions_or_check_never_fires():
    rule = _custom(rule_id="XYZ999", is_builtin=True, conditions=())
    result = RuleEvaluator([rule]).evaluate([_item()], PROFILE)
    assert result.findings == []


def test_failing_rule_contributes_no_findings_and_pass_continues():
    def explode(item, profile):
        if item.id == "2":
            raise RuntimeError("boom")
        return True

    checks = {"BAD001": RuleCheck("BAD001", "per_item", explode)}
    bad = _custom(rule_id="BAD001", is_builtin=True, conditions=())
    good = _custom(rule_id="GOOD001")
    items = [_item(id="1"), _item(id="2", api_name="Other")]

    with patch("autoaudit.core.engine.CHECKS", checks):
        result = RuleEvaluator([bad, good]).evaluate(items, PROFILE)

    assert {f.rule_id for f in result.findings} == {"GOOD001"}
    assert len(result.findings) == 2
    assert len(result.warnings) == 1
    assert "BAD001" in result.warnings[0]
    assert "boom" in result.warnings[0]


def test_failing_cross_item_check_is_recorded():
    def explode(items, profile):
        raise ValueError("bad data")

    checks = {"XBAD": RuleCheck("XBAD", "cross_item", explode)}
    rule = _custom(rule_id="XBAD", check_type="cross_item", is_builtin=True, conditions=())

    with patch("autoaudit.core.engine.CHECKS", checks):
        result = RuleEvaluator([rule]).evaluate([_item()], PROFILE)

    assert result.findings == []
    assert result.warnings == ["cross-item check XBAD failed: bad data"]


def test_cross_item_rule_without_heuristic_is_skipped():
    rule = _custom(rule_id="CUSTX", check_type="cross_item")
    result = RuleEvaluator([rule]).evaluate([_item()], PROFILE)
    assert result.findings == []
    assert result.warnings == []


# --- built-in library ---

def test_builtin_library_on_active_workflow_rule():
    store = RuleStore.builtin()
    evaluator = RuleEvaluator(store.active_rules(PROFILE))
    result = evaluator.evaluate([_item(is_active=True)], PROFILE)

    by_rule = {f.rule_id: f for f in result.findings}
    assert set(by_rule) == {"WFR001", "DESC001"}
    assert by_rule["WFR001"].severity == "error"
    assert "Set_Status" in by_rule["WFR001"].message
    assert "Account" in by_rule["WFR001"].message
    assert result.warnings == []


def test_builtin_cross_item_findings_one_per_trigger():
    items = [
        AutomationItem(id="t1", kind="scripted-trigger", api_name="TA", object_name="Case", is_active=True,
                       has_description=True, metadata={"handlerClass": "CaseHandler"}),
        AutomationItem(id="t2", kind="scripted-trigger", api_name="TB", object_name="Case", is_active=True,
                       has_description=True, metadata={"handlerClass": "CaseHandler"}),
    ]
    store = RuleStore.builtin()
    result = RuleEvaluator(store.active_rules(PROFILE)).evaluate(items, PROFILE)

    multi = [f for f in result.findings if f.rule_id == "MULTI003"]
    assert [f.item_id for f in multi] == ["t1", "t2"]
    assert all("TA, TB" in f.message for f in multi)
    assert multi[0].severity == "error"


def test_rule_count():
    assert RuleEvaluator([_custom(), _custom("CUST002")]).rule_count == 2
