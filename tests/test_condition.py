from autoaudit.core.condition import (
    evaluate_condition,
    evaluate_conditions,
    parse_condition,
    validate_conditions,
)
from autoaudit.core.models import AutomationItem, Condition


def _item(**kwargs) -> AutomationItem:
    defaults = {"id": "1", "kind": "record-triggered-flow", "api_name": "Account_Sync"}
    defaults.update(kwargs)
    return AutomationItem(**defaults)


# --- evaluate_condition ---

def test_eq_on_top_level_field():
    item = _item(object_name="Account")
    assert evaluate_condition(Condition("object_name", "eq", "Account"), item) is True
    assert evaluate_condition(Condition("object_name", "eq", "Contact"), item) is False


def test_ne_on_bool_field():
    item = _item(is_active=True)
    assert evaluate_condition(Condition("is_active", "ne", False), item) is True


def test_in_and_not_in():
    item = _item(object_name="Case")
    assert evaluate_condition(Condition("object_name", "in", ("Case", "Lead")), item) is True
    assert evaluate_condition(Condition("object_name", "not_in", ("Case", "Lead")), item) is False
    assert evaluate_condition(Condition("object_name", "not_in", ("Account",)), item) is True


def test_dotted_metadata_path():
    item = _item(metadata={"triggerType": "RecordBeforeSave"})
    assert evaluate_condition(Condition("metadata.triggerType", "eq", "RecordBeforeSave"), item) is True


def test_bare_metadata_key_falls_back_to_metadata():
    item = _item(metadata={"apiVersion": "48.0"})
    assert evaluate_condition(Condition("apiVersion", "eq", "48.0"), item) is True


def test_missing_field_is_false_for_every_operator():
    item = _item()
    for op, value in (("eq", None), ("ne", "x"), ("in", ("x",)), ("not_in", ("x",))):
        assert evaluate_condition(Condition("metadata.nope", op, value), item) is False


def test_unknown_operator_is_false():
    item = _item(object_name="Account")
    assert evaluate_condition(Condition("object_name", "gt", "A"), item) is False


def test_set_operator_with_scalar_value_is_false():
    item = _item(object_name="Account")
    assert evaluate_condition(Condition("object_name", "in", "Account"), item) is False


def test_unhashable_value_in_set_does_not_raise():
    item = _item(metadata={"events": ["before insert"]})
    assert evaluate_condition(Condition("metadata.events", "in", frozenset({"a"})), item) is False


# --- evaluate_conditions ---

def test_conditions_are_and_combined():
    item = _item(object_name="Account", is_active=True)
    conditions = [
        Condition("object_name", "eq", "Account"),
        Condition("is_active", "eq", True),
    ]
    assert evaluate_conditions(conditions, item) is True
    conditions.append(Condition("has_description", "eq", True))
    assert evaluate_conditions(conditions, item) is False


def test_empty_condition_list_never_matches():
    assert evaluate_conditions([], _item()) is False


# --- parse_condition ---

def test_parse_accepts_operator_spelling_and_tuples_sets():
    cond = parse_condition({"field": "object_name", "operator": "in", "value": ["A", "B"]})
    assert cond == Condition("object_name", "in", ("A", "B"))


# --- validate_conditions ---

def test_valid_conditions_produce_no_errors():
    assert validate_conditions([{"field": "is_active", "op": "eq", "value": True}]) == []


def test_empty_list_is_invalid():
    errors = validate_conditions([])
    assert any("at least one" in e for e in errors)


def test_non_list_is_invalid():
    errors = validate_conditions({"field": "x", "op": "eq", "value": 1})
    assert errors == ["conditions: expected list, got dict"]


def test_every_problem_is_reported():
    errors = validate_conditions([
        {"field": "a", "op": "between", "value": 1},
        {"op": "eq", "value": 1},
        {"field": "b", "op": "in", "value": "x"},
        "junk",
    ])
    assert any("conditions[0]: unknown operator 'between'" in e for e in errors)
    assert any("conditions[1]: missing required key 'field'" in e for e in errors)
    assert any("conditions[2]: 'in' operator requires a list value" in e for e in errors)
    assert any("conditions[3]: expected dict" in e for e in errors)
