from autoaudit.core.models import AutomationItem
from autoaudit.recommend.ordering import (
    AFTER_FLOW,
    APEX_AFTER,
    APEX_BEFORE,
    BEFORE_FLOW,
    PROCESS_BUILDER,
    WORKFLOW_RULE,
    audit_order_of_execution,
    execution_phases,
    format_sequence_step,
)


def _item(api_name, kind, metadata=None, events=()) -> AutomationItem:
    return AutomationItem(
        id=api_name, kind=kind, api_name=api_name, object_name="Account",
        trigger_events=events, is_active=True, metadata=metadata or {},
    )


def _trigger(name, *events):
    return _item(name, "scripted-trigger", {"events": list(events)})


def _wfr(name, *fields):
    return _item(name, "legacy-rule", {"fieldUpdateFields": list(fields)})


def _hazards(audit, hazard_type):
    return [h for h in audit.hazards if h.type == hazard_type]


# --- phases ---

def test_phase_assignment():
    assert execution_phases(_item("F", "record-triggered-flow", {"triggerType": "RecordBeforeSave"})) == [BEFORE_FLOW]
    assert execution_phases(_item("F", "record-triggered-flow", events=("before save",))) == [BEFORE_FLOW]
    assert execution_phases(_item("F", "record-triggered-flow", {"triggerType": "RecordAfterSave"})) == [AFTER_FLOW]
    assert execution_phases(_wfr("W")) == [WORKFLOW_RULE]
    assert execution_phases(_item("P", "legacy-branching-process")) == [PROCESS_BUILDER]
    assert execution_phases(_item("A", "autolaunched-flow")) == []
    assert execution_phases(_item("C", "scripted-class")) == []


def test_trigger_with_before_and_after_events_occupies_both_phases():
    audit = audit_order_of_execution([_trigger("T", "before insert", "after update")])
    assert [(s.name, s.phase) for s in audit.sequence] == [("T", APEX_BEFORE), ("T", APEX_AFTER)]


def test_trigger_without_recognized_events_defaults_to_before_phase():
    assert execution_phases(_trigger("T")) == [APEX_BEFORE]


def test_sequence_sorted_by_phase_then_name():
    items = [
        _item("Zeta", "record-triggered-flow", {"triggerType": "RecordAfterSave"}),
        _wfr("Beta"),
        _wfr("Alpha"),
        _trigger("T", "after insert"),
        _item("Before", "record-triggered-flow", {"triggerType": "RecordBeforeSave"}),
    ]
    audit = audit_order_of_execution(items)
    assert [s.name for s in audit.sequence] == ["Before", "T", "Alpha", "Beta", "Zeta"]
    assert audit.sequence[2].phase_label == "Workflow Rule (after save)"


def test_empty_input_gives_empty_audit():
    audit = audit_order_of_execution([])
    assert audit.sequence == ()
    assert audit.hazards == ()


# --- hazards ---

def test_undefined_order_for_two_before_triggers():
    audit = audit_order_of_execution([_trigger("TB", "before update"), _trigger("TA", "before update")])
    [hazard] = _hazards(audit, "undefined_order")
    assert hazard.severity == "high"
    assert '"TA" and "TB" are both before-trigger' in hazard.text
    assert hazard.text.startswith("⚠")


def test_flow_order_lists_lexical_firing_order():
    flows = [
        _item("B_Flow", "record-triggered-flow", {"triggerType": "RecordAfterSave"}),
        _item("A_Flow", "record-triggered-flow", {"triggerType": "RecordAfterSave"}),
    ]
    [hazard] = _hazards(audit_order_of_execution(flows), "flow_order")
    assert hazard.severity == "warning"
    assert '"A_Flow" → "B_Flow"' in hazard.text


def test_retrigger_risk_names_writer_trigger_and_field():
    audit = audit_order_of_execution([_wfr("WFR1", "Status__c"), _trigger("T1", "before update")])
    [hazard] = _hazards(audit, "retrigger_risk")
    assert hazard.severity == "high"
    assert '"WFR1"' in hazard.text
    assert '"T1"' in hazard.text
    assert '"Status__c"' in hazard.text


def test_retrigger_risk_truncates_field_list():
    audit = audit_order_of_execution([_wfr("W", "A", "B", "C", "D", "E"), _trigger("T", "after insert")])
    [hazard] = _hazards(audit, "retrigger_risk")
    assert '"A", "B", "C" +2 more' in hazard.text
    assert '"D"' not in hazard.text


def test_no_retrigger_risk_without_field_writes_or_triggers():
    assert _hazards(audit_order_of_execution([_wfr("W"), _trigger("T", "after insert")]), "retrigger_risk") == []
    assert _hazards(audit_order_of_execution([_wfr("W", "Status__c")]), "retrigger_risk") == []


def test_process_retrigger_with_and_without_field_data():
    pb = _item("PB1", "legacy-branching-process", {"fieldUpdateFields": ["Stage__c"]})
    [hazard] = _hazards(audit_order_of_execution([pb, _trigger("T", "before update")]), "pb_retrigger")
    assert '"Stage__c"' in hazard.text

    bare = _item("PB2", "legacy-branching-process")
    [hazard] = _hazards(audit_order_of_execution([bare, _trigger("T", "before update")]), "pb_retrigger")
    assert hazard.severity == "warning"
    assert hazard.text.startswith('⚠ Re-trigger: if "PB2"')


def test_field_conflict_winner_is_latest_phase():
    flow = _item("Late_Flow", "record-triggered-flow",
                 {"triggerType": "RecordAfterSave", "fieldUpdateFields": ["Status__c"]})
    audit = audit_order_of_execution([flow, _wfr("WFR1", "Status__c", "Other__c")])
    [hazard] = _hazards(audit, "field_conflict")
    assert hazard.field_name == "Status__c"
    assert hazard.writers == ("WFR1", "Late_Flow")
    assert hazard.winner == "Late_Flow"
    assert '"Late_Flow" fires last' in hazard.text
    assert "(Workflow Rule (after save))" in hazard.text


def test_field_conflict_writers_actually_write_the_field():
    items = [
        _wfr("W1", "Status__c"),
        _item("P1", "legacy-branching-process", {"fieldUpdateFields": ["Status__c", "Amount__c"]}),
        _item("F1", "record-triggered-flow", {"triggerType": "RecordBeforeSave", "fieldUpdateFields": ["Amount__c"]}),
    ]
    by_name = {i.api_name: i for i in items}
    audit = audit_order_of_execution(items)
    conflicts = _hazards(audit, "field_conflict")
    assert {h.field_name for h in conflicts} == {"Status__c", "Amount__c"}
    phase_of = {s.name: s.phase for s in audit.sequence}
    for hazard in conflicts:
        for writer in hazard.writers:
            assert hazard.field_name in by_name[writer].meta_list("fieldUpdateFields")
        assert phase_of[hazard.winner] == max(phase_of[w] for w in hazard.writers)


def test_hazard_order_is_fixed():
    items = [
        _trigger("TA", "before update"),
        _trigger("TB", "before update"),
        _wfr("W", "Status__c"),
        _item("P", "legacy-branching-process", {"fieldUpdateFields": ["Status__c"]}),
    ]
    types = [h.type for h in audit_order_of_execution(items).hazards]
    assert types == ["undefined_order", "retrigger_risk", "pb_retrigger", "field_conflict"]


def test_missing_metadata_produces_no_hazards():
    items = [_wfr("W"), _item("P", "legacy-branching-process")]
    assert audit_order_of_execution(items).hazards == ()


# --- format_sequence_step ---

def test_sequence_step_requires_two_entries():
    assert format_sequence_step(audit_order_of_execution([_wfr("W")]).sequence) is None


def test_sequence_step_is_one_indexed():
    audit = audit_order_of_execution([_wfr("W"), _trigger("T", "before insert")])
    assert format_sequence_step(audit.sequence) == (
        "Order of execution on this object (earliest → latest):\n"
        "  1. T (Apex before trigger)\n"
        "  2. W (Workflow Rule (after save))"
    )
