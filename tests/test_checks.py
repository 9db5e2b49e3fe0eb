from autoaudit.core.checks import get_check
from autoaudit.core.models import AutomationItem, CustomerProfile

PROFILE = CustomerProfile()


def _item(id="1", kind="scripted-class", api_name="AccountService", **kwargs) -> AutomationItem:
    return AutomationItem(id=id, kind=kind, api_name=api_name, **kwargs)


def _run(rule_id, item, profile=PROFILE):
    return get_check(rule_id).func(item, profile)


# --- naming convention ---

def test_name001_without_pattern_never_fires():
    assert _run("NAME001", _item(api_name="whatever")) is False


def test_name001_flags_non_matching_names():
    profile = CustomerProfile(naming_convention_pattern=r"^[A-Z][A-Za-z]+_")
    assert _run("NAME001", _item(api_name="Account_Sync"), profile) is False
    assert _run("NAME001", _item(api_name="accountsync"), profile) is True


def test_name001_invalid_pattern_never_fires():
    profile = CustomerProfile(naming_convention_pattern="([unclosed")
    assert _run("NAME001", _item(api_name="anything"), profile) is False


# --- code checks ---

def test_apex007_outdated_api_version():
    assert _run("APEX007", _item(metadata={"apiVersion": "48.0"})) is True
    assert _run("APEX007", _item(metadata={"apiVersion": "60.0"})) is False
    assert _run("APEX007", _item(metadata={"apiVersion": "garbage"})) is False
    assert _run("APEX007", _item(metadata={})) is False


def test_flag_checks_skip_managed_code():
    flagged = {"hasHardcodedCredentials": True}
    assert _run("SEC008", _item(metadata=flagged)) is True
    assert _run("SEC008", _item(metadata=flagged, is_managed_package=True)) is False


def test_flag_checks_require_true_flag():
    assert _run("SEC001", _item(metadata={"hasInsecureEndpoint": "yes"})) is False
    assert _run("SEC001", _item(metadata={})) is False


def test_flag_checks_respect_kind():
    trigger = _item(kind="scripted-trigger", metadata={"hasFutureMethods": True})
    assert _run("APEX006", trigger) is False
    assert _run("APEX005", _item(kind="scripted-trigger", metadata={"hasHardcodedIds": True})) is True


def test_apex002_trigger_without_handler():
    trigger = _item(kind="scripted-trigger", api_name="AccountTrigger", is_active=True)
    assert _run("APEX002", trigger) is True
    delegating = _item(kind="scripted-trigger", is_active=True, metadata={"handlerClass": "AccountHandler"})
    assert _run("APEX002", delegating) is False


def test_flow001_flow_without_object():
    assert _run("FLOW001", _item(kind="record-triggered-flow")) is True
    assert _run("FLOW001", _item(kind="record-triggered-flow", object_name="Account")) is False


# --- cross-item ---

def _flow(id, events, object_name="Account", active=True):
    return AutomationItem(
        id=id, kind="record-triggered-flow", api_name=f"Flow_{id}",
        object_name=object_name, trigger_events=events, is_active=active,
    )


def test_multi001_groups_by_object_and_event_set():
    items = [
        _flow("a", ("after save",)),
        _flow("b", ("after save",)),
        _flow("c", ("before save",)),
        _flow("d", ("after save",), object_name="Contact"),
        _flow("e", ("after save",), active=False),
    ]
    results = get_check("MULTI001").func(items, PROFILE)
    assert [item.id for item, _ in results] == ["a", "b"]
    assert results[0][1] == "Multiple active Record-Triggered Flows on Account (after save): Flow_a, Flow_b"


def test_multi002_trigger_and_flow_on_same_object():
    items = [
        _flow("f", ("after save",)),
        AutomationItem(id="t", kind="scripted-trigger", api_name="AccountTrigger",
                       object_name="Account", is_active=True),
        AutomationItem(id="u", kind="scripted-trigger", api_name="CaseTrigger",
                       object_name="Case", is_active=True),
    ]
    results = get_check("MULTI002").func(items, PROFILE)
    assert [item.id for item, _ in results] == ["t"]
    assert "Flow_f" in results[0][1]


def test_multi004_workflow_rule_and_flow_like_automation():
    items = [
        AutomationItem(id="w", kind="legacy-rule", api_name="WFR", object_name="Lead", is_active=True),
        AutomationItem(id="p", kind="legacy-branching-process", api_name="PB", object_name="Lead", is_active=True),
    ]
    results = get_check("MULTI004").func(items, PROFILE)
    assert [item.id for item, _ in results] == ["w"]
    assert "[PB]" in results[0][1]


def test_multi_checks_ignore_objectless_items():
    items = [_flow("a", ("after save",), object_name=None), _flow("b", ("after save",), object_name=None)]
    assert get_check("MULTI001").func(items, PROFILE) == []
