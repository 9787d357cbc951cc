import re

from alertflow.normalize import (
    break_through,
    classify_device,
    clean,
    dnd_presence,
    enunciate_value,
    is_in_scope,
    map_priority,
    normalize_flow_type,
    parse_custom_unit,
    parse_delay,
    parse_recipient,
    parse_response_options,
    with_wav,
)
from alertflow.schema import ConverterConfig


ROLE_PATTERN = re.compile(ConverterConfig().functional_role_regex)


def test_device_classification():
    assert classify_device("Vocera VCS") == "VMP"
    assert classify_device("VMP") == "VMP"
    assert classify_device("iPhone-Edge") == "Edge"
    assert classify_device("Vocera Badge") == "Vocera"
    assert classify_device("XMPP") == "XMPP"
    assert classify_device("Pager") is None
    assert classify_device("") is None
    assert classify_device("N/A") is None


def test_priority_tables_depend_on_device():
    assert map_priority("High", "Edge") == "urgent"
    assert map_priority("Medium", "Edge") == "high"
    assert map_priority("Low", None) == "normal"
    assert map_priority("High (Edge)", "Edge") == "urgent"
    assert map_priority("High", "Vocera") == "high"
    assert map_priority("Urgent", "VMP") == "urgent"
    assert map_priority("", "Edge") == "normal"


def test_break_through_literal_wins_over_priority():
    assert break_through("none", "urgent") == "none"
    assert break_through("voceraAndDevice", "normal") == "voceraAndDevice"
    assert break_through("Yes", "normal") == "voceraAndDevice"
    assert break_through("No", "urgent") == "none"
    assert break_through("", "urgent") == "voceraAndDevice"
    assert break_through("", "normal") == "none"


def test_presence_and_enunciate():
    assert dnd_presence("Yes") == "device"
    assert dnd_presence("") == "user_and_device"
    assert enunciate_value("") is True
    assert enunciate_value("No") is False
    assert enunciate_value("Enunciate") is True


def test_response_options():
    spec = parse_response_options("Accept, Escalate")
    assert spec.response_type == "Accept/Decline"
    assert spec.accept and spec.decline and not spec.call_back

    spec = parse_response_options("Accept, Escalate, Call Back")
    assert spec.response_type == "Accept/Decline/Call"
    assert spec.call_back

    assert parse_response_options("No Response").response_type == "None"
    assert parse_response_options("").response_type == "None"


def test_cleaning_and_scope():
    assert clean("#REF!") == ""
    assert clean(" N/A ") == ""
    assert clean(" Code Blue ") == "Code Blue"
    assert is_in_scope("FALSE") is False
    assert is_in_scope("0") is False
    assert is_in_scope("") is True
    assert is_in_scope("Y") is True


def test_delays_and_ringtones():
    assert parse_delay("60 sec") == 60
    assert parse_delay("Immediate") == 0
    assert with_wav("list_pagers") == "list_pagers.wav"
    assert with_wav("list_pagers.wav") == "list_pagers.wav"


def test_flow_type_names():
    assert normalize_flow_type("nursecall") == "NurseCalls"
    assert normalize_flow_type("Nurse Call") == "NurseCalls"
    assert normalize_flow_type("clinicals") == "Clinicals"
    assert normalize_flow_type("Order") == "Orders"
    assert normalize_flow_type("pharmacy") is None


def test_recipients():
    r = parse_recipient("VAssign:[Room] Nurse", "BCH", ROLE_PATTERN)
    assert (r.facility, r.name, r.functional_role) == ("BCH", "Nurse", True)

    r = parse_recipient("VGroup: Code Team", "BCH", ROLE_PATTERN)
    assert (r.facility, r.name, r.functional_role) == ("BCH", "Code Team", False)

    r = parse_recipient("North: VGroup Rapid Response", "BCH", ROLE_PATTERN)
    assert (r.facility, r.name, r.functional_role) == ("North", "Rapid Response", False)


def test_custom_unit_roles():
    assert parse_custom_unit("Custom Unit All Nurse, All CNA") == ["Nurse", "CNA"]
    assert parse_custom_unit("custom unit Nurse; Charge Nurse") == ["Nurse", "Charge Nurse"]
    assert parse_custom_unit("VGroup Team") is None
