from pathlib import Path

import pytest

from alertflow.errors import InputFormatError
from alertflow.xml_loader import config_group_name, format_seconds, load_xml, parse_settings


PACKAGE = """<?xml version="1.0" encoding="UTF-8"?>
<package>
  <datasets>
    <dataset active="true">
      <name>NurseCalls</name>
      <view>
        <name>Code Blue alerts</name>
        <filter relation="in"><path>alert_type</path><value>Code Blue</value></filter>
        <filter relation="equal"><path>bed.room.unit.facility.name</path><value>BCH</value></filter>
        <filter relation="in"><path>bed.room.unit.name</path><value>ICU</value></filter>
        <filter relation="not_in"><path>bed.room.unit.name</path><value>Lobby</value></filter>
      </view>
      <view>
        <name>Primary state</name>
        <filter relation="equal"><path>state</path><value>Primary</value></filter>
      </view>
      <view>
        <name>Secondary state</name>
        <filter relation="equal"><path>state</path><value>Secondary</value></filter>
      </view>
      <view>
        <name>Nurse role</name>
        <filter relation="equal"><path>bed.locs.assignments.role.name</path><value>Nurse</value></filter>
      </view>
    </dataset>
    <dataset active="false">
      <name>Retired</name>
    </dataset>
  </datasets>
  <interfaces>
    <interface component="DataUpdate">
      <rule active="true" dataset="NurseCalls">
        <purpose>Create alert</purpose>
        <defer-delivery-by>30</defer-delivery-by>
        <trigger-on create="true"/>
        <condition><view>Code Blue alerts</view></condition>
        <settings>{"parameters": [{"path": "state", "value": "Primary"}]}</settings>
      </rule>
      <rule active="true" dataset="NurseCalls">
        <purpose>Escalate to secondary</purpose>
        <defer-delivery-by>60</defer-delivery-by>
        <trigger-on update="true"/>
        <condition><view>Code Blue alerts</view><view>Primary state</view></condition>
        <settings>{"parameters": [{"path": "state", "value": "Secondary"}]}</settings>
      </rule>
    </interface>
    <interface component="VMP">
      <rule active="true" dataset="NurseCalls">
        <purpose>Send to nurse</purpose>
        <trigger-on create="true" update="true"/>
        <condition><view>Code Blue alerts</view><view>Primary state</view><view>Nurse role</view></condition>
        <settings>{"destination": "Nurse", "priority": "0", "ttl": 10, "enunciate": "ENUNCIATE_ALWAYS", "overrideDND": true, "displayValues": ["Accept", "Decline"]}</settings>
      </rule>
      <rule active="true" dataset="NurseCalls">
        <purpose>Send to charge group</purpose>
        <trigger-on update="true"/>
        <condition><view>Code Blue alerts</view><view>Secondary state</view></condition>
        <settings>{"destination": "g-charge"}</settings>
      </rule>
      <rule active="false" dataset="NurseCalls">
        <purpose>Disabled</purpose>
        <condition><view>Code Blue alerts</view></condition>
        <settings>{"destination": "g-unused"}</settings>
      </rule>
    </interface>
  </interfaces>
</package>
"""


def _write(tmp_path: Path, text: str = PACKAGE) -> Path:
    path = tmp_path / "rules.xml"
    path.write_text(text, encoding="utf-8")
    return path


def test_rule_package_becomes_rows(tmp_path: Path):
    loaded = load_xml(_write(tmp_path))

    assert len(loaded.nurse_calls) == 1
    row = loaded.nurse_calls[0]
    assert row.alarm_name == "Code Blue"
    assert row.sending_name == "Code Blue"
    assert row.config_group == "BCH_ICU_NurseCalls"
    assert row.device_a == "VMP"
    assert row.priority_raw == "Urgent"
    assert row.ttl_value == "10"
    assert row.enunciate == "ENUNCIATE"
    assert row.break_through_dnd == "TRUE"
    assert row.response_options == "Accept,Decline"
    assert row.r1 == "VAssign:[Room] Nurse"
    assert row.t1 == "30"
    assert row.r2 == "VGroup g-charge"
    assert row.t2 == "60"
    assert row.r3 == ""


def test_units_are_synthesized(tmp_path: Path):
    loaded = load_xml(_write(tmp_path))
    assert len(loaded.units) == 1
    unit = loaded.units[0]
    assert (unit.facility, unit.unit_names, unit.nurse_group) == ("BCH", "ICU", "BCH_ICU_NurseCalls")
    assert unit.clinical_group == ""


def test_malformed_xml(tmp_path: Path):
    with pytest.raises(InputFormatError):
        load_xml(_write(tmp_path, "<package><datasets>"))


def test_missing_xml(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_xml(tmp_path / "absent.xml")


def test_settings_parsing():
    s = parse_settings('{"priority": 1, "overrideDND": "false", "displayValues": ["Accept"]}')
    assert s == {"priority": "1", "overrideDND": False, "displayValues": "Accept"}
    assert parse_settings("not json") == {}
    assert parse_settings(None) == {}


def test_small_helpers():
    assert format_seconds("0") == "Immediate"
    assert format_seconds(None) == "Immediate"
    assert format_seconds("120") == "120"
    assert config_group_name("Clinicals", "", "") == "All_Facilities_AllUnits_Clinicals"


def test_decline_count_parameter_sets_all_declines(tmp_path: Path):
    text = PACKAGE.replace(
        '"displayValues": ["Accept", "Decline"]}',
        '"displayValues": ["Accept", "Decline"], "parameters": [{"name": "declineCount", "value": "\\"All Recipients\\""}]}',
    )
    row = load_xml(_write(tmp_path, text)).nurse_calls[0]
    assert row.escalate_after == "All declines"
    assert load_xml(_write(tmp_path)).nurse_calls[0].escalate_after == ""
    s = parse_settings('{"parameters": [{"name": "declineCount", "value": "\\"All Recipients\\""}]}')
    assert s["declineCount"] == "All Recipients"
