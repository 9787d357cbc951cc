import json
from pathlib import Path

import pytest

from alertflow.assembler import build_document
from alertflow.errors import InputFormatError
from alertflow.json_loader import load_json
from alertflow.schema import FlowRow, UnitRow


UNITS = [UnitRow(facility="BCH", unit_names="ICU", nurse_group="G1", clinical_group="C1", no_care_group="NoCare Team")]

NURSE_ROW = FlowRow(
    config_group="G1",
    alarm_name="Code Blue",
    sending_name="CODE_BLUE",
    priority_raw="High",
    device_a="iPhone-Edge",
    ringtone="Tone 1",
    response_options="Accept, Escalate",
    break_through_dnd="Yes",
    enunciate="Yes",
    r1="VAssign:[Room] Nurse",
    r2="VGroup: Charge Team",
    t2="60",
)

CLINICAL_ROW = FlowRow(
    flow_type="Clinicals",
    config_group="C1",
    alarm_name="SpO2 Low",
    priority_raw="Urgent",
    device_a="Vocera Badge",
    ringtone="list_pagers",
    response_options="No Response",
    break_through_dnd="No",
    enunciate="No",
    r1="VGroup Monitor Tech",
)


def _dump(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_single_document_back_to_rows(tmp_path: Path):
    doc = build_document([NURSE_ROW], UNITS, "NurseCalls")
    loaded = load_json(_dump(tmp_path / "NurseCalls.json", doc))

    assert len(loaded.nurse_calls) == 1
    row = loaded.nurse_calls[0]
    assert row.alarm_name == "Code Blue"
    assert row.sending_name == "CODE_BLUE"
    assert row.config_group == "BCH_ICU_G1"
    assert row.priority_raw == "Urgent"
    assert row.device_a == "Edge"
    assert row.ringtone == "Tone 1"
    assert row.response_options == "Accept, Escalate"
    assert row.break_through_dnd == "Yes"
    assert row.enunciate == "Yes"
    assert row.r1 == "VAssign:[Room] Nurse"
    assert row.t1 == ""
    assert row.r2 == "VGroup: Charge Team"
    assert row.t2 == "60"

    assert len(loaded.units) == 1
    assert (loaded.units[0].facility, loaded.units[0].unit_names, loaded.units[0].nurse_group) == ("BCH", "ICU", "BCH_ICU_G1")


def test_reloaded_rows_render_the_same_delivery(tmp_path: Path):
    original = build_document([NURSE_ROW], UNITS, "NurseCalls")["deliveryFlows"][0]
    loaded = load_json(_dump(tmp_path / "NurseCalls.json", build_document([NURSE_ROW], UNITS, "NurseCalls")))
    again = build_document(loaded.nurse_calls, loaded.units, "NurseCalls")["deliveryFlows"][0]

    assert again["priority"] == original["priority"]
    assert again["interfaces"] == original["interfaces"]
    assert again["destinations"] == original["destinations"]
    assert again["parameterAttributes"] == original["parameterAttributes"]
    assert again["units"] == original["units"]


def test_combined_document(tmp_path: Path):
    combined = {
        "nurseCalls": build_document([NURSE_ROW], UNITS, "NurseCalls"),
        "clinicals": build_document([CLINICAL_ROW], UNITS, "Clinicals"),
        "orders": build_document([], UNITS, "Orders"),
    }
    loaded = load_json(_dump(tmp_path / "all.json", combined))

    assert [r.alarm_name for r in loaded.nurse_calls] == ["Code Blue"]
    assert [r.alarm_name for r in loaded.clinicals] == ["SpO2 Low"]
    assert loaded.orders == []

    clinical = loaded.clinicals[0]
    assert clinical.flow_type == "Clinicals"
    assert clinical.device_a == "Vocera"
    assert clinical.priority_raw == "Urgent"
    assert clinical.ringtone == "list_pagers"
    assert clinical.response_options == "No Response"
    assert clinical.break_through_dnd == "No"
    assert clinical.enunciate == "No"
    assert clinical.r1 == "VGroup: Monitor Tech"
    assert clinical.r2 == ""

    unit = loaded.units[0]
    assert unit.nurse_group == "BCH_ICU_G1"
    assert unit.clinical_group == "BCH_ICU_C1"
    assert unit.no_care_group == "NoCare Team"


def test_invalid_json(tmp_path: Path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(InputFormatError):
        load_json(path)


def test_missing_json(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_json(tmp_path / "absent.json")
