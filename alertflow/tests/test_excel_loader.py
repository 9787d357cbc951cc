from pathlib import Path

import pytest
from openpyxl import Workbook

from alertflow.excel_export import export_excel
from alertflow.excel_loader import load_excel
from alertflow.schema import ConverterConfig


FLOW_HEADER = [
    "In scope",
    "Configuration Group",
    "Common Alert or Alarm Name",
    "Sending System Alert Name",
    "Priority",
    "Device - A",
    "Break Through DND",
    "Genie Enunciation",
    "Time to 1st Recipient",
    "1st Recipient",
    "Time to 2nd Recipient",
    "2nd Recipient",
]

UNIT_HEADER = [
    "Facility",
    "Common Unit Name",
    "Nurse Call Configuration Group",
    "Patient Monitoring Configuration Group",
    "No Caregiver Alert Number or Group",
]


def _write_workbook(path: Path, sheets) -> Path:
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        ws.append([title])
        ws.append(["Revision 1"])
        for r in rows:
            ws.append(r)
    wb.save(path)
    return path


def _sample(tmp_path: Path, extra=None) -> Path:
    sheets = {
        "Unit Breakdown": [UNIT_HEADER, ["BCH", "ICU", "G1", "C1", "VGroup NoCare"]],
        "Nurse Call": [
            FLOW_HEADER,
            [True, "G1", "Code Blue", "CODE_BLUE", "High", "iPhone-Edge", "Yes", "No", "Immediate", "VGroup Team", 60, "VAssign:[Room] Charge Nurse"],
            [False, "G1", "Toilet", "", "Low", "iPhone-Edge", "", "", "", "VGroup Team", "", ""],
            ["", "G1", "", "", "", "", "", "", "", "", "", ""],
            ["TRUE", "G1", "Bed Exit", "#REF!", "Medium", "Edge", "", "", 30, "VAssign:[Room] Nurse", "", ""],
        ],
        "Patient Monitoring": [
            FLOW_HEADER,
            ["Y", "C1", "SpO2 Low", "SPO2", "Urgent", "Vocera VCS", "", "", "", "VGroup Monitor Tech", "", ""],
        ],
    }
    sheets.update(extra or {})
    return _write_workbook(tmp_path / "routing.xlsx", sheets)


def test_loads_units_and_flows(tmp_path: Path):
    loaded = load_excel(_sample(tmp_path))

    assert len(loaded.units) == 1
    unit = loaded.units[0]
    assert (unit.facility, unit.unit_names, unit.nurse_group, unit.clinical_group) == ("BCH", "ICU", "G1", "C1")
    assert unit.no_care_group == "VGroup NoCare"

    assert [r.alarm_name for r in loaded.nurse_calls] == ["Code Blue", "Toilet", "Bed Exit"]
    first, second, third = loaded.nurse_calls
    assert first.in_scope and not second.in_scope and third.in_scope
    assert first.sending_name == "CODE_BLUE"
    assert first.t2 == "60"
    assert first.r2 == "VAssign:[Room] Charge Nurse"
    assert third.sending_name == ""
    assert third.t1 == "30"

    assert [r.alarm_name for r in loaded.clinicals] == ["SpO2 Low"]
    assert loaded.clinicals[0].flow_type == "Clinicals"
    assert loaded.orders == []


def test_missing_scope_column_keeps_everything(tmp_path: Path):
    header = FLOW_HEADER[1:]
    path = _write_workbook(
        tmp_path / "noscope.xlsx",
        {"Nurse Call": [header, ["G1", "Code Blue", "", "High", "Edge", "", "", "", "VGroup Team", "", ""]]},
    )
    loaded = load_excel(path)
    assert [r.in_scope for r in loaded.nurse_calls] == [True]


def test_orders_sheet_by_name(tmp_path: Path):
    path = _sample(
        tmp_path,
        {"Med Orders": [FLOW_HEADER, [True, "O1", "STAT Order", "", "High", "Edge", "", "", "", "VGroup Pharmacy", "", ""]]},
    )
    loaded = load_excel(path)
    assert [r.alarm_name for r in loaded.orders] == ["STAT Order"]
    assert loaded.orders[0].flow_type == "Orders"


def test_custom_tabs(tmp_path: Path):
    path = _sample(
        tmp_path,
        {"IV Pumps": [FLOW_HEADER, [True, "C1", "Occlusion", "", "High", "Vocera", "", "", "", "VGroup Pharmacy", "", ""]]},
    )
    config = ConverterConfig(custom_tabs={"iv pumps": "clinical", "Missing Tab": "NurseCall"})
    loaded = load_excel(path, config)
    assert [r.alarm_name for r in loaded.clinicals] == ["SpO2 Low", "Occlusion"]
    assert len(loaded.nurse_calls) == 3


def test_missing_workbook(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_excel(tmp_path / "absent.xlsx")


def test_exported_workbook_reads_back(tmp_path: Path):
    loaded = load_excel(_sample(tmp_path))
    out = export_excel(loaded, tmp_path / "exported" / "copy.xlsx", source="routing.xlsx")
    assert out.exists()

    again = load_excel(out)
    assert again.units == loaded.units
    for before, after in zip(loaded.nurse_calls, again.nurse_calls):
        assert after.alarm_name == before.alarm_name
        assert after.in_scope == before.in_scope
        assert after.priority_raw == before.priority_raw
        assert after.device_a == before.device_a
        assert after.break_through_dnd == before.break_through_dnd
        assert after.enunciate == before.enunciate
        assert after.slots() == before.slots()
    assert len(again.nurse_calls) == len(loaded.nurse_calls)
    assert [r.alarm_name for r in again.clinicals] == ["SpO2 Low"]


def test_med_in_sheet_name_is_not_orders(tmp_path: Path):
    note = [True, "G1", "Note", "", "Low", "Edge", "", "", "", "VGroup Team", "", ""]
    path = _sample(tmp_path, {"Nurse Call - Med Surg": [FLOW_HEADER, note], "Immediate Actions": [FLOW_HEADER, note]})
    loaded = load_excel(path)
    assert loaded.orders == []
    assert "Note" not in [r.alarm_name for r in loaded.nurse_calls + loaded.clinicals]


def test_emdan_rows_move_to_clinicals(tmp_path: Path):
    header = FLOW_HEADER + ["EMDAN Compliant? (Y/N)"]
    blank = ["", "", "", ""]

    def flow(name, emdan):
        return [True, "G1", name, "", "High", "Edge", "", "", "", "VGroup Team"] + blank[:2] + [emdan]

    path = _write_workbook(
        tmp_path / "emdan.xlsx",
        {
            "Nurse Call": [
                header,
                flow("Fall Alarm", "Y"),
                flow("Bed Exit", "Yes"),
                flow("Code Blue", ""),
                flow("Toilet", "yes"),
                flow("Shower", "N"),
            ],
        },
    )
    loaded = load_excel(path)
    assert [r.alarm_name for r in loaded.clinicals] == ["Fall Alarm", "Bed Exit", "Toilet"]
    assert all(r.flow_type == "Clinicals" for r in loaded.clinicals)
    assert [r.alarm_name for r in loaded.nurse_calls] == ["Code Blue", "Shower"]

    again = load_excel(export_excel(loaded, tmp_path / "emdan_copy.xlsx"))
    assert [r.emdan for r in again.clinicals] == ["Y", "Yes", "yes"]
    assert [r.alarm_name for r in again.nurse_calls] == ["Code Blue", "Shower"]
