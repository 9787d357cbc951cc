from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from .logging import get_logger
from .schema import ConverterConfig, FlowRow, FlowType, LoadedConfiguration, UnitRow


log = get_logger(__name__)

UNIT_HEADERS: Dict[str, str] = {
    "facility": "Facility",
    "unit_names": "Common Unit Name",
    "nurse_group": "Nurse Call Configuration Group",
    "clinical_group": "Patient Monitoring Configuration Group",
    "orders_group": "Orders Configuration Group",
    "no_care_group": "No Caregiver Alert Number or Group",
    "pod_room_filter": "Filter for POD Rooms (Optional)",
    "comments": "Comments",
}

FLOW_HEADERS: Dict[str, str] = {
    "in_scope": "In scope",
    "config_group": "Configuration Group",
    "alarm_name": "Common Alert or Alarm Name",
    "sending_name": "Sending System Alert Name",
    "priority_raw": "Priority",
    "device_a": "Device - A",
    "device_b": "Device - B",
    "ringtone": "Ringtone Device - A",
    "response_options": "Response Options",
    "break_through_dnd": "Break Through DND",
    "escalate_after": "Engage 6.6+: Escalate after all declines or 1 decline",
    "ttl_value": "Engage/Edge Display Time (Time to Live) (Device - A)",
    "enunciate": "Genie Enunciation",
    "multi_user_accept": "Platform: Multi-User Accept",
    "emdan": "EMDAN Compliant? (Y/N)",
    "t1": "Time to 1st Recipient",
    "r1": "1st Recipient",
    "t2": "Time to 2nd Recipient",
    "r2": "2nd Recipient",
    "t3": "Time to 3rd Recipient",
    "r3": "3rd Recipient",
    "t4": "Time to 4th Recipient",
    "r4": "4th Recipient",
    "t5": "Time to 5th Recipient",
    "r5": "5th Recipient",
}

# header row sits on the third line, under a title and a source line, as in hand-made workbooks
TITLE_ROWS = 2


def _flow_row(r: FlowRow) -> List[str]:
    values = r.model_dump()
    values["in_scope"] = "TRUE" if r.in_scope else "FALSE"
    return [values[f] for f in FLOW_HEADERS]


def _unit_row(u: UnitRow) -> List[str]:
    values = u.model_dump()
    return [values[f] for f in UNIT_HEADERS]


def _write_sheet(wb: Workbook, title: str, headers: Iterable[str], rows: Iterable[List[str]], source: str) -> None:
    ws = wb.create_sheet(title)
    ws.append([title])
    ws.append([f"Source: {source}"])
    ws.append(list(headers))
    for cell in ws[TITLE_ROWS + 1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)


def sheet_titles(config: ConverterConfig) -> Dict[FlowType, str]:
    return {
        "NurseCalls": config.sheets.nurse_call,
        "Clinicals": config.sheets.patient_monitoring,
        "Orders": "Orders",
    }


def export_excel(
    loaded: LoadedConfiguration,
    path: str | Path,
    config: Optional[ConverterConfig] = None,
    source: str = "",
) -> Path:
    """Writes the loaded rows as an editable workbook that load_excel reads back."""
    config = config or ConverterConfig()
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    wb.remove(wb.active)
    _write_sheet(wb, config.sheets.unit_breakdown, UNIT_HEADERS.values(), (_unit_row(u) for u in loaded.units), source)
    for flow_type, title in sheet_titles(config).items():
        rows = loaded.rows_for(flow_type)
        _write_sheet(wb, title, FLOW_HEADERS.values(), (_flow_row(r) for r in rows), source)
    wb.save(out)

    log.info("workbook_exported", path=str(out), units=len(loaded.units))
    return out
