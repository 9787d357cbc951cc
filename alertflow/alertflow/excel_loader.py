from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Optional

import openpyxl

from .headers import FLOW_FIELDS, UNIT_FIELDS, HeaderMap, cell_text, find_header_row
from .logging import get_logger
from .normalize import is_in_scope
from .schema import ConverterConfig, FlowRow, FlowType, LoadedConfiguration, UnitRow


log = get_logger(__name__)

EMDAN_YES = {"y", "yes"}


def _sheet_rows(ws) -> List[List[str]]:
    return [[cell_text(v) for v in row] for row in ws.iter_rows(values_only=True)]


def _header_and_body(ws, fields, config: ConverterConfig) -> tuple[Optional[HeaderMap], List[List[str]]]:
    rows = _sheet_rows(ws)
    idx = find_header_row(rows, fields)
    if idx is None:
        return None, []
    return HeaderMap(rows[idx], fields, config.aliases), rows[idx + 1:]


def default_flow_type(sheet_name: str, config: ConverterConfig) -> Optional[FlowType]:
    name = sheet_name.strip().lower()
    if name == config.sheets.nurse_call.lower():
        return "NurseCalls"
    if name == config.sheets.patient_monitoring.lower():
        return "Clinicals"
    if "order" in name:
        return "Orders"
    return None


def read_units(ws, config: ConverterConfig) -> Iterator[UnitRow]:
    hm, body = _header_and_body(ws, UNIT_FIELDS, config)
    if hm is None:
        return
    for row in body:
        values = {f: hm.get(row, f) for f in UNIT_FIELDS}
        if not values["facility"] and not values["unit_names"]:
            continue
        yield UnitRow(**values)


def read_flows(ws, flow_type: FlowType, config: ConverterConfig) -> Iterator[FlowRow]:
    hm, body = _header_and_body(ws, FLOW_FIELDS, config)
    if hm is None:
        return
    has_scope = hm.has("in_scope")
    for row in body:
        values = {f: hm.get(row, f) for f in FLOW_FIELDS}
        if not values["alarm_name"] and not values["sending_name"]:
            continue
        scope = values.pop("in_scope")
        row_type = flow_type
        # EMDAN-compliant nurse calls are delivered as clinical alarms
        if flow_type == "NurseCalls" and values["emdan"].strip().lower() in EMDAN_YES:
            row_type = "Clinicals"
        yield FlowRow(flow_type=row_type, in_scope=is_in_scope(scope) if has_scope else True, **values)


def load_excel(path: str | Path, config: Optional[ConverterConfig] = None) -> LoadedConfiguration:
    config = config or ConverterConfig()
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"workbook not found: {path}")

    custom = {tab.lower(): ft for tab, ft in config.custom_tabs.items()}
    loaded = LoadedConfiguration()
    wb = openpyxl.load_workbook(p, read_only=True, data_only=True)
    try:
        titles = {ws.title.strip().lower() for ws in wb.worksheets}
        for tab in config.custom_tabs:
            if tab.lower() not in titles:
                log.warning("custom_tab_missing", tab=tab, workbook=str(p))

        for ws in wb.worksheets:
            key = ws.title.strip().lower()
            if key in custom:
                flow_type: Optional[FlowType] = custom[key]
            elif key == config.sheets.unit_breakdown.lower():
                loaded.units.extend(read_units(ws, config))
                continue
            else:
                flow_type = default_flow_type(ws.title, config)
            if flow_type is None:
                log.debug("sheet_ignored", sheet=ws.title)
                continue
            before = len(loaded.rows_for(flow_type))
            for r in read_flows(ws, flow_type, config):
                loaded.add(r)
            log.debug("sheet_loaded", sheet=ws.title, flow_type=flow_type, rows=len(loaded.rows_for(flow_type)) - before)
    finally:
        wb.close()

    log.info(
        "workbook_loaded",
        path=str(p),
        units=len(loaded.units),
        nurse_calls=len(loaded.nurse_calls),
        clinicals=len(loaded.clinicals),
        orders=len(loaded.orders),
    )
    return loaded
