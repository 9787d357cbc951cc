"""Reads generated delivery-flow documents back into rows, so they can be edited as a workbook."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import InputFormatError
from .logging import get_logger
from .normalize import classify_device, normalize_flow_type, parse_yes_no
from .schema import SLOTS, FlowRow, FlowType, InterfaceKind, LoadedConfiguration, UnitRow


log = get_logger(__name__)

COMBINED_KEYS: Dict[str, FlowType] = {"nurseCalls": "NurseCalls", "clinicals": "Clinicals", "orders": "Orders"}

# inverse of the priority tables so a reloaded row renders the same priority again
EDGE_RAW = {"urgent": "Urgent", "high": "Medium", "normal": "Normal"}
VOCERA_RAW = {"urgent": "Urgent", "high": "High", "normal": "Normal"}

BREAK_THROUGH_RAW = {"voceraanddevice": "Yes", "none": "No"}


def _unquote(value: Any) -> str:
    if not isinstance(value, str):
        return "" if value is None else str(value)
    text = value.strip()
    if text.startswith('"') and text.endswith('"') and len(text) >= 2:
        try:
            return str(json.loads(text))
        except json.JSONDecodeError:
            return text[1:-1]
    return text


def _interface_kind(iface: Mapping[str, Any]) -> Optional[InterfaceKind]:
    component = str(iface.get("componentName") or "")
    if "wctp" in component.lower():
        return "Edge"
    return classify_device(component) or classify_device(str(iface.get("referenceName") or ""))


def _flow_type_of(doc: Mapping[str, Any], flows: List[Mapping[str, Any]]) -> FlowType:
    for d in doc.get("alarmAlertDefinitions") or []:
        ft = normalize_flow_type(str(d.get("type") or ""))
        if ft:
            return ft
    for f in flows:
        name = str(f.get("name") or "").upper()
        if name.startswith("SEND ORDER"):
            return "Orders"
        if name.startswith("SEND CLINICAL"):
            return "Clinicals"
    return "NurseCalls"


def _recipient_slots(flow: Mapping[str, Any], home_facility: str) -> Dict[int, List[str]]:
    custom_roles: Dict[int, str] = {}
    for c in flow.get("conditions") or []:
        if "destinationOrder" not in c:
            continue
        for f in c.get("filters") or []:
            if str(f.get("attributePath", "")).endswith(".role.name"):
                custom_roles[int(c["destinationOrder"])] = str(f.get("value", ""))

    slots: Dict[int, List[str]] = {}
    for d in sorted(flow.get("destinations") or [], key=lambda d: d.get("order", 0)):
        if d.get("destinationType") == "NoDeliveries":
            continue
        order = int(d.get("order", 0))
        entries = slots.setdefault(order, [])
        if d.get("recipientType") == "custom":
            entries.append(f"Custom Unit {custom_roles.get(order, '')}".strip())
            continue
        for role in d.get("functionalRoles") or []:
            entries.append(_with_facility(f"VAssign:[Room] {role.get('name', '')}", role, home_facility))
        for group in d.get("groups") or []:
            entries.append(_with_facility(f"VGroup: {group.get('name', '')}", group, home_facility))
    return slots


def _with_facility(text: str, ref: Mapping[str, Any], home_facility: str) -> str:
    fac = str(ref.get("facilityName") or "")
    if fac and fac != home_facility:
        return f"{fac}: {text}"
    return text


def _delays(flow: Mapping[str, Any]) -> Dict[int, str]:
    out: Dict[int, str] = {}
    for d in flow.get("destinations") or []:
        if d.get("destinationType") == "NoDeliveries":
            continue
        delay = int(d.get("delayTime") or 0)
        out[int(d.get("order", 0))] = str(delay) if delay else ""
    return out


def flow_to_rows(
    flow: Mapping[str, Any], flow_type: FlowType, sending_names: Mapping[str, str], loaded: LoadedConfiguration
) -> List[FlowRow]:
    params: Dict[str, str] = {}
    for p in flow.get("parameterAttributes") or []:
        if "destinationOrder" in p or p.get("name") in params:
            continue
        params[str(p.get("name"))] = _unquote(p.get("value"))

    kinds = [k for k in (_interface_kind(i) for i in flow.get("interfaces") or []) if k]

    units = flow.get("units") or []
    home_facility = str(units[0].get("facilityName", "")) if units else ""
    name_parts = [p.strip() for p in str(flow.get("name") or "").split("|")]
    segment = name_parts[3] if len(name_parts) > 3 else ""
    if units:
        config_group = "_".join(x for x in (home_facility, str(units[0].get("name", "")), segment) if x)
    else:
        config_group = segment

    priority = str(flow.get("priority") or "").lower()
    raw_table = EDGE_RAW if not kinds or kinds[0] == "Edge" else VOCERA_RAW
    ringtone = params.get("badgeAlertSound") or params.get("alertSound") or ""
    if ringtone.lower().endswith(".wav"):
        ringtone = ringtone[:-4]

    responses = []
    if "accept" in params:
        responses.append("Accept")
    if "decline" in params:
        responses.append("Escalate")
    if "acceptAndCall" in params:
        responses.append("Call Back")
    if not responses and params.get("responseType") == "None":
        responses.append("No Response")

    escalate_after = ""
    if "all" in params.get("declineCount", "").lower():
        escalate_after = "All declines"
    elif "decline" in params:
        escalate_after = "1 decline"

    enunciate = params.get("enunciate", "")
    multi = parse_yes_no(params.get("multipleAccepts"))
    slots = _recipient_slots(flow, home_facility)
    delays = _delays(flow)
    base: Dict[str, Any] = {
        "flow_type": flow_type,
        "config_group": config_group,
        "priority_raw": raw_table.get(priority, priority),
        "device_a": kinds[0] if kinds else "",
        "device_b": kinds[1] if len(kinds) > 1 else "",
        "ringtone": ringtone,
        "response_options": ", ".join(responses),
        "break_through_dnd": BREAK_THROUGH_RAW.get(params.get("breakThrough", "").lower(), params.get("breakThrough", "")),
        "enunciate": {"true": "Yes", "false": "No"}.get(enunciate.lower(), enunciate),
        "escalate_after": escalate_after,
        "ttl_value": params.get("ttl", ""),
        "multi_user_accept": "" if multi is None else ("Yes" if multi else "No"),
    }
    for slot in SLOTS:
        base[f"r{slot}"] = "\n".join(slots.get(slot - 1, []))
        base[f"t{slot}"] = delays.get(slot - 1, "")

    _collect_units(flow, flow_type, config_group, loaded)
    return [
        FlowRow(alarm_name=alarm, sending_name=sending_names.get(alarm, alarm), **base)
        for alarm in flow.get("alarmsAlerts") or []
    ]


def _collect_units(flow: Mapping[str, Any], flow_type: FlowType, config_group: str, loaded: LoadedConfiguration) -> None:
    pod = ""
    for c in flow.get("conditions") or []:
        if c.get("name") == "POD rooms filter":
            pod = str((c.get("filters") or [{}])[0].get("value", ""))
    no_care = ""
    for d in flow.get("destinations") or []:
        if d.get("destinationType") == "NoDeliveries" and d.get("groups"):
            no_care = str(d["groups"][0].get("name", ""))

    column = {"NurseCalls": "nurse_group", "Clinicals": "clinical_group", "Orders": "orders_group"}[flow_type]
    for u in flow.get("units") or []:
        fac, name = str(u.get("facilityName", "")), str(u.get("name", ""))
        row = next((r for r in loaded.units if r.facility == fac and r.unit_names == name), None)
        if row is None:
            row = UnitRow(facility=fac, unit_names=name)
            loaded.units.append(row)
        groups = [g.strip() for g in getattr(row, column).split(",") if g.strip()]
        if config_group and config_group not in groups:
            groups.append(config_group)
        setattr(row, column, ", ".join(groups))
        row.pod_room_filter = row.pod_room_filter or pod
        row.no_care_group = row.no_care_group or no_care


def document_to_rows(doc: Mapping[str, Any], loaded: LoadedConfiguration, flow_type: Optional[FlowType] = None) -> None:
    flows = list(doc.get("deliveryFlows") or [])
    ft = flow_type or _flow_type_of(doc, flows)
    sending = {}
    for d in doc.get("alarmAlertDefinitions") or []:
        values = d.get("values") or []
        if values and values[0].get("value"):
            sending[str(d.get("name"))] = str(values[0]["value"])
    for f in flows:
        for r in flow_to_rows(f, ft, sending, loaded):
            loaded.add(r)


def load_json(path: str | Path) -> LoadedConfiguration:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"document not found: {path}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InputFormatError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InputFormatError(f"{path}: expected a JSON object at the top level")

    loaded = LoadedConfiguration()
    if "deliveryFlows" in data:
        document_to_rows(data, loaded)
    else:
        for key, ft in COMBINED_KEYS.items():
            if isinstance(data.get(key), dict):
                document_to_rows(data[key], loaded, ft)
    log.info(
        "document_loaded",
        path=str(p),
        nurse_calls=len(loaded.nurse_calls),
        clinicals=len(loaded.clinicals),
        orders=len(loaded.orders),
    )
    return loaded
