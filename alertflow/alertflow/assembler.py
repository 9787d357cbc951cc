"""Renders grouped flow rows into the delivery-flow JSON documents."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern

from .logging import get_logger
from .merge import group_rows
from .normalize import (
    INTERFACE_ORDER,
    break_through,
    classify_device,
    clean,
    dnd_presence,
    enunciate_value,
    is_global_setting,
    map_priority,
    parse_custom_unit,
    parse_delay,
    parse_recipient,
    parse_response_options,
    parse_yes_no,
    split_recipients,
    with_wav,
)
from .schema import (
    FLOW_TYPES,
    ConverterConfig,
    FlowGroup,
    FlowRow,
    FlowType,
    InterfaceKind,
    LoadedConfiguration,
    MergeMode,
    UnitRow,
)
from .units import GroupContext, index_units


log = get_logger(__name__)

DOCUMENT_KEYS: Dict[FlowType, str] = {"NurseCalls": "nurseCalls", "Clinicals": "clinicals", "Orders": "orders"}
OUTPUT_FILES: Dict[FlowType, str] = {"NurseCalls": "NurseCalls.json", "Clinicals": "Clinicals.json", "Orders": "Orders.json"}
NAME_PREFIX: Dict[FlowType, str] = {"NurseCalls": "SEND NURSECALL", "Clinicals": "SEND CLINICAL", "Orders": "SEND ORDER"}

ASSIGNMENT_BASE = "bed.room.unit.rooms.beds.locs.assignments"
ORDERS_ASSIGNMENT_BASE = "patient.current_place.locs.units.locs.assignments"

TEMPLATES: Dict[FlowType, Dict[str, str]] = {
    "NurseCalls": {
        "message": "Patient: #{bed.patient.last_name}, #{bed.patient.first_name}\nRoom/Bed: #{bed.room.name} - #{bed.bed_number}",
        "patientMRN": "#{bed.patient.mrn}:#{bed.patient.visit_number}",
        "placeUid": "#{bed.uid}",
        "patientName": "#{bed.patient.first_name} #{bed.patient.middle_name} #{bed.patient.last_name}",
        "eventIdentification": "NurseCalls:#{id}",
        "shortMessage": "#{alert_type} #{bed.room.name}",
        "subject": "#{alert_type} #{bed.room.name}",
        "additionalContent": "Patient: #{bed.patient.last_name}, #{bed.patient.first_name}\nAdmitting Reason: #{bed.patient.reason}",
    },
    "Clinicals": {
        "message": "Clinical Alert ${destinationName}\nRoom: #{bed.room.name} - #{bed.bed_number}\nAlert Type: #{alert_type}\nAlarm Time: #{alarm_time.as_time}",
        "patientMRN": "#{clinical_patient.mrn}:#{clinical_patient.visit_number}",
        "placeUid": "#{bed.uid}",
        "patientName": "#{clinical_patient.first_name} #{clinical_patient.middle_name} #{clinical_patient.last_name}",
        "eventIdentification": "#{id}",
        "shortMessage": "#{alert_type} #{bed.room.name}",
        "subject": "#{alert_type} #{bed.room.name}",
        "additionalContent": "Alert Type: #{alert_type}\nRoom/Bed: #{bed.room.name} - #{bed.bed_number}",
    },
    "Orders": {
        "message": "Patient: #{patient.last_name}, #{patient.first_name}\nOrder: #{category}\nDescription: #{description}",
        "patientMRN": "#{patient.mrn}:#{patient.visit_number}",
        "placeUid": "#{patient.current_place.uid}",
        "patientName": "#{patient.first_name} #{patient.middle_name} #{patient.last_name}",
        "eventIdentification": "Orders:#{id}",
        "shortMessage": "#{category} #{description}",
        "subject": "#{category} #{description}",
        "additionalContent": "Procedure: #{description}\nOrder Notes: #{notes}",
    },
}

NO_CAREGIVER_PARAMS = {
    "destinationName": "NoCaregivers",
    "message": "#{alert_type}\nIssue: A Clinical Alert has been received without any caregivers assigned to room.\nRoom/Bed: #{bed.room.name} - #{bed.bed_number}\nAlarm Time: #{alarm_time.as_time}",
    "shortMessage": "No Caregivers Assigned for #{alert_type} in #{bed.room.name} #{bed.bed_number}",
    "subject": "Alert Without Caregivers",
}


def _q(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _pa(name: str, value: str, order: Optional[int] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": name, "value": value}
    if order is not None:
        out["destinationOrder"] = order
    return out


def _filter(path: str, operator: str, value: Optional[str] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"attributePath": path, "operator": operator}
    if value is not None:
        out["value"] = value
    return out


def _assignment_base(flow_type: FlowType) -> str:
    return ORDERS_ASSIGNMENT_BASE if flow_type == "Orders" else ASSIGNMENT_BASE


def interface_kinds(row: FlowRow, config: ConverterConfig) -> List[InterfaceKind]:
    found = {classify_device(row.device_a), classify_device(row.device_b)} - {None}
    if not clean(row.device_a) and not clean(row.device_b):
        flags = config.default_interfaces
        found = {k for k, on in (("Edge", flags.edge), ("VMP", flags.vmp), ("Vocera", flags.vocera), ("XMPP", flags.xmpp)) if on}
    return [k for k in INTERFACE_ORDER if k in found]


def flow_priority(row: FlowRow) -> str:
    kind = classify_device(row.device_a) or classify_device(row.device_b)
    return map_priority(row.priority_raw, kind)


def build_interfaces(kinds: Iterable[InterfaceKind], config: ConverterConfig) -> List[Dict[str, str]]:
    return [
        {
            "componentName": "OutgoingWCTP" if k == "Edge" else k,
            "referenceName": config.reference_names.for_kind(k),
        }
        for k in kinds
    ]


def _contexts_for(group: FlowGroup, contexts: Mapping[str, GroupContext]) -> List[GroupContext]:
    return [contexts[cg] for cg in group.config_groups if cg in contexts]


def _merged_context(group: FlowGroup, contexts: Mapping[str, GroupContext]) -> GroupContext:
    merged = GroupContext()
    for ctx in _contexts_for(group, contexts):
        merged.facility = merged.facility or ctx.facility
        merged.pod_room_filter = merged.pod_room_filter or ctx.pod_room_filter
        merged.no_care_group = merged.no_care_group or ctx.no_care_group
        for u in ctx.units:
            if u not in merged.units:
                merged.units.append(u)
    return merged


def flow_name(group: FlowGroup, flow_type: FlowType, priority: str, ctx: GroupContext) -> str:
    unit_names: List[str] = []
    for u in ctx.units:
        if u.name not in unit_names:
            unit_names.append(u.name)
    parts = [
        NAME_PREFIX[flow_type],
        priority.upper(),
        " / ".join(group.alarm_names),
        " / ".join(group.config_groups),
        " / ".join(unit_names) if unit_names else ctx.facility,
    ]
    return " | ".join(parts)


def _custom_unit_slots(row: FlowRow) -> List[tuple[int, List[str]]]:
    out = []
    for slot, recipient, _ in row.slots():
        roles = parse_custom_unit(recipient)
        if roles:
            out.append((slot - 1, roles))
    return out


def build_conditions(
    row: FlowRow, flow_type: FlowType, priority: str, ctx: GroupContext, config: ConverterConfig
) -> List[Dict[str, Any]]:
    custom = _custom_unit_slots(row)
    if custom:
        base = _assignment_base(flow_type)
        out = []
        for order, roles in custom:
            filters = [
                _filter(f"{base}.role.name", "in", ", ".join(roles)),
                _filter(f"{base}.state", "in", "Active"),
                _filter(f"{base}.usr.devices.status", "in", "Registered, Disconnected"),
            ]
            if priority == "urgent":
                filters.append(_filter(f"{base}.usr.presence_show", "in", "Chat, Available"))
            out.append(
                {
                    "destinationOrder": order,
                    "filters": filters,
                    "name": "Custom All Assigned " + " and ".join(roles),
                }
            )
        return out

    room = clean(config.room_filters.for_type(flow_type))
    conditions: List[Dict[str, Any]] = []
    if flow_type == "Orders":
        conditions.append({"filters": [], "name": "Global Condition"})
        if room:
            conditions.append(
                {
                    "filters": [_filter("patient.current_place.locs.units.rooms.room_number", "in", room)],
                    "name": "Room Filter for TT",
                }
            )
        return conditions

    if flow_type == "NurseCalls":
        conditions.append(
            {
                "filters": [
                    _filter("bed", "not_null"),
                    _filter("to.type", "not_equal", "TargetGroups"),
                ],
                "name": "NurseCallsCondition",
            }
        )
    if ctx.pod_room_filter:
        conditions.append(
            {"filters": [_filter("bed.room.room_number", "in", ctx.pod_room_filter)], "name": "POD rooms filter"}
        )
    if room:
        conditions.append({"filters": [_filter("bed.room.room_number", "equal", room)], "name": "Room Filter For TT"})
    return conditions


def _destination(order: int, delay: int, presence: str, recipient_type: str, **payload: Any) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "order": order,
        "delayTime": delay,
        "destinationType": payload.pop("destination_type", "Normal"),
        "users": [],
        "functionalRoles": payload.pop("functional_roles", []),
        "groups": payload.pop("groups", []),
    }
    d.update(payload)
    d["presenceConfig"] = presence
    d["recipientType"] = recipient_type
    return d


def build_destinations(
    row: FlowRow, flow_type: FlowType, ctx: GroupContext, config: ConverterConfig, role_pattern: Pattern[str]
) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    role_presence = dnd_presence(row.break_through_dnd)
    for slot, recipient, delay_text in row.slots():
        if not clean(recipient):
            continue
        order = slot - 1
        delay = parse_delay(delay_text)
        if parse_custom_unit(recipient) is not None:
            out.append(
                _destination(
                    order,
                    delay,
                    "none",
                    "custom",
                    attributePath=f"{_assignment_base(flow_type)}.usr.devices.lines.number",
                    interfaceReferenceName=config.reference_names.edge,
                )
            )
            continue
        groups: List[Dict[str, str]] = []
        roles: List[Dict[str, str]] = []
        for part in split_recipients(recipient):
            r = parse_recipient(part, ctx.facility, role_pattern)
            if not r.name:
                continue
            entry = {"facilityName": r.facility, "name": r.name}
            (roles if r.functional_role else groups).append(entry)
        if groups:
            out.append(_destination(order, delay, "device", "group", groups=groups))
        if roles:
            out.append(_destination(order, delay, role_presence, "functional_role", functional_roles=roles))

    if flow_type == "Clinicals" and ctx.no_care_group:
        out.append(
            _destination(
                _no_care_order(out),
                0,
                "device",
                "group",
                destination_type="NoDeliveries",
                groups=[{"facilityName": ctx.facility, "name": ctx.no_care_group}],
            )
        )
    return out


def _no_care_order(destinations: List[Dict[str, Any]]) -> int:
    return max((d["order"] for d in destinations), default=-1) + 1


def _destination_name(recipient: str, role_pattern: Pattern[str]) -> Optional[str]:
    first_role = None
    for part in split_recipients(recipient):
        r = parse_recipient(part, "", role_pattern)
        if not r.name:
            continue
        if not r.functional_role:
            return "Group"
        first_role = first_role or r.name
    return first_role


def build_parameters(
    row: FlowRow,
    flow_type: FlowType,
    priority: str,
    kinds: List[InterfaceKind],
    destinations: List[Dict[str, Any]],
    role_pattern: Pattern[str],
) -> List[Dict[str, Any]]:
    params: List[Dict[str, Any]] = []
    templates = TEMPLATES[flow_type]

    ringtone = clean(row.ringtone)
    if ringtone:
        if {"Edge", "Vocera", "XMPP"} & set(kinds):
            params.append(_pa("alertSound", _q(ringtone)))
        if {"VMP", "Vocera"} & set(kinds) and not is_global_setting(ringtone):
            params.append(_pa("badgeAlertSound", _q(with_wav(ringtone))))

    resp = parse_response_options(row.response_options)
    params.append(_pa("responseType", _q(resp.response_type)))
    if resp.call_back:
        params.append(_pa("callbackNumber", _q("#{bed.pillow_number}")))
    if resp.accept:
        params.append(_pa("accept", _q("Accepted")))
        params.append(_pa("acceptBadgePhrases", '["Accept"]'))
    if resp.call_back:
        params.append(_pa("acceptAndCall", _q("Call Back")))
    if resp.decline:
        params.append(_pa("decline", _q("Decline Primary")))
        params.append(_pa("declineBadgePhrases", '["Escalate"]'))

    params.append(_pa("breakThrough", _q(break_through(row.break_through_dnd, priority))))
    params.append(_pa("enunciate", "true" if enunciate_value(row.enunciate) else "false"))
    params.append(_pa("message", _q(templates["message"])))
    params.append(_pa("patientMRN", _q(templates["patientMRN"])))
    params.append(_pa("placeUid", _q(templates["placeUid"])))
    params.append(_pa("patientName", _q(templates["patientName"])))
    params.append(_pa("popup", "true"))
    params.append(_pa("eventIdentification", _q(templates["eventIdentification"])))
    params.append(_pa("shortMessage", _q(templates["shortMessage"])))
    params.append(_pa("subject", _q(templates["subject"])))
    ttl = re.sub(r"[^0-9]", "", clean(row.ttl_value))
    params.append(_pa("ttl", ttl or "10"))
    params.append(_pa("retractRules", '["ttlHasElapsed"]'))
    params.append(_pa("vibrate", _q("short")))

    if "XMPP" in kinds:
        params.append(_pa("audible", "true"))
        params.append(_pa("realert", "false"))
        params.append(_pa("multipleAccepts", "true" if parse_yes_no(row.multi_user_accept) else "false"))
        params.append(_pa("delayedResponses", "false"))
        params.append(_pa("additionalContent", _q(templates["additionalContent"])))

    if flow_type in ("NurseCalls", "Clinicals") and "all" in row.escalate_after.lower():
        params.append(_pa("declineCount", _q("All Recipients")))

    if resp.response_type != "None":
        params.append(_pa("respondingLine", _q("#{responses.line.number}")))
        params.append(_pa("respondingUser", _q("#{responses.usr.login}")))
        params.append(_pa("responsePath", _q("responses.action")))

    for slot, recipient, _ in row.slots():
        if not clean(recipient) or parse_custom_unit(recipient) is not None:
            continue
        name = _destination_name(recipient, role_pattern)
        if name:
            params.append(_pa("destinationName", _q(name), slot - 1))

    for d in destinations:
        if d["destinationType"] == "NoDeliveries":
            for pname, value in NO_CAREGIVER_PARAMS.items():
                params.append(_pa(pname, _q(value), d["order"]))
    return params


def build_flow(
    group: FlowGroup,
    flow_type: FlowType,
    contexts: Mapping[str, GroupContext],
    config: ConverterConfig,
) -> Dict[str, Any]:
    row = group.first
    role_pattern = re.compile(config.functional_role_regex)
    ctx = _merged_context(group, contexts)
    priority = flow_priority(row)
    kinds = interface_kinds(row, config)
    destinations = build_destinations(row, flow_type, ctx, config, role_pattern)
    return {
        "alarmsAlerts": group.alarm_names,
        "conditions": build_conditions(row, flow_type, priority, ctx, config),
        "destinations": destinations,
        "interfaces": build_interfaces(kinds, config),
        "name": flow_name(group, flow_type, priority, ctx),
        "parameterAttributes": build_parameters(row, flow_type, priority, kinds, destinations, role_pattern),
        "priority": priority,
        "status": "Active",
        "units": [u.model_dump() for u in ctx.units],
    }


def alarm_definitions(rows: Iterable[FlowRow], flow_type: FlowType) -> List[Dict[str, Any]]:
    seen: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        if not r.in_scope or r.alarm_name in seen:
            continue
        seen[r.alarm_name] = {
            "name": r.alarm_name,
            "type": flow_type,
            "values": [{"category": "", "value": r.sending_name or r.alarm_name}],
        }
    return list(seen.values())


def build_document(
    rows: List[FlowRow],
    units: List[UnitRow],
    flow_type: FlowType,
    config: Optional[ConverterConfig] = None,
    mode: Optional[MergeMode] = None,
) -> Dict[str, Any]:
    config = config or ConverterConfig()
    mode = mode or config.merge_mode
    contexts = index_units(units, flow_type)
    groups = group_rows(rows, mode, contexts)
    flows = [build_flow(g, flow_type, contexts, config) for g in groups]
    log.info("document_built", flow_type=flow_type, rows=len(rows), flows=len(flows), mode=mode.value)
    return {
        "version": config.output_version,
        "alarmAlertDefinitions": alarm_definitions(rows, flow_type),
        "deliveryFlows": flows,
    }


def build_all(
    loaded: LoadedConfiguration,
    config: Optional[ConverterConfig] = None,
    mode: Optional[MergeMode] = None,
) -> Dict[FlowType, Dict[str, Any]]:
    return {ft: build_document(loaded.rows_for(ft), loaded.units, ft, config, mode) for ft in FLOW_TYPES}


def to_json(document: Mapping[str, Any]) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False)
