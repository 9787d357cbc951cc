"""Legacy XML rule packages: datasets with filter views, interfaces with send/escalation rules."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .errors import InputFormatError
from .logging import get_logger
from .schema import FlowRow, FlowType, LoadedConfiguration, UnitRow


log = get_logger(__name__)

STATES = ("Primary", "Secondary", "Tertiary", "Quaternary", "Quinary")
POSITIVE_RELATIONS = {"", "in", "equal"}
PRIORITY_CODES = {"0": "Urgent", "3": "Urgent", "1": "High", "2": "Normal"}
COMPONENTS = {"VMP": "VMP", "DATAUPDATE": "Edge", "VOCERA": "Vocera", "XMPP": "XMPP"}
FACILITY_PLACEHOLDER = "#{bed.room.facility.name}"


class XmlFilter(BaseModel):
    relation: str = ""
    path: str
    value: str

    model_config = {"extra": "forbid"}


class XmlRule(BaseModel):
    component: str
    dataset: str
    purpose: str = ""
    defer_delivery_by: Optional[str] = None
    trigger_create: bool = False
    trigger_update: bool = False
    view_names: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    alert_types: List[str] = Field(default_factory=list)
    facilities: List[str] = Field(default_factory=list)
    units: List[str] = Field(default_factory=list)
    state: str = ""
    role: str = ""

    model_config = {"extra": "forbid"}

    @property
    def destination(self) -> str:
        return str(self.settings.get("destination") or "").strip()

    @property
    def is_data_update(self) -> bool:
        return self.component.lower() == "dataupdate"


def _child_text(elem: ET.Element, tag: str) -> Optional[str]:
    child = elem.find(tag)
    if child is None:
        return None
    return "".join(child.itertext()).strip()


def _split_values(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _add_unique(target: List[str], values: List[str]) -> None:
    for v in values:
        if v not in target:
            target.append(v)


def parse_settings(text: Optional[str]) -> Dict[str, Any]:
    if not text:
        return {}
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        log.warning("rule_settings_unparseable", error=str(exc))
        return {}
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, Any] = {}
    for key in ("priority", "ttl", "enunciate", "destination"):
        if key in raw and raw[key] is not None:
            out[key] = str(raw[key])
    if "overrideDND" in raw:
        out["overrideDND"] = str(raw["overrideDND"]).lower() == "true"
    if isinstance(raw.get("displayValues"), list):
        out["displayValues"] = ",".join(str(v) for v in raw["displayValues"])
    for param in raw.get("parameters") or []:
        if not isinstance(param, dict) or "value" not in param:
            continue
        if param.get("path") == "state" and "state" not in out:
            out["state"] = str(param["value"])
        elif param.get("name") == "declineCount":
            out["declineCount"] = str(param["value"]).strip().strip('"')
    return out


def parse_views(root: ET.Element) -> Dict[str, Dict[str, List[XmlFilter]]]:
    out: Dict[str, Dict[str, List[XmlFilter]]] = {}
    for ds in root.iter("dataset"):
        if ds.get("active", "").lower() == "false":
            continue
        name = _child_text(ds, "name")
        if not name:
            continue
        views: Dict[str, List[XmlFilter]] = {}
        for v in ds.iter("view"):
            view_name = _child_text(v, "name")
            if not view_name:
                continue
            filters = []
            for f in v.iter("filter"):
                path, value = _child_text(f, "path"), _child_text(f, "value")
                if path is not None and value is not None:
                    filters.append(XmlFilter(relation=f.get("relation", ""), path=path, value=value))
            views[view_name] = filters
        out[name] = views
    return out


def parse_rules(root: ET.Element) -> List[XmlRule]:
    rules: List[XmlRule] = []
    for iface in root.iter("interface"):
        component = iface.get("component", "")
        for r in iface.iter("rule"):
            if r.get("active", "").lower() == "false":
                continue
            trigger = r.find("trigger-on")
            condition = r.find("condition")
            settings = parse_settings(_child_text(r, "settings"))
            rule = XmlRule(
                component=component,
                dataset=r.get("dataset", ""),
                purpose=_child_text(r, "purpose") or "",
                defer_delivery_by=_child_text(r, "defer-delivery-by") or None,
                trigger_create=trigger is not None and trigger.get("create", "").lower() == "true",
                trigger_update=trigger is not None and trigger.get("update", "").lower() == "true",
                view_names=[
                    (v.text or "").strip() for v in (condition.iter("view") if condition is not None else []) if (v.text or "").strip()
                ],
                settings=settings,
            )
            if rule.is_data_update and "state" in settings:
                rule.state = settings["state"]
            rules.append(rule)
    return rules


def apply_view_filters(rule: XmlRule, filters: List[XmlFilter]) -> None:
    for f in filters:
        if f.relation.lower() not in POSITIVE_RELATIONS:
            continue
        path = f.path.strip()
        values = _split_values(f.value)
        if path == "alert_type" or path.endswith(".alert_type"):
            _add_unique(rule.alert_types, values)
        elif "facility.name" in path:
            _add_unique(rule.facilities, [v for v in values if v != FACILITY_PLACEHOLDER])
        elif "unit.name" in path:
            _add_unique(rule.units, values)
        elif "role.name" in path or "assignments.role" in path or path == "role":
            rule.role = ", ".join(values)
        elif path == "state":
            # DataUpdate rules carry the state they set; only escalation timers are keyed on the view state
            if not rule.is_data_update or (rule.trigger_update and rule.defer_delivery_by):
                rule.state = f.value.strip()


def normalize_dataset(dataset: str) -> FlowType:
    d = dataset.lower()
    if "nurse" in d:
        return "NurseCalls"
    if "order" in d:
        return "Orders"
    return "Clinicals"


def map_component(component: str) -> str:
    return COMPONENTS.get(component.upper(), component)


def format_seconds(value: Optional[str]) -> str:
    text = (value or "").strip()
    if not text or text == "0":
        return "Immediate"
    return text


def config_group_name(dataset: str, facility: str, unit: str) -> str:
    parts = [facility or "All_Facilities", unit or "AllUnits"]
    if dataset:
        parts.append(dataset)
    return "_".join(parts)


def format_recipient(rule: XmlRule) -> str:
    dest = rule.destination
    if dest.startswith("g-") or not rule.role:
        return "\n".join(f"VGroup {p}" for p in _split_values(dest)) if dest else ""
    return "\n".join(f"VAssign:[Room] {p}" for p in _split_values(rule.role))


def _state_of(rule: XmlRule) -> str:
    state = rule.state or "Primary"
    return "Primary" if state.lower() == "group" else state


def apply_settings(row: FlowRow, rule: XmlRule) -> None:
    s = rule.settings
    if "priority" in s:
        row.priority_raw = PRIORITY_CODES.get(s["priority"], s["priority"])
    if "ttl" in s:
        row.ttl_value = s["ttl"]
    if "enunciate" in s:
        row.enunciate = "ENUNCIATE" if s["enunciate"] == "ENUNCIATE_ALWAYS" else s["enunciate"]
    if "overrideDND" in s:
        row.break_through_dnd = "TRUE" if s["overrideDND"] else "FALSE"
    if "displayValues" in s:
        row.response_options = s["displayValues"]
    if "all" in s.get("declineCount", "").lower():
        row.escalate_after = "All declines"


class _Builder:
    def __init__(self, views: Dict[str, Dict[str, List[XmlFilter]]], rules: List[XmlRule]):
        self.views = views
        self.rules = rules
        self.loaded = LoadedConfiguration()
        # flow type -> facility -> unit -> config groups
        self.groups_by_unit: Dict[FlowType, Dict[str, Dict[str, List[str]]]] = {}

    def enrich(self) -> None:
        for rule in self.rules:
            views = self.views.get(rule.dataset, {})
            for name in rule.view_names:
                apply_view_filters(rule, views.get(name, []))

    def build(self) -> LoadedConfiguration:
        self.enrich()
        grouped: Dict[Tuple[str, str, str], List[XmlRule]] = {}
        creates: Dict[Tuple[str, str], List[XmlRule]] = {}
        global_escalations: List[XmlRule] = []

        for rule in self.rules:
            if rule.is_data_update and rule.trigger_create:
                for at in rule.alert_types:
                    creates.setdefault((rule.dataset, at), []).append(rule)

        for rule in self.rules:
            if not rule.alert_types and rule.state and rule.defer_delivery_by and not rule.destination:
                global_escalations.append(rule)
                continue
            if rule.is_data_update and (rule.defer_delivery_by is None or rule.destination):
                continue
            for at in rule.alert_types:
                facilities = list(rule.facilities)
                if not facilities:
                    for c in creates.get((rule.dataset, at), []):
                        _add_unique(facilities, c.facilities)
                for fac in facilities or [""]:
                    grouped.setdefault((rule.dataset, at, fac), []).append(rule)

        for g in global_escalations:
            for (dataset, _, fac), members in grouped.items():
                if dataset == g.dataset and (not fac or not g.facilities or fac in g.facilities):
                    members.append(g)

        for (dataset, alert_type, fac), members in grouped.items():
            self._emit_group(dataset, alert_type, fac, members, creates.get((dataset, alert_type), []))
        self._emit_units()
        log.info(
            "rule_package_loaded",
            rules=len(self.rules),
            nurse_calls=len(self.loaded.nurse_calls),
            clinicals=len(self.loaded.clinicals),
            orders=len(self.loaded.orders),
            units=len(self.loaded.units),
        )
        return self.loaded

    def _emit_group(
        self, dataset: str, alert_type: str, facility: str, members: List[XmlRule], creates: List[XmlRule]
    ) -> None:
        sends: Dict[str, List[XmlRule]] = {}
        escalate_after: Dict[str, str] = {}
        for r in members:
            if r.destination:
                sends.setdefault(_state_of(r), []).append(r)
            elif r.defer_delivery_by and r.state and not r.trigger_create:
                escalate_after[_state_of(r)] = r.defer_delivery_by
        if not sends:
            return

        initial = "Immediate"
        if creates:
            initial = format_seconds(creates[0].defer_delivery_by)

        if len(sends) == 1 and len(next(iter(sends.values()))) > 1:
            state = next(iter(sends))
            for r in sends[state]:
                self._emit_rows(dataset, alert_type, facility, {state: [r]}, escalate_after, initial, creates)
            return
        self._emit_rows(dataset, alert_type, facility, sends, escalate_after, initial, creates)

    def _emit_rows(
        self,
        dataset: str,
        alert_type: str,
        facility: str,
        sends: Dict[str, List[XmlRule]],
        escalate_after: Dict[str, str],
        initial: str,
        creates: List[XmlRule],
    ) -> None:
        first = next(iter(sends.values()))[0]
        template = FlowRow(
            flow_type=normalize_dataset(dataset),
            alarm_name=alert_type,
            sending_name=alert_type,
            device_a=map_component(first.component),
            t1=initial,
        )
        apply_settings(template, first)
        for i, state in enumerate(STATES):
            slot = i + 1
            rules = sends.get(state, [])
            recipients = [format_recipient(r) for r in rules]
            recipient = "\n".join(x for x in recipients if x)
            if recipient:
                setattr(template, f"r{slot}", recipient)
            if i > 0 and STATES[i - 1] in escalate_after:
                setattr(template, f"t{slot}", format_seconds(escalate_after[STATES[i - 1]]))

        send_units: List[str] = []
        for rules in sends.values():
            for r in rules:
                _add_unique(send_units, r.units)
        units: List[str] = []
        for c in creates:
            if facility and c.facilities and facility not in c.facilities:
                continue
            if send_units:
                _add_unique(units, [u for u in c.units if u in send_units])
            else:
                _add_unique(units, c.units)
        if not units:
            units = send_units

        for unit in units or [""]:
            row = template.model_copy(update={"config_group": config_group_name(dataset, facility, unit)})
            self.loaded.add(row)
            by_fac = self.groups_by_unit.setdefault(row.flow_type, {}).setdefault(facility, {})
            _add_unique(by_fac.setdefault(unit, []), [row.config_group])

    def _emit_units(self) -> None:
        facilities: List[str] = []
        for by_fac in self.groups_by_unit.values():
            _add_unique(facilities, [f for f in by_fac if f])
        for fac in facilities:
            unit_names: List[str] = []
            for by_fac in self.groups_by_unit.values():
                _add_unique(unit_names, list(by_fac.get(fac, {})))
            for unit in unit_names:
                self.loaded.units.append(
                    UnitRow(
                        facility=fac,
                        unit_names=unit,
                        nurse_group=self._groups("NurseCalls", fac, unit),
                        clinical_group=self._groups("Clinicals", fac, unit),
                        orders_group=self._groups("Orders", fac, unit),
                    )
                )

    def _groups(self, flow_type: FlowType, facility: str, unit: str) -> str:
        return ", ".join(self.groups_by_unit.get(flow_type, {}).get(facility, {}).get(unit, []))


def load_xml(path: str | Path) -> LoadedConfiguration:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"rule package not found: {path}")
    try:
        root = ET.parse(p).getroot()
    except ET.ParseError as exc:
        raise InputFormatError(f"{path} is not well-formed XML: {exc}") from exc
    return _Builder(parse_views(root), parse_rules(root)).build()
