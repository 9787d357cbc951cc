from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator


FlowType = Literal["NurseCalls", "Clinicals", "Orders"]
InterfaceKind = Literal["Edge", "VMP", "Vocera", "XMPP"]

FLOW_TYPES: Tuple[FlowType, ...] = ("NurseCalls", "Clinicals", "Orders")
SLOTS = (1, 2, 3, 4, 5)


class MergeMode(str, Enum):
    NONE = "none"
    MERGE_BY_CONFIG_GROUP = "by-config-group"
    MERGE_ACROSS_CONFIG_GROUP = "across-config-group"


def merge_mode_from_flag(merge: bool) -> MergeMode:
    """Legacy boolean switch: true merged everything, false merged nothing."""
    return MergeMode.MERGE_ACROSS_CONFIG_GROUP if merge else MergeMode.NONE


class FlowRow(BaseModel):
    flow_type: FlowType = "NurseCalls"
    in_scope: bool = True
    config_group: str = ""
    alarm_name: str = ""
    sending_name: str = ""
    priority_raw: str = ""
    device_a: str = ""
    device_b: str = ""
    ringtone: str = ""
    response_options: str = ""
    break_through_dnd: str = ""
    enunciate: str = ""
    escalate_after: str = ""
    ttl_value: str = ""
    multi_user_accept: str = ""
    emdan: str = ""
    r1: str = ""
    r2: str = ""
    r3: str = ""
    r4: str = ""
    r5: str = ""
    t1: str = ""
    t2: str = ""
    t3: str = ""
    t4: str = ""
    t5: str = ""

    model_config = {"extra": "forbid"}

    def recipient(self, slot: int) -> str:
        return getattr(self, f"r{slot}")

    def delay(self, slot: int) -> str:
        return getattr(self, f"t{slot}")

    def slots(self) -> List[Tuple[int, str, str]]:
        return [(i, self.recipient(i), self.delay(i)) for i in SLOTS]


class UnitRow(BaseModel):
    facility: str = ""
    unit_names: str = ""
    nurse_group: str = ""
    clinical_group: str = ""
    orders_group: str = ""
    pod_room_filter: str = ""
    no_care_group: str = ""
    comments: str = ""

    model_config = {"extra": "forbid"}

    def group_for(self, flow_type: FlowType) -> str:
        if flow_type == "NurseCalls":
            return self.nurse_group
        if flow_type == "Orders":
            return self.orders_group
        return self.clinical_group


class FlowGroup(BaseModel):
    key: Tuple[str, ...]
    rows: List[FlowRow]

    @model_validator(mode="after")
    def validate_nonempty(self) -> "FlowGroup":
        if not self.rows:
            raise ValueError("a flow group needs at least one row")
        return self

    model_config = {"extra": "forbid"}

    @property
    def first(self) -> FlowRow:
        return self.rows[0]

    @property
    def alarm_names(self) -> List[str]:
        # blank names are kept so a gap in the source stays visible
        out: List[str] = []
        for r in self.rows:
            if r.alarm_name not in out:
                out.append(r.alarm_name)
        return out

    @property
    def config_groups(self) -> List[str]:
        out: List[str] = []
        for r in self.rows:
            if r.config_group and r.config_group not in out:
                out.append(r.config_group)
        return out


class SheetNames(BaseModel):
    unit_breakdown: str = "Unit Breakdown"
    nurse_call: str = "Nurse Call"
    patient_monitoring: str = "Patient Monitoring"

    model_config = {"extra": "forbid"}


class InterfaceFlags(BaseModel):
    edge: bool = False
    vmp: bool = False
    vocera: bool = False
    xmpp: bool = False

    model_config = {"extra": "forbid"}


class ReferenceNames(BaseModel):
    edge: str = "OutgoingWCTP"
    vmp: str = "VMP"
    vocera: str = "Vocera"
    xmpp: str = "XMPP"

    model_config = {"extra": "forbid"}

    def for_kind(self, kind: InterfaceKind) -> str:
        return getattr(self, kind.lower())


class RoomFilters(BaseModel):
    nurse: str = ""
    clinical: str = ""
    orders: str = ""

    model_config = {"extra": "forbid"}

    def for_type(self, flow_type: FlowType) -> str:
        if flow_type == "NurseCalls":
            return self.nurse
        if flow_type == "Orders":
            return self.orders
        return self.clinical


class ConverterConfig(BaseModel):
    output_version: str = "1.1.0"
    merge_mode: MergeMode = MergeMode.NONE
    sheets: SheetNames = Field(default_factory=SheetNames)
    custom_tabs: Dict[str, FlowType] = Field(default_factory=dict)
    default_interfaces: InterfaceFlags = Field(default_factory=InterfaceFlags)
    reference_names: ReferenceNames = Field(default_factory=ReferenceNames)
    room_filters: RoomFilters = Field(default_factory=RoomFilters)
    functional_role_regex: str = r"(?i)^(vassign:.*|.*\[room\].*)$"
    aliases: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @field_validator("custom_tabs", mode="before")
    @classmethod
    def normalize_custom_tabs(cls, v: Optional[Dict[str, str]]) -> Dict[str, str]:
        from .normalize import normalize_flow_type

        out: Dict[str, str] = {}
        for tab, flow_type in (v or {}).items():
            canonical = normalize_flow_type(flow_type)
            if canonical is None:
                raise ValueError(f"unknown flow type for tab {tab!r}: {flow_type!r}")
            out[tab.strip()] = canonical
        return out


class LoadedConfiguration(BaseModel):
    """Everything read from one workbook, XML package or JSON document."""

    units: List[UnitRow] = Field(default_factory=list)
    nurse_calls: List[FlowRow] = Field(default_factory=list)
    clinicals: List[FlowRow] = Field(default_factory=list)
    orders: List[FlowRow] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    def rows_for(self, flow_type: FlowType) -> List[FlowRow]:
        if flow_type == "NurseCalls":
            return self.nurse_calls
        if flow_type == "Orders":
            return self.orders
        return self.clinicals

    def add(self, row: FlowRow) -> None:
        self.rows_for(row.flow_type).append(row)
