from __future__ import annotations

import re
from typing import Dict, Iterable, List

from pydantic import BaseModel, Field

from .normalize import clean, split_units, strip_voice_prefix
from .schema import FlowType, UnitRow


class UnitRef(BaseModel):
    facilityName: str
    name: str

    model_config = {"extra": "forbid"}


class GroupContext(BaseModel):
    """What the Unit Breakdown says about one configuration group."""

    facility: str = ""
    units: List[UnitRef] = Field(default_factory=list)
    pod_room_filter: str = ""
    no_care_group: str = ""

    model_config = {"extra": "forbid"}


def split_groups(text: str) -> List[str]:
    return [g.strip() for g in re.split(r"[,;\n]", clean(text)) if g.strip()]


def index_units(units: Iterable[UnitRow], flow_type: FlowType) -> Dict[str, GroupContext]:
    out: Dict[str, GroupContext] = {}
    for u in units:
        for cg in split_groups(u.group_for(flow_type)):
            ctx = out.setdefault(cg, GroupContext())
            if not ctx.facility:
                ctx.facility = clean(u.facility)
            for name in split_units(u.unit_names):
                ref = UnitRef(facilityName=clean(u.facility), name=name)
                if ref not in ctx.units:
                    ctx.units.append(ref)
            if not ctx.pod_room_filter:
                ctx.pod_room_filter = clean(u.pod_room_filter)
            if not ctx.no_care_group:
                ctx.no_care_group = strip_voice_prefix(u.no_care_group)
    return out
