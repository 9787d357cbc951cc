from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .logging import get_logger
from .normalize import parse_yes_no
from .schema import FlowGroup, FlowRow, MergeMode
from .units import GroupContext


log = get_logger(__name__)

# every delivery-relevant field; alarm_name and sending_name never take part
KEY_FIELDS: Tuple[str, ...] = (
    "flow_type",
    "priority_raw",
    "device_a",
    "device_b",
    "ringtone",
    "response_options",
    "break_through_dnd",
    "enunciate",
    "escalate_after",
    "ttl_value",
    "multi_user_accept",
    "r1", "r2", "r3", "r4", "r5",
    "t1", "t2", "t3", "t4", "t5",
)


YES_NO_FIELDS = {"break_through_dnd", "enunciate", "multi_user_accept"}


def _key_value(row: FlowRow, field: str) -> str:
    value = str(getattr(row, field)).strip()
    if field == "priority_raw":
        return value.lower()
    if field in YES_NO_FIELDS:
        yn = parse_yes_no(value)
        if yn is not None:
            return "yes" if yn else "no"
    return value


def merge_key(row: FlowRow, context: Optional[GroupContext] = None) -> Tuple[str, ...]:
    values = tuple(_key_value(row, f) for f in KEY_FIELDS)
    ctx = context or GroupContext()
    return values + (ctx.pod_room_filter.strip(), ctx.no_care_group.strip())


def group_rows(
    rows: Iterable[FlowRow],
    mode: MergeMode = MergeMode.NONE,
    contexts: Optional[Mapping[str, GroupContext]] = None,
) -> List[FlowGroup]:
    contexts = contexts or {}
    buckets: Dict[Tuple, List[FlowRow]] = {}
    keys: Dict[Tuple, Tuple[str, ...]] = {}
    skipped = 0
    for i, r in enumerate(rows):
        if not r.in_scope:
            skipped += 1
            continue
        key = merge_key(r, contexts.get(r.config_group))
        if mode == MergeMode.NONE:
            bucket = ("row", i)
        elif mode == MergeMode.MERGE_BY_CONFIG_GROUP:
            bucket = (key, r.config_group)
        else:
            bucket = (key,)
        buckets.setdefault(bucket, []).append(r)
        keys.setdefault(bucket, key)
    groups = [FlowGroup(key=keys[b], rows=members) for b, members in buckets.items()]
    log.debug("rows_grouped", mode=mode.value, groups=len(groups), out_of_scope=skipped)
    return groups
