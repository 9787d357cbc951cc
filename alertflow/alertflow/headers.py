from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .normalize import clean


# logical field -> (candidate headers, words that disqualify a substring match)
UNIT_FIELDS: Dict[str, Tuple[List[str], Tuple[str, ...]]] = {
    "facility": (["Facility"], ()),
    "unit_names": (["Common Unit Name", "Unit Name", "Unit Names"], ()),
    "nurse_group": (["Nurse Call Configuration Group", "Nurse Call"], ()),
    "clinical_group": (
        ["Patient Monitoring Configuration Group", "Patient Monitoring", "Clinical Configuration Group"],
        (),
    ),
    "orders_group": (["Orders Configuration Group", "Order Configuration Group", "Orders"], ()),
    "no_care_group": (["No Caregiver Alert Number or Group", "No Caregiver Group", "No Caregiver"], ()),
    "pod_room_filter": (["Filter for POD Rooms (Optional)", "Filter for POD Rooms", "POD Rooms"], ()),
    "comments": (["Comments"], ()),
}

FLOW_FIELDS: Dict[str, Tuple[List[str], Tuple[str, ...]]] = {
    "in_scope": (["In scope", "In-Scope"], ()),
    "config_group": (["Configuration Group", "Config Group"], ()),
    "alarm_name": (["Common Alert or Alarm Name", "Alarm Name", "Alert Name"], ("sending",)),
    "sending_name": (["Sending System Alert Name", "Sending System Alarm Name", "Sending Name"], ()),
    "priority_raw": (["Priority"], ()),
    "device_a": (["Device - A", "Device A", "Device"], ("ringtone", "time", "device b")),
    "device_b": (["Device - B", "Device B"], ("ringtone", "time")),
    "ringtone": (["Ringtone Device - A", "Ringtone"], ("device b",)),
    "response_options": (["Response Options", "Response Option"], ()),
    "break_through_dnd": (["Break Through DND", "Breakthrough DND"], ()),
    "escalate_after": (
        ["Engage 6.6+: Escalate after all declines or 1 decline", "Escalate after all declines or 1 decline", "Escalate After"],
        (),
    ),
    "ttl_value": (["Engage/Edge Display Time (Time to Live) (Device - A)", "Time to Live"], ()),
    "enunciate": (["Genie Enunciation", "Enunciate", "Enunciation"], ()),
    "multi_user_accept": (["Platform: Multi-User Accept", "Multi-User Accept"], ()),
    "emdan": (["EMDAN Compliant? (Y/N)", "EMDAN Compliant? (Y)", "EMDAN Compliant", "EMDAN"], ()),
    "t1": (["Time to 1st Recipient", "Delay to 1st", "Time to 1st Recipient (after alarm triggers)"], ()),
    "t2": (["Time to 2nd Recipient", "Delay to 2nd"], ()),
    "t3": (["Time to 3rd Recipient", "Delay to 3rd"], ()),
    "t4": (["Time to 4th Recipient", "Delay to 4th"], ()),
    "t5": (["Time to 5th Recipient", "Delay to 5th"], ()),
    "r1": (["1st Recipient", "First Recipient", "1st recipients"], ("time", "delay")),
    "r2": (["2nd Recipient", "Second Recipient", "2nd recipients"], ("time", "delay")),
    "r3": (["3rd Recipient", "Third Recipient", "3rd recipients"], ("time", "delay")),
    "r4": (["4th Recipient", "Fourth Recipient", "4th recipients"], ("time", "delay")),
    "r5": (["5th Recipient", "Fifth Recipient", "5th recipients"], ("time", "delay")),
}

HEADER_SCAN_ROWS = (2, 3, 4, 5)
MIN_HEADER_CELLS = 3


def normalize_header(text: Any) -> str:
    return re.sub(r"[^a-z0-9]+", " ", str(text or "").lower()).strip()


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return clean(str(value))


def _looks_like_header(row: Sequence[str], known: Optional[set]) -> bool:
    if known is None:
        return True
    return any(normalize_header(c) in known for c in row if c)


def find_header_row(
    rows: Sequence[Sequence[str]],
    fields: Optional[Mapping[str, Tuple[List[str], Tuple[str, ...]]]] = None,
) -> Optional[int]:
    """Rows 2..5 are where title banners usually end; fall back to the first recognisable row."""
    known = None
    if fields is not None:
        known = {normalize_header(c) for candidates, _ in fields.values() for c in candidates}
    for idx in HEADER_SCAN_ROWS:
        if idx >= len(rows):
            break
        row = rows[idx]
        if sum(1 for c in row if c) >= MIN_HEADER_CELLS and _looks_like_header(row, known):
            return idx
    if known is not None:
        for idx, row in enumerate(rows):
            if _looks_like_header(row, known):
                return idx
    for idx, row in enumerate(rows):
        if any(row):
            return idx
    return None


class HeaderMap:
    """Resolves logical fields to sheet columns through candidate header names."""

    def __init__(
        self,
        header_cells: Sequence[str],
        fields: Mapping[str, Tuple[List[str], Tuple[str, ...]]],
        aliases: Optional[Mapping[str, List[str]]] = None,
    ):
        self.headers = [normalize_header(h) for h in header_cells]
        self._columns: Dict[str, List[int]] = {}
        for field, (candidates, excludes) in fields.items():
            extra = list((aliases or {}).get(field, []))
            self._columns[field] = self._resolve(extra + candidates, excludes)

    def _resolve(self, candidates: List[str], excludes: Tuple[str, ...]) -> List[int]:
        wanted = [normalize_header(c) for c in candidates if normalize_header(c)]
        exact: List[int] = []
        for w in wanted:
            exact.extend(i for i, h in enumerate(self.headers) if h == w and i not in exact)
        if exact:
            return exact
        loose: List[int] = []
        for w in wanted:
            for i, h in enumerate(self.headers):
                if w in h and i not in loose and not any(x in h for x in excludes):
                    loose.append(i)
        return sorted(loose)

    def has(self, field: str) -> bool:
        return bool(self._columns.get(field))

    def columns(self, field: str) -> List[int]:
        return list(self._columns.get(field, []))

    def get(self, row: Sequence[str], field: str) -> str:
        # first matching column in sheet order that carries a value
        for i in sorted(self._columns.get(field, [])):
            if i < len(row) and row[i]:
                return row[i]
        return ""
