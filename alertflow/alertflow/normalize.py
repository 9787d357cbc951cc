"""Canonical vocabulary for free-text cells: devices, priorities, yes/no, responses, recipients."""

from __future__ import annotations

import re
from typing import Dict, List, NamedTuple, Optional, Pattern

from .schema import FlowType, InterfaceKind


NA_TOKENS = {"n/a", "na"}
YES_TOKENS = {"yes", "y", "true", "enunciate", "enunciation"}
NO_TOKENS = {"no", "n", "false"}
IN_SCOPE_NO = {"false", "n", "no", "0"}

# checked in order; VCS has to win over the plain Vocera match
DEVICE_PATTERNS: List[tuple[InterfaceKind, tuple[str, ...]]] = [
    ("VMP", ("vocera vcs", "voceravcs", "vcs", "vmp")),
    ("Vocera", ("vocera", "vmi")),
    ("XMPP", ("xmpp",)),
    ("Edge", ("iphone-edge", "edge")),
]

INTERFACE_ORDER: tuple[InterfaceKind, ...] = ("Edge", "VMP", "Vocera", "XMPP")

EDGE_PRIORITIES: Dict[str, str] = {
    "": "normal",
    "low": "normal",
    "l": "normal",
    "normal": "normal",
    "medium": "high",
    "med": "high",
    "m": "high",
    "high": "urgent",
    "h": "urgent",
    "urgent": "urgent",
}

VOCERA_PRIORITIES: Dict[str, str] = {
    "": "normal",
    "low": "normal",
    "normal": "normal",
    "medium": "high",
    "med": "high",
    "high": "high",
    "urgent": "urgent",
}

BREAK_THROUGH_LITERALS = {"voceraanddevice": "voceraAndDevice", "device": "device", "none": "none"}

SPREADSHEET_ERRORS = {"#REF!", "#N/A", "#DIV/0!", "#VALUE!", "#NAME?", "#NUM!", "#NULL!", "#SPILL!", "#CALC!"}

_SUFFIX_RE = re.compile(r"\s*\((edge|vcs)\)\s*$", re.IGNORECASE)
_VOICE_PREFIX_RE = re.compile(r"(?i)^\s*v(group|assign)\s*[: ]*")
_VGROUP_RE = re.compile(r"(?i)^\s*vgroup\s*:?\s*")
_VASSIGN_RE = re.compile(r"(?i)^\s*vassign\s*:\s*(\[\s*room\s*\]\s*)?")
_ROOM_RE = re.compile(r"(?i)^\[\s*room\s*\]\s*")
_CUSTOM_UNIT_RE = re.compile(r"(?i)^\s*custom\s+unit\b(.*)$", re.DOTALL)
_RECIPIENT_SPLIT_RE = re.compile(r"[,;\n]")


def clean(value: Optional[str]) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.lower() in NA_TOKENS or text.upper() in SPREADSHEET_ERRORS:
        return ""
    return text


def normalize_flow_type(text: Optional[str]) -> Optional[FlowType]:
    t = re.sub(r"[^a-z]", "", (text or "").lower())
    if not t:
        return None
    if t.startswith("nurse"):
        return "NurseCalls"
    if t.startswith("clinical") or t == "patientmonitoring":
        return "Clinicals"
    if t.startswith("order"):
        return "Orders"
    return None


def classify_device(text: Optional[str]) -> Optional[InterfaceKind]:
    t = clean(text).lower()
    if not t:
        return None
    for kind, needles in DEVICE_PATTERNS:
        if any(n in t for n in needles):
            return kind
    return None


def parse_yes_no(text: Optional[str]) -> Optional[bool]:
    t = clean(text).lower()
    if t in YES_TOKENS:
        return True
    if t in NO_TOKENS:
        return False
    return None


def enunciate_value(text: Optional[str]) -> bool:
    v = parse_yes_no(text)
    return True if v is None else v


def is_in_scope(text: Optional[str]) -> bool:
    return clean(text).lower() not in IN_SCOPE_NO


def map_priority(raw: Optional[str], kind: Optional[InterfaceKind] = None) -> str:
    t = _SUFFIX_RE.sub("", clean(raw)).strip().lower()
    table = EDGE_PRIORITIES if kind in (None, "Edge") else VOCERA_PRIORITIES
    if t in table:
        return table[t]
    return t


def break_through(raw: Optional[str], priority: str) -> str:
    t = clean(raw)
    literal = BREAK_THROUGH_LITERALS.get(t.lower().replace(" ", ""))
    if literal:
        return literal
    yn = parse_yes_no(t)
    if yn is True:
        return "voceraAndDevice"
    if yn is False:
        return "none"
    return "voceraAndDevice" if priority == "urgent" else "none"


def dnd_presence(raw: Optional[str]) -> str:
    return "device" if parse_yes_no(raw) is True else "user_and_device"


class ResponseSpec(NamedTuple):
    response_type: str
    accept: bool
    decline: bool
    call_back: bool


def parse_response_options(raw: Optional[str]) -> ResponseSpec:
    phrases = [re.sub(r"\s+", " ", p).strip().lower() for p in clean(raw).split(",")]
    phrases = [p for p in phrases if p]
    if not phrases or any(p in ("no response", "none") for p in phrases):
        return ResponseSpec("None", False, False, False)
    joined = " ".join(phrases)
    call_back = "call back" in joined or "callback" in joined
    decline = "escalate" in joined or "decline" in joined
    accept = "accept" in joined or "acknowledge" in joined or call_back
    response_type = "Accept/Decline/Call" if call_back else "Accept/Decline"
    return ResponseSpec(response_type, accept, decline, call_back)


def parse_delay(text: Optional[str]) -> int:
    digits = re.sub(r"[^0-9]", "", clean(text))
    return int(digits) if digits else 0


def with_wav(ringtone: str) -> str:
    return ringtone if ringtone.lower().endswith(".wav") else ringtone + ".wav"


def is_global_setting(ringtone: Optional[str]) -> bool:
    return clean(ringtone).lower() == "global setting"


def strip_voice_prefix(value: Optional[str]) -> str:
    return _VOICE_PREFIX_RE.sub("", clean(value)).strip()


def split_units(text: Optional[str]) -> List[str]:
    return [u.strip() for u in re.split(r"[,;/\n]", clean(text)) if u.strip()]


def split_recipients(text: Optional[str]) -> List[str]:
    return [p.strip() for p in _RECIPIENT_SPLIT_RE.split(text or "") if clean(p)]


class Recipient(NamedTuple):
    facility: str
    name: str
    functional_role: bool


def parse_recipient(raw: str, default_facility: str, role_pattern: Pattern[str]) -> Recipient:
    text = raw.strip()
    facility = default_facility
    value = text
    sep, width = text.find("::"), 2
    if sep < 0:
        sep, width = text.find(":"), 1
    if sep > 0:
        prefix, suffix = text[:sep].strip(), text[sep + width:].strip()
        if prefix and suffix and prefix.lower() not in ("vgroup", "vassign"):
            facility, value = prefix, suffix
    name = _VASSIGN_RE.sub("", _VGROUP_RE.sub("", value))
    name = _ROOM_RE.sub("", name).strip()
    return Recipient(facility, name, bool(role_pattern.match(value)))


def parse_custom_unit(raw: Optional[str]) -> Optional[List[str]]:
    """Roles named by a 'Custom Unit Nurse, CNA' cell, or None for ordinary recipients."""
    m = _CUSTOM_UNIT_RE.match(clean(raw))
    if not m:
        return None
    rest = re.sub(r"(?i)^\s*all\b", "", m.group(1))
    roles: List[str] = []
    for part in _RECIPIENT_SPLIT_RE.split(rest):
        role = re.sub(r"(?i)^\s*all\s+", "", part)
        role = re.sub(r"[^\w\s-]", "", role).strip()
        if role and role not in roles:
            roles.append(role)
    return roles
