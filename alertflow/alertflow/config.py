"""Configuration loading: a JSON file for converter options, environment overrides on top."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .errors import ConfigError
from .schema import ConverterConfig, MergeMode


ENV_PREFIX = "ALERTFLOW_"


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + key)
    if value is not None:
        value = value.strip()
        if value == "":
            return default
        return value
    return default


def _get_bool(key: str, default: bool) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    value_lower = value.lower()
    if value_lower in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if value_lower in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ConfigError(f"Environment variable {ENV_PREFIX}{key} must be a boolean")


def _get_merge_mode(key: str, default: MergeMode) -> MergeMode:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return MergeMode(value.lower())
    except ValueError as exc:
        choices = ", ".join(m.value for m in MergeMode)
        raise ConfigError(f"Environment variable {ENV_PREFIX}{key} must be one of: {choices}") from exc


@dataclass(frozen=True)
class Settings:
    log_level: str


def load_settings() -> Settings:
    return Settings(log_level=(_get_env("LOG_LEVEL", "WARNING") or "WARNING").upper())


def load_config(path: str | Path | None = None) -> ConverterConfig:
    data: dict = {}
    if path is not None:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"config file not found: {path}")
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"config file {path} is not valid JSON: {exc}") from exc
    try:
        cfg = ConverterConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc
    return apply_env_overrides(cfg)


def apply_env_overrides(cfg: ConverterConfig) -> ConverterConfig:
    flags = cfg.default_interfaces.model_copy(
        update={
            "edge": _get_bool("DEFAULT_EDGE", cfg.default_interfaces.edge),
            "vmp": _get_bool("DEFAULT_VMP", cfg.default_interfaces.vmp),
            "vocera": _get_bool("DEFAULT_VOCERA", cfg.default_interfaces.vocera),
            "xmpp": _get_bool("DEFAULT_XMPP", cfg.default_interfaces.xmpp),
        }
    )
    rooms = cfg.room_filters.model_copy(
        update={
            "nurse": _get_env("ROOM_FILTER_NURSE", cfg.room_filters.nurse) or "",
            "clinical": _get_env("ROOM_FILTER_CLINICAL", cfg.room_filters.clinical) or "",
            "orders": _get_env("ROOM_FILTER_ORDERS", cfg.room_filters.orders) or "",
        }
    )
    return cfg.model_copy(
        update={
            "merge_mode": _get_merge_mode("MERGE_MODE", cfg.merge_mode),
            "default_interfaces": flags,
            "room_filters": rooms,
        }
    )


def default_config_json() -> str:
    return json.dumps(ConverterConfig().model_dump(mode="json"), indent=2)
