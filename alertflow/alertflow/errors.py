from __future__ import annotations


class AlertflowError(Exception):
    pass


class InputFormatError(AlertflowError):
    """Source file could not be interpreted (unsupported suffix, bad XML or JSON)."""


class ConfigError(AlertflowError):
    pass
