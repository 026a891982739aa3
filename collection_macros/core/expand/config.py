from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class ExpansionConfig:
    indent: int = 4
    helper_prefix: str = "_expand"
    range_sugar: bool = True
    strict_identifier_keys: bool = False


DEFAULT_CONFIG = ExpansionConfig()

_FIELD_TYPES: dict[str, type] = {
    "indent": int,
    "helper_prefix": str,
    "range_sugar": bool,
    "strict_identifier_keys": bool,
}


class ConfigError(ValueError):
    pass


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load expansion settings from a YAML file.

    Format:
      indent: 4
      helper_prefix: _expand
      range_sugar: true
      strict_identifier_keys: false

    Every key is optional. Returns only the keys present in the file.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("config file must be a mapping of setting -> value")

    known = {f.name for f in fields(ExpansionConfig)}
    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k not in known:
            raise ConfigError(f"unknown setting '{k}' (choose from: {', '.join(sorted(known))})")
        expected = _FIELD_TYPES[k]
        # bool is an int subclass; keep them apart
        if expected is int and (isinstance(v, bool) or not isinstance(v, int)):
            raise ConfigError(f"setting '{k}' must be an integer")
        if not isinstance(v, expected):
            raise ConfigError(f"setting '{k}' must be of type {expected.__name__}")
        out[k] = v

    if "indent" in out and not 1 <= out["indent"] <= 8:
        raise ConfigError("setting 'indent' must be between 1 and 8")
    if "helper_prefix" in out and not out["helper_prefix"].isidentifier():
        raise ConfigError("setting 'helper_prefix' must be a valid identifier")
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> ExpansionConfig:
    """Return DEFAULT_CONFIG with optional overrides applied."""
    if not overrides:
        return DEFAULT_CONFIG
    return replace(DEFAULT_CONFIG, **overrides)


def load_and_merge(config_file: str | None) -> ExpansionConfig:
    if not config_file:
        return merged_config()
    return merged_config(load_config_file(config_file))
