"""
Configuration loader (``sourcing_config.loader``).

Responsibility
--------------
Reads the YAML configuration file and parses each top-level section into
its frozen ``sourcing_config.schema`` dataclass.  Callers should go
through ``sourcing_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections, unknown keys and values of the wrong type raise
  ``ValueError`` naming the offending ``section.key``.
* Missing keys take the schema default.
* ``compute_checksum`` is a deterministic SHA-256 over the raw data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import types
import typing
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from sourcing_config.schema import (
    ContractsConfig,
    DatabaseConfig,
    MatchingConfig,
    NotificationsConfig,
    OrdersConfig,
    PaymentsConfig,
    SourcingConfiguration,
    TrustConfig,
)

SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "trust": TrustConfig,
    "matching": MatchingConfig,
    "orders": OrdersConfig,
    "contracts": ContractsConfig,
    "payments": PaymentsConfig,
    "notifications": NotificationsConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _coerce(where: str, value: Any, annotation: Any) -> Any:
    origin = typing.get_origin(annotation)

    if origin in (typing.Union, types.UnionType):
        args = typing.get_args(annotation)
        if value is None and type(None) in args:
            return None
        inner = [a for a in args if a is not type(None)]
        return _coerce(where, value, inner[0])

    if origin is tuple:
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"{where}: expected a list, got {value!r}")
        item_type = typing.get_args(annotation)[0]
        return tuple(_coerce(f"{where}[{i}]", v, item_type) for i, v in enumerate(value))

    if annotation is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{where}: expected true/false, got {value!r}")
        return value

    if isinstance(value, bool):
        raise ValueError(f"{where}: expected {annotation.__name__}, got a boolean")

    if annotation is int:
        if not isinstance(value, int):
            raise ValueError(f"{where}: expected an integer, got {value!r}")
        return value

    if annotation is float:
        if not isinstance(value, (int, float)):
            raise ValueError(f"{where}: expected a number, got {value!r}")
        return float(value)

    if annotation is Decimal:
        if not isinstance(value, (int, float, str)):
            raise ValueError(f"{where}: expected a decimal, got {value!r}")
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{where}: expected a decimal, got {value!r}") from None

    if annotation is str:
        if not isinstance(value, str):
            raise ValueError(f"{where}: expected a string, got {value!r}")
        return value

    raise ValueError(f"{where}: unsupported setting type {annotation!r}")


def parse_section(name: str, data: Any) -> Any:
    """Parse one top-level section into its schema dataclass."""
    cls = SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{name}: expected a mapping, got {data!r}")

    hints = typing.get_type_hints(cls)
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{name}: unknown setting(s) {', '.join(unknown)}")

    values = {
        key: _coerce(f"{name}.{key}", value, hints[key]) for key, value in data.items()
    }
    return cls(**values)


def parse_configuration(data: dict[str, Any], source: str = "") -> SourcingConfiguration:
    unknown = sorted(set(data) - set(SECTIONS))
    if unknown:
        raise ValueError(f"Unknown configuration section(s): {', '.join(unknown)}")
    sections = {name: parse_section(name, data.get(name)) for name in SECTIONS}
    return SourcingConfiguration(
        **sections,
        checksum=compute_checksum(data),
        source=source,
    )


def load_configuration(path: Path) -> SourcingConfiguration:
    return parse_configuration(load_yaml_file(path), source=str(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
