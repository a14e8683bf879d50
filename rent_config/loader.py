"""
Configuration Loader (``rent_config.loader``).

Responsibility
--------------
Loads YAML documents and parses them into the typed ``rent_config.schema``
dataclasses.  The single public entry point for runtime config is
``rent_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; there are no silent
  typos in a config file.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective settings.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from rent_config.schema import (
    ConcurrencySettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    RentLedgerConfig,
)

_SECTIONS = {
    "ledger": LedgerSettings,
    "concurrency": ConcurrencySettings,
    "database": DatabaseSettings,
    "logging": LoggingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
    return data


def merge_documents(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` onto ``base`` key by key within each section."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"section {name!r} must be a mapping, got {type(values).__name__}")
        merged.setdefault(name, {}).update(values)
    return merged


def parse_config(data: dict[str, Any], source: str = "defaults") -> RentLedgerConfig:
    """
    Build a ``RentLedgerConfig`` from a merged document.

    Raises:
        ValueError: on unknown sections/keys or invalid values.
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

    sections: dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        values = data.get(name) or {}
        allowed = set(cls.__dataclass_fields__)
        extra = set(values) - allowed
        if extra:
            raise ValueError(f"Unknown keys in {name}: {', '.join(sorted(extra))}")
        sections[name] = cls(**values)

    config = RentLedgerConfig(**sections, source=source)
    return RentLedgerConfig(**sections, source=source, checksum=compute_checksum(config.settings()))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
