"""
Configuration Loader (``fbms_config.loader``).

Responsibility
--------------
Reads a YAML configuration set and parses it into ``fbms_config.schema``
dataclasses.  Runtime callers go through ``fbms_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown role or account type  -> ``ValueError`` from the enum.
* Two active accounts bound to one role  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from fbms_config.schema import LedgerConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def validate_config(config: LedgerConfig) -> list[str]:
    """Structural checks a parsed set must pass.  Returns error strings."""
    errors: list[str] = []
    codes: set[str] = set()
    roles: dict[str, str] = {}
    for seed in config.accounts:
        if seed.code in codes:
            errors.append(f"duplicate account code {seed.code}")
        codes.add(seed.code)
        if seed.role is not None and seed.is_active:
            if seed.role.value in roles:
                errors.append(
                    f"role {seed.role.value} bound to both "
                    f"{roles[seed.role.value]} and {seed.code}"
                )
            roles[seed.role.value] = seed.code
    return errors


def load_config(path: Path) -> LedgerConfig:
    """Parse and validate the configuration set at ``path``."""
    data = load_yaml_file(path)
    config = LedgerConfig.from_dict(data, checksum=compute_checksum(data))
    errors = validate_config(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )
    return config
