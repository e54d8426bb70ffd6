"""
Configuration Loader (``fleet_config.loader``).

Responsibility
--------------
Loads a fleet settings YAML file and parses it into a ``FleetSettings``
instance.  The single public entry point for runtime settings is
``fleet_config.get_active_settings()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range numbers, unknown method or malformed season policy
  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fleet_config.schema import FleetSettings
from fleet_kernel.domain.fuel import FuelCalculationMethod
from fleet_kernel.domain.season import parse_season_policy


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a YAML scalar as Decimal without passing through float."""
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name}: expected a number, got {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{name}: must be finite, got {value!r}")
    return result


def parse_settings(data: dict[str, Any], source_path: str | None = None) -> FleetSettings:
    """Parse the top-level ``fleet`` mapping of a settings file."""
    fleet = data["fleet"]

    threshold = parse_decimal(fleet["norm_excess_threshold"], "norm_excess_threshold")
    if threshold < 0:
        raise ValueError(f"norm_excess_threshold must be >= 0, got {threshold}")

    tolerance = parse_decimal(fleet["fuel_balance_tolerance"], "fuel_balance_tolerance")
    if tolerance < 0:
        raise ValueError(f"fuel_balance_tolerance must be >= 0, got {tolerance}")

    method_name = fleet.get("default_calculation_method", "BOILER")
    try:
        method = FuelCalculationMethod(str(method_name).upper())
    except ValueError as exc:
        raise ValueError(f"Unknown calculation method {method_name!r}") from exc

    raw_policy = fleet.get("default_season_policy")
    policy = None
    if raw_policy is not None:
        policy = parse_season_policy(raw_policy)
        if policy is None:
            raise ValueError(f"Malformed default_season_policy: {raw_policy!r}")

    source_type = str(fleet.get("stock_source_type", "WAYBILL")).strip()
    if not source_type:
        raise ValueError("stock_source_type must be non-empty")

    return FleetSettings(
        norm_excess_threshold=threshold,
        fuel_balance_tolerance=tolerance,
        default_calculation_method=method,
        default_season_policy=policy,
        stock_source_type=source_type,
        source_path=source_path,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
