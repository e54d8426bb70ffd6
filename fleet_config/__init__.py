"""
fleet_config -- single public entrypoint for fleet runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime, through
    ``get_active_settings()``.  Other components never read settings files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``fleet_kernel``: the kernel never imports
    fleet_config, and ``bridges`` translates settings into kernel value
    objects.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- the file fails validation.

Audit relevance:
    Every successful ``get_active_settings()`` call emits a
    ``FLEET_CONFIG_TRACE`` log entry with the source path and checksum, so
    a posted waybill can be tied to the thresholds that governed it.
"""

from __future__ import annotations

import os
from pathlib import Path

from fleet_config.bridges import build_waybill_rules
from fleet_config.loader import load_yaml_file, parse_settings
from fleet_config.schema import FleetSettings
from fleet_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_PATH_ENV = "FLEET_CONFIG_PATH"


def get_active_settings(path: Path | str | None = None) -> FleetSettings:
    """The ONLY public settings entrypoint.

    Resolution order: ``path`` argument, then the ``FLEET_CONFIG_PATH``
    environment variable, then the bundled ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If the settings fail validation.
    """
    env_path = os.environ.get(CONFIG_PATH_ENV)
    resolved = Path(path) if path is not None else (
        Path(env_path) if env_path else DEFAULT_SETTINGS_PATH
    )

    settings = parse_settings(load_yaml_file(resolved), source_path=str(resolved))

    _logger.info(
        "FLEET_CONFIG_TRACE",
        extra={
            "trace_type": "FLEET_CONFIG_TRACE",
            "source_path": str(resolved),
            "checksum": settings.checksum,
            "norm_excess_threshold": str(settings.norm_excess_threshold),
            "fuel_balance_tolerance": str(settings.fuel_balance_tolerance),
            "default_calculation_method": settings.default_calculation_method.value,
        },
    )
    return settings


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_SETTINGS_PATH",
    "FleetSettings",
    "build_waybill_rules",
    "get_active_settings",
]
