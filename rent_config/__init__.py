"""
rent_config -- single public entrypoint for rent ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits beside ``rent_kernel``.  The kernel and engines
    MUST NEVER import from ``rent_config``; the service layer receives a
    ``RentLedgerConfig`` through its constructor.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic checksum: the same effective settings always produce
      the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the supplied config file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``RENT_CONFIG_TRACE`` log entry containing the source and checksum of
    the effective settings.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rent_config.loader import load_yaml_file, merge_documents, parse_config
from rent_config.schema import (
    ConcurrencySettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    RentLedgerConfig,
)

_logger = logging.getLogger("rent_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> RentLedgerConfig:
    """The ONLY public configuration entrypoint.

    Contract:
        Loads the packaged defaults, overlays ``config_path`` when given,
        validates every value and returns a frozen ``RentLedgerConfig``.

    Guarantees:
        - A ``RENT_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - Does NOT cache; callers hold the returned config.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If configuration validation fails.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    source = "defaults"
    if config_path is not None:
        path = Path(config_path)
        data = merge_documents(data, load_yaml_file(path))
        source = str(path)

    config = parse_config(data, source=source)

    _logger.info(
        "RENT_CONFIG_TRACE",
        extra={
            "trace_type": "RENT_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "lookahead_months": config.ledger.lookahead_months,
            "lock_timeout_seconds": config.concurrency.lock_timeout_seconds,
        },
    )

    return config


__all__ = [
    "ConcurrencySettings",
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
    "RentLedgerConfig",
    "get_active_config",
]
