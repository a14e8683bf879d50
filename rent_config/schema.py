"""
RentLedgerConfig schema.

Typed, frozen view of the runtime settings.  YAML documents are parsed into
these types by ``rent_config.loader``; only ``rent_config.get_active_config``
hands them to callers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """Allocation window settings."""

    # Months past the payment month a payment may prepay
    lookahead_months: int = 24

    def __post_init__(self) -> None:
        if isinstance(self.lookahead_months, bool) or not isinstance(self.lookahead_months, int):
            raise ValueError(f"ledger.lookahead_months must be an integer, got {self.lookahead_months!r}")
        if self.lookahead_months < 0:
            raise ValueError(f"ledger.lookahead_months must be >= 0, got {self.lookahead_months}")


@dataclass(frozen=True)
class ConcurrencySettings:
    """Per-tenant write serialization settings."""

    # None waits indefinitely
    lock_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        timeout = self.lock_timeout_seconds
        if timeout is None:
            return
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError(
                f"concurrency.lock_timeout_seconds must be a positive number or null, got {timeout!r}"
            )


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///rent_ledger.db"
    echo: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url:
            raise ValueError("database.url must be a non-empty string")
        if not isinstance(self.echo, bool):
            raise ValueError(f"database.echo must be a boolean, got {self.echo!r}")


_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if not isinstance(self.level, str) or self.level.upper() not in _LEVELS:
            raise ValueError(f"logging.level must be one of {', '.join(_LEVELS)}, got {self.level!r}")
        object.__setattr__(self, "level", self.level.upper())


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RentLedgerConfig:
    """
    Effective runtime configuration.

    ``checksum`` is the SHA-256 of the canonical JSON of every section and
    identifies the settings a write was made under.
    """

    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    concurrency: ConcurrencySettings = field(default_factory=ConcurrencySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
    source: str = "defaults"

    def settings(self) -> dict[str, Any]:
        """Section values only (no checksum/source), as plain dicts."""
        return {
            "ledger": asdict(self.ledger),
            "concurrency": asdict(self.concurrency),
            "database": asdict(self.database),
            "logging": asdict(self.logging),
        }
