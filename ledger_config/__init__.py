"""
ledger_config -- YAML-backed configuration for the ledger kernel.

Responsibility:
    Loads ledger settings and the standard chart of accounts.  The kernel
    never reads files or environment variables itself: the process entry
    point calls ``get_ledger_config()`` and injects the result into the
    services.

Failure modes:
    - ``FileNotFoundError`` for an explicit path that does not exist.
    - ``ValueError`` / ``KeyError`` for structurally invalid YAML content.

Audit relevance:
    Every ``get_ledger_config()`` call logs ``ledger_config_loaded`` with
    the configuration checksum.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ledger_config.loader import (
    CONFIG_DIR_ENV,
    compute_checksum,
    load_chart_template,
    load_settings,
)
from ledger_config.schema import AccountTemplate, ChartTemplate, LedgerSettings

_logger = logging.getLogger("ledger_kernel.config")


@dataclass(frozen=True)
class LedgerConfig:
    """Settings and chart loaded together, with their checksum."""

    settings: LedgerSettings
    chart: ChartTemplate
    checksum: str


def get_ledger_config(
    settings_path: str | Path | None = None,
    chart_path: str | Path | None = None,
) -> LedgerConfig:
    """Load settings and chart, honouring ``LEDGER_CONFIG_DIR``."""
    settings = load_settings(settings_path)
    chart = load_chart_template(chart_path)
    checksum = compute_checksum(settings, chart)
    _logger.info(
        "ledger_config_loaded",
        extra={
            "checksum": checksum,
            "account_count": len(chart.accounts),
            "currency": settings.currency,
        },
    )
    return LedgerConfig(settings=settings, chart=chart, checksum=checksum)


__all__ = [
    "AccountTemplate",
    "CONFIG_DIR_ENV",
    "ChartTemplate",
    "LedgerConfig",
    "LedgerSettings",
    "get_ledger_config",
    "load_chart_template",
    "load_settings",
]
