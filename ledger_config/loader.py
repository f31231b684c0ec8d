"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads the YAML settings and chart-of-accounts files and parses them into
``ledger_config.schema`` dataclasses.

Lookup order for each file: an explicit ``path`` argument, then
``$LEDGER_CONFIG_DIR/<name>.yaml`` when that file exists, then the
packaged defaults.

Failure modes
-------------
* Missing YAML file at an explicit path  -> ``FileNotFoundError``.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError``.
* Invalid values (unknown account type, bad tolerance)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import AccountTemplate, ChartTemplate, LedgerSettings

DEFAULTS_DIR = Path(__file__).parent / "defaults"
CONFIG_DIR_ENV = "LEDGER_CONFIG_DIR"

SETTINGS_FILE = "settings.yaml"
CHART_FILE = "chart_of_accounts.yaml"

_ACCOUNT_TYPES = frozenset({"asset", "liability", "equity", "revenue", "expense"})
_NORMAL_BALANCES = frozenset({"debit", "credit"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def resolve_config_path(filename: str, path: str | Path | None = None) -> Path:
    """Pick the file to load for ``filename`` (see module lookup order)."""
    if path is not None:
        return Path(path)
    config_dir = os.environ.get(CONFIG_DIR_ENV)
    if config_dir:
        candidate = Path(config_dir) / filename
        if candidate.exists():
            return candidate
    return DEFAULTS_DIR / filename


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Parse a settings mapping; absent keys take the schema defaults."""
    kwargs: dict[str, Any] = {}
    if "balance_tolerance" in data:
        try:
            kwargs["balance_tolerance"] = Decimal(str(data["balance_tolerance"]))
        except InvalidOperation as exc:
            raise ValueError(
                f"Invalid balance_tolerance: {data['balance_tolerance']!r}"
            ) from exc
    if "entry_number_prefix" in data:
        kwargs["entry_number_prefix"] = str(data["entry_number_prefix"])
    if "opening_balance_offset_code" in data:
        kwargs["opening_balance_offset_code"] = (
            str(data["opening_balance_offset_code"]).strip().upper()
        )
    if "override_roles" in data:
        roles = data["override_roles"] or []
        kwargs["override_roles"] = tuple(str(r).lower() for r in roles)
    if "lock_roles" in data:
        roles = data["lock_roles"] or []
        kwargs["lock_roles"] = tuple(str(r).lower() for r in roles)
    if "currency" in data:
        kwargs["currency"] = str(data["currency"]).upper()
    return LedgerSettings(**kwargs)


def parse_account_template(data: dict[str, Any]) -> AccountTemplate:
    account_type = str(data["account_type"]).lower()
    if account_type not in _ACCOUNT_TYPES:
        raise ValueError(
            f"Unknown account_type {data['account_type']!r} for account "
            f"{data.get('code')!r}"
        )
    normal_balance = data.get("normal_balance")
    if normal_balance is not None:
        normal_balance = str(normal_balance).lower()
        if normal_balance not in _NORMAL_BALANCES:
            raise ValueError(
                f"Unknown normal_balance {data['normal_balance']!r} for account "
                f"{data.get('code')!r}"
            )
    parent_code = data.get("parent_code")
    return AccountTemplate(
        code=str(data["code"]).strip().upper(),
        name=str(data["name"]),
        account_type=account_type,
        category=data.get("category"),
        parent_code=str(parent_code).strip().upper() if parent_code else None,
        normal_balance=normal_balance,
        description=data.get("description"),
    )


def parse_chart_template(data: dict[str, Any]) -> ChartTemplate:
    """
    Parse a chart mapping with an ``accounts`` list.

    Raises:
        ValueError: on duplicate codes or a parent_code that names no
            account in the template.
    """
    accounts = tuple(parse_account_template(a) for a in data.get("accounts", []))
    seen: set[str] = set()
    for account in accounts:
        if account.code in seen:
            raise ValueError(f"Duplicate account code in chart: {account.code}")
        seen.add(account.code)
    for account in accounts:
        if account.parent_code and account.parent_code not in seen:
            raise ValueError(
                f"Account {account.code} names unknown parent_code "
                f"{account.parent_code}"
            )
    return ChartTemplate(accounts=accounts)


def load_settings(path: str | Path | None = None) -> LedgerSettings:
    return parse_settings(load_yaml_file(resolve_config_path(SETTINGS_FILE, path)))


def load_chart_template(path: str | Path | None = None) -> ChartTemplate:
    return parse_chart_template(load_yaml_file(resolve_config_path(CHART_FILE, path)))


def compute_checksum(settings: LedgerSettings, chart: ChartTemplate) -> str:
    """
    Deterministic SHA-256 of a settings/chart pair.

    Identical configuration always yields the identical checksum, so a log
    line carrying it identifies the configuration in force.
    """
    payload = {
        "settings": {
            "balance_tolerance": str(settings.balance_tolerance),
            "entry_number_prefix": settings.entry_number_prefix,
            "opening_balance_offset_code": settings.opening_balance_offset_code,
            "override_roles": list(settings.override_roles),
            "lock_roles": list(settings.lock_roles),
            "currency": settings.currency,
        },
        "chart": [
            [a.code, a.name, a.account_type, a.category, a.parent_code, a.normal_balance]
            for a in chart.accounts
        ],
    }
    encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
