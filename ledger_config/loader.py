"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Reads ``settings.yaml``, ``vat_types.yaml`` and ``chart_of_accounts.yaml``
from a configuration directory and parses them into the frozen dataclasses
of ``ledger_config.schema``.  Defaults ship in ``ledger_config/defaults/``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    AccountDef,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    PostingSettings,
    VatTypeDef,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULTS_DIR = Path(__file__).parent / "defaults"

SETTINGS_FILE = "settings.yaml"
VAT_TYPES_FILE = "vat_types.yaml"
CHART_FILE = "chart_of_accounts.yaml"

_VAT_DIRECTIONS = frozenset({"output", "input", "none"})
_PERIOD_POLICIES = frozenset({"open", "closed"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _decimal(value: Any, key: str) -> Decimal:
    # YAML floats are read through str() so 0.25 stays exactly 0.25
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a decimal: {value!r}") from exc


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", defaults.pool_timeout)),
        lock_timeout_seconds=float(
            data.get("lock_timeout_seconds", defaults.lock_timeout_seconds)
        ),
    )


def parse_posting(data: dict[str, Any]) -> PostingSettings:
    defaults = PostingSettings()
    policy = str(data.get("missing_period_policy", defaults.missing_period_policy)).lower()
    if policy not in _PERIOD_POLICIES:
        raise ValueError(
            f"posting.missing_period_policy: expected one of {sorted(_PERIOD_POLICIES)}, got {policy!r}"
        )
    vat_accounts = data.get("vat_accounts", {}) or {}
    return PostingSettings(
        numbering_max_retries=int(
            data.get("numbering_max_retries", defaults.numbering_max_retries)
        ),
        retry_backoff_seconds=float(
            data.get("retry_backoff_seconds", defaults.retry_backoff_seconds)
        ),
        balance_epsilon=_decimal(
            data.get("balance_epsilon", defaults.balance_epsilon), "posting.balance_epsilon"
        ),
        missing_period_policy=policy,
        default_currency=str(data.get("default_currency", defaults.default_currency)).upper(),
        output_vat_account=str(vat_accounts.get("output", defaults.output_vat_account)),
        input_vat_account=str(vat_accounts.get("input", defaults.input_vat_account)),
    )


def parse_vat_type(data: dict[str, Any]) -> VatTypeDef:
    code = str(data["code"])
    direction = str(data["direction"]).lower()
    if direction not in _VAT_DIRECTIONS:
        raise ValueError(f"vat_types[{code}].direction: invalid value {direction!r}")
    rate = _decimal(data["rate"], f"vat_types[{code}].rate")
    if not (Decimal("0") <= rate <= Decimal("1")):
        raise ValueError(f"vat_types[{code}].rate: must be between 0 and 1, got {rate}")
    return VatTypeDef(code=code, name=str(data["name"]), rate=rate, direction=direction)


def parse_account(data: dict[str, Any]) -> AccountDef:
    vat_code = data.get("vat_code")
    return AccountDef(
        number=str(data["number"]),
        name=str(data["name"]),
        vat_code=str(vat_code) if vat_code is not None else None,
    )


def compute_checksum(*documents: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON of the raw YAML documents."""
    canonical = json.dumps(documents, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_config(config_dir: Path | str | None = None) -> LedgerSettings:
    """
    Load the ledger configuration from ``config_dir``.

    Args:
        config_dir: Directory holding the three YAML files.  Defaults to
            the shipped ``ledger_config/defaults``.

    Raises:
        FileNotFoundError, yaml.YAMLError, KeyError, ValueError.
    """
    base = Path(config_dir) if config_dir is not None else DEFAULTS_DIR

    settings_doc = load_yaml_file(base / SETTINGS_FILE)
    vat_doc = load_yaml_file(base / VAT_TYPES_FILE)
    chart_doc = load_yaml_file(base / CHART_FILE)

    vat_types = tuple(parse_vat_type(v) for v in vat_doc.get("vat_types", []) or [])
    codes = [v.code for v in vat_types]
    if len(codes) != len(set(codes)):
        raise ValueError("vat_types: duplicate codes")

    chart = tuple(parse_account(a) for a in chart_doc.get("accounts", []) or [])
    numbers = [a.number for a in chart]
    if len(numbers) != len(set(numbers)):
        raise ValueError("chart_of_accounts: duplicate account numbers")
    unknown = sorted({a.vat_code for a in chart if a.vat_code is not None} - set(codes))
    if unknown:
        raise ValueError(f"chart_of_accounts: unknown VAT codes {unknown}")

    config = LedgerSettings(
        database=parse_database(settings_doc.get("database", {}) or {}),
        posting=parse_posting(settings_doc.get("posting", {}) or {}),
        logging=LoggingSettings(
            level=str((settings_doc.get("logging", {}) or {}).get("level", "INFO")).upper()
        ),
        vat_types=vat_types,
        chart_of_accounts=chart,
        checksum=compute_checksum(settings_doc, vat_doc, chart_doc),
    )
    logger.info(
        "config_loaded",
        extra={
            "config_dir": str(base),
            "checksum": config.checksum,
            "vat_type_count": len(vat_types),
            "account_count": len(chart),
        },
    )
    return config
