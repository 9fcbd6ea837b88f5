"""
Ledger Settings (``ledger_kernel.config``).

Responsibility
--------------
Loads the posting policy knobs from a YAML file into a frozen
``LedgerSettings`` dataclass.  Services receive a ``LedgerSettings`` instance
through their constructors; nothing else in the kernel reads configuration
files or environment variables.

Lookup order
------------
1. Explicit ``path`` argument to ``load_settings()``.
2. ``LEDGER_KERNEL_CONFIG`` environment variable.
3. Built-in defaults (``LedgerSettings()``).

``DATABASE_URL`` in the environment always overrides ``database_url``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys, bad rounding mode, negative tolerance, unknown currency
  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.values import ROUNDING_MODES
from ledger_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "LEDGER_KERNEL_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"

_DEFAULT_PREFIXES = MappingProxyType(
    {
        "manual_journal": "JE",
        "expense": "EXP",
        "reversal": "REV",
    }
)


@dataclass(frozen=True)
class LedgerSettings:
    """
    Posting policy for the ledger kernel.

    Attributes:
        balance_tolerance: Debits and credits balance when their absolute
            difference is strictly below this value.
        amount_decimal_places: Minor-unit precision amounts are rounded to.
        rounding_mode: "half_up" or "half_even".
        default_currency: Currency assumed when a document omits one.
        control_account_tags: Account tags that make an account a control
            account regardless of its allow_manual_journal flag.
        number_prefixes: transaction_number prefix per source type value.
        number_width: Zero-padded width of the numeric part.
        database_url: SQLAlchemy URL handed to init_engine_from_url().
    """

    balance_tolerance: Decimal = Decimal("0.01")
    amount_decimal_places: int = 2
    rounding_mode: str = "half_up"
    default_currency: str = "USD"
    control_account_tags: frozenset[str] = frozenset(
        {"accounts_receivable", "accounts_payable", "inventory"}
    )
    number_prefixes: Mapping[str, str] = field(default_factory=lambda: _DEFAULT_PREFIXES)
    number_width: int = 6
    database_url: str | None = None

    def __post_init__(self) -> None:
        if self.balance_tolerance <= 0:
            raise ValueError("balance_tolerance must be positive")
        if not 0 <= self.amount_decimal_places <= 9:
            raise ValueError("amount_decimal_places must be between 0 and 9")
        if self.rounding_mode not in ROUNDING_MODES:
            raise ValueError(
                f"rounding_mode must be one of {sorted(ROUNDING_MODES)}, "
                f"got {self.rounding_mode!r}"
            )
        if self.number_width < 1:
            raise ValueError("number_width must be at least 1")
        object.__setattr__(self, "default_currency", validate_currency(self.default_currency))

    @property
    def decimal_rounding(self) -> str:
        """The decimal module constant for rounding_mode."""
        return ROUNDING_MODES[self.rounding_mode]

    def prefix_for(self, source_type: str) -> str:
        """Number prefix for a source type value (falls back to 'TX')."""
        return self.number_prefixes.get(source_type, "TX")


def _parse_decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{key} must be a decimal number, got {value!r}") from None


def parse_settings(data: Mapping[str, Any]) -> LedgerSettings:
    """
    Build ``LedgerSettings`` from a parsed YAML mapping.

    Raises:
        ValueError: On unknown keys or invalid values.
    """
    known = {f.name for f in fields(LedgerSettings)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown ledger settings: {sorted(unknown)}")

    kwargs: dict[str, Any] = dict(data)
    if "balance_tolerance" in kwargs:
        kwargs["balance_tolerance"] = _parse_decimal(
            kwargs["balance_tolerance"], "balance_tolerance"
        )
    if "control_account_tags" in kwargs:
        kwargs["control_account_tags"] = frozenset(kwargs["control_account_tags"] or ())
    if "number_prefixes" in kwargs:
        merged = dict(_DEFAULT_PREFIXES)
        merged.update(kwargs["number_prefixes"] or {})
        kwargs["number_prefixes"] = MappingProxyType(merged)
    return LedgerSettings(**kwargs)


def load_settings(path: str | Path | None = None) -> LedgerSettings:
    """
    Load ledger settings from YAML, the environment, or defaults.

    Args:
        path: Optional YAML file path.  Falls back to ``LEDGER_KERNEL_CONFIG``.

    Returns:
        A validated, frozen ``LedgerSettings``.
    """
    source = path or os.environ.get(CONFIG_ENV_VAR)
    data: dict[str, Any] = {}
    if source:
        with open(source) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {source} must contain a mapping")

    env_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if env_url:
        data["database_url"] = env_url

    settings = parse_settings(data)
    logger.info(
        "settings_loaded",
        extra={
            "source": str(source) if source else "defaults",
            "balance_tolerance": settings.balance_tolerance,
            "rounding_mode": settings.rounding_mode,
            "default_currency": settings.default_currency,
        },
    )
    return settings
