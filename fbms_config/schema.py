"""
Ledger configuration schema.

Frozen dataclasses parsed from YAML by ``fbms_config.loader``:

  LedgerSettings  = runtime knobs (VAT, stock policy, retries, timeouts)
  AccountSeed     = one chart-of-accounts row with its posting role
  LedgerConfig    = the complete configuration set
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from fbms_kernel.domain.accounts import AccountRole, AccountType
from fbms_kernel.domain.postings import DEFAULT_PAYMENT_ROLES


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger services."""

    currency: str = "PHP"
    vat_rate: Decimal = Decimal("0.12")
    allow_negative_stock: bool = False
    default_min_stock: int = 0
    significant_cost_variance_pct: Decimal = Decimal("10")
    max_conflict_retries: int = 3
    read_retries: int = 2
    retry_backoff_seconds: float = 0.05
    repository_timeout_seconds: float = 5.0
    payment_roles: dict[str, AccountRole] = field(
        default_factory=lambda: dict(DEFAULT_PAYMENT_ROLES)
    )

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.vat_rate < Decimal("1"):
            raise ValueError(f"vat_rate must be in [0, 1), got {self.vat_rate}")
        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        if self.significant_cost_variance_pct < 0:
            raise ValueError("significant_cost_variance_pct cannot be negative")
        if self.read_retries < 0:
            raise ValueError("read_retries cannot be negative")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")
        if self.repository_timeout_seconds <= 0:
            raise ValueError("repository_timeout_seconds must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerSettings:
        defaults = cls()
        payment_roles = data.get("payment_roles")
        return cls(
            currency=data.get("currency", defaults.currency),
            vat_rate=Decimal(str(data.get("vat_rate", defaults.vat_rate))),
            allow_negative_stock=bool(
                data.get("allow_negative_stock", defaults.allow_negative_stock)
            ),
            default_min_stock=int(data.get("default_min_stock", defaults.default_min_stock)),
            significant_cost_variance_pct=Decimal(str(
                data.get("significant_cost_variance_pct", defaults.significant_cost_variance_pct)
            )),
            max_conflict_retries=int(
                data.get("max_conflict_retries", defaults.max_conflict_retries)
            ),
            read_retries=int(data.get("read_retries", defaults.read_retries)),
            retry_backoff_seconds=float(
                data.get("retry_backoff_seconds", defaults.retry_backoff_seconds)
            ),
            repository_timeout_seconds=float(
                data.get("repository_timeout_seconds", defaults.repository_timeout_seconds)
            ),
            payment_roles=(
                {method: AccountRole(role) for method, role in payment_roles.items()}
                if payment_roles
                else dict(defaults.payment_roles)
            ),
        )


@dataclass(frozen=True)
class AccountSeed:
    """A chart-of-accounts row as written in YAML."""

    code: str
    name: str
    account_type: AccountType
    role: AccountRole | None = None
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountSeed:
        role = data.get("role")
        return cls(
            code=str(data["code"]),
            name=data["name"],
            account_type=AccountType(data["type"]),
            role=AccountRole(role) if role else None,
            is_active=data.get("is_active", True),
        )


@dataclass(frozen=True)
class LedgerConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    settings: LedgerSettings
    accounts: tuple[AccountSeed, ...]
    checksum: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], checksum: str = "") -> LedgerConfig:
        return cls(
            config_id=data["config_id"],
            version=int(data.get("version", 1)),
            settings=LedgerSettings.from_dict(data.get("settings") or {}),
            accounts=tuple(AccountSeed.from_dict(a) for a in data.get("accounts", [])),
            checksum=checksum,
        )

    def account_for(self, role: AccountRole) -> AccountSeed | None:
        for seed in self.accounts:
            if seed.role is role and seed.is_active:
                return seed
        return None
