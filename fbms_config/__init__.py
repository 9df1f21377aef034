"""
fbms_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``, and seeds the chart of accounts from it.

Architecture position:
    Configuration.  Sits above ``fbms_kernel`` and below ``fbms_services``.
    The kernel and the modules never import from ``fbms_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ValueError`` -- schema or structural validation failed.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``FBMS_CONFIG_TRACE`` log entry with the config id, version and
    SHA-256 checksum, tying postings back to the configuration in force.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence
from uuid import UUID, uuid5

from fbms_config.loader import load_config
from fbms_config.schema import AccountSeed, LedgerConfig, LedgerSettings
from fbms_kernel.domain.accounts import Account
from fbms_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "ph_retail.yaml"

# Actor recorded on rows written by setup and maintenance tasks
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")

# Namespace for deterministic account ids derived from account codes
_ACCOUNT_NAMESPACE = UUID("5b0c3f0e-7a44-4d8e-9a57-2f6b1c0d9e11")


def get_active_config(path: Path | None = None) -> LedgerConfig:
    """Load, validate and trace the configuration set.

    Args:
        path: Override for the YAML file.  Defaults to
            ``fbms_config/sets/ph_retail.yaml``.
    """
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(config_path)

    logger.info(
        "FBMS_CONFIG_TRACE",
        extra={
            "trace_type": "FBMS_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "currency": config.settings.currency,
            "vat_rate": str(config.settings.vat_rate),
            "account_count": len(config.accounts),
        },
    )
    return config


class _AccountWriter(Protocol):
    def load_accounts(self) -> Sequence[Account]: ...

    def save_account(self, account: Account, actor_id: UUID) -> Account: ...


def account_id_for(code: str) -> UUID:
    """Stable account id for an account code."""
    return uuid5(_ACCOUNT_NAMESPACE, code)


def seed_chart_of_accounts(
    repo: _AccountWriter,
    config: LedgerConfig,
    actor_id: UUID = SYSTEM_ACTOR_ID,
) -> list[Account]:
    """Write every configured account whose code is not yet in the store.

    Existing accounts are left untouched.  Returns the accounts created.
    """
    existing = {account.code for account in repo.load_accounts()}
    created: list[Account] = []
    for seed in config.accounts:
        if seed.code in existing:
            continue
        account = repo.save_account(
            Account(
                id=account_id_for(seed.code),
                code=seed.code,
                name=seed.name,
                account_type=seed.account_type,
                role=seed.role,
                is_active=seed.is_active,
            ),
            actor_id,
        )
        created.append(account)

    logger.info(
        "chart_of_accounts_seeded",
        extra={
            "config_set_id": config.config_id,
            "created_count": len(created),
            "skipped_count": len(config.accounts) - len(created),
        },
    )
    return created


__all__ = [
    "AccountSeed",
    "LedgerConfig",
    "LedgerSettings",
    "SYSTEM_ACTOR_ID",
    "account_id_for",
    "get_active_config",
    "seed_chart_of_accounts",
]
