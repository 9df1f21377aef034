"""
Tests for AccountRegistry role resolution.

Accounts are resolved by their explicit ``role`` tag, never by name.
"""

from uuid import uuid4

import pytest

from fbms_kernel.domain.accounts import Account, AccountNotFound, AccountRole, AccountType
from fbms_kernel.exceptions import DuplicateAccountRoleError
from fbms_kernel.services.account_registry import AccountRegistry


def _account(code, name, role=None, account_type=AccountType.ASSET, is_active=True):
    return Account(
        id=uuid4(),
        code=code,
        name=name,
        account_type=account_type,
        role=role,
        is_active=is_active,
    )


class TestResolve:

    def test_resolves_by_role_not_name(self):
        cash = _account("1000", "Petty Cash Drawer", AccountRole.CASH)
        decoy = _account("1010", "Cash in Bank")
        registry = AccountRegistry([cash, decoy])

        assert registry.resolve(AccountRole.CASH) == cash

    def test_missing_role_returns_falsy_not_found(self):
        registry = AccountRegistry([_account("1000", "Cash", AccountRole.CASH)])

        result = registry.resolve(AccountRole.SALES_REVENUE)

        assert isinstance(result, AccountNotFound)
        assert not result
        assert result.role is AccountRole.SALES_REVENUE

    def test_inactive_account_is_not_resolved(self):
        registry = AccountRegistry(
            [_account("1000", "Cash", AccountRole.CASH, is_active=False)]
        )
        assert not registry.resolve(AccountRole.CASH)

    def test_inactive_duplicate_does_not_conflict(self):
        active = _account("1000", "Cash", AccountRole.CASH)
        retired = _account("1001", "Old Cash", AccountRole.CASH, is_active=False)
        registry = AccountRegistry([active, retired])
        assert registry.resolve(AccountRole.CASH) == active

    def test_two_active_accounts_for_one_role_rejected(self):
        with pytest.raises(DuplicateAccountRoleError) as exc_info:
            AccountRegistry([
                _account("1000", "Cash", AccountRole.CASH),
                _account("1001", "Cash 2", AccountRole.CASH),
            ])
        assert exc_info.value.account_codes == ["1000", "1001"]


class TestResolveMany:

    def test_reports_every_missing_role(self):
        registry = AccountRegistry([_account("1000", "Cash", AccountRole.CASH)])

        resolution = registry.resolve_many(
            [AccountRole.CASH, AccountRole.SALES_REVENUE, AccountRole.VAT_PAYABLE]
        )

        assert not resolution.is_complete
        assert resolution.missing == (AccountRole.SALES_REVENUE, AccountRole.VAT_PAYABLE)
        assert resolution[AccountRole.CASH].code == "1000"


class TestRefresh:

    def test_refresh_reloads_from_source(self):
        accounts = [_account("1000", "Cash", AccountRole.CASH)]

        class Source:
            def load_accounts(self):
                return list(accounts)

        registry = AccountRegistry.from_repository(Source())
        assert not registry.resolve(AccountRole.INVENTORY)

        accounts.append(_account("1200", "Inventory", AccountRole.INVENTORY))
        registry.refresh()

        assert registry.resolve(AccountRole.INVENTORY).code == "1200"

    def test_refresh_without_source_raises(self):
        with pytest.raises(ValueError):
            AccountRegistry([]).refresh()
