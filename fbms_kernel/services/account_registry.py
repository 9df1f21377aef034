"""
AccountRegistry -- role-to-account resolution for the chart of accounts.

Responsibility:
    Indexes the active accounts of the chart by ``AccountRole`` and answers
    ``resolve(role)`` with the single active account for that role, or an
    explicit ``AccountNotFound``.

Architecture position:
    Kernel > Services.  Reads accounts through any object with a
    ``load_accounts()`` method; never imports the repository implementation.

Invariants enforced:
    - At most one active account per role.  A chart that violates this
      raises ``DuplicateAccountRoleError`` at load time, never at posting
      time.
    - Resolution is by role only; display names play no part.

Failure modes:
    - DuplicateAccountRoleError: configuration error, caught at setup.
    - A missing role is NOT an error: ``resolve`` returns AccountNotFound.
"""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from fbms_kernel.domain.accounts import Account, AccountNotFound, AccountRole, RoleResolution
from fbms_kernel.exceptions import DuplicateAccountRoleError
from fbms_kernel.logging_config import get_logger

logger = get_logger("services.account_registry")


class AccountSource(Protocol):
    """Anything that can list the chart of accounts."""

    def load_accounts(self) -> Sequence[Account]: ...


def _index_by_role(accounts: Iterable[Account]) -> dict[AccountRole, Account]:
    by_role: dict[AccountRole, list[Account]] = {}
    for account in accounts:
        if account.role is None or not account.is_active:
            continue
        by_role.setdefault(account.role, []).append(account)

    index: dict[AccountRole, Account] = {}
    for role, bound in by_role.items():
        if len(bound) > 1:
            raise DuplicateAccountRoleError(
                role=role.value,
                account_codes=sorted(a.code for a in bound),
            )
        index[role] = bound[0]
    return index


class AccountRegistry:
    """
    In-memory role index over a chart of accounts.

    Build it directly from a list of accounts, or with ``from_repository``
    so that ``refresh()`` can reload after the chart changes.
    """

    def __init__(
        self,
        accounts: Iterable[Account],
        source: AccountSource | None = None,
    ):
        self._source = source
        self._by_role = _index_by_role(accounts)
        logger.debug(
            "account_registry_loaded",
            extra={"roles": sorted(r.value for r in self._by_role)},
        )

    @classmethod
    def from_repository(cls, source: AccountSource) -> AccountRegistry:
        return cls(source.load_accounts(), source=source)

    def refresh(self) -> None:
        """Reload the chart from the source it was built from."""
        if self._source is None:
            raise ValueError("AccountRegistry was not built from a repository")
        self._by_role = _index_by_role(self._source.load_accounts())

    def resolve(self, role: AccountRole) -> Account | AccountNotFound:
        account = self._by_role.get(role)
        if account is None:
            return AccountNotFound(role)
        return account

    def resolve_many(self, roles: Iterable[AccountRole]) -> RoleResolution:
        """Resolve several roles; missing ones are listed, never raised."""
        found: dict[AccountRole, Account] = {}
        missing: list[AccountRole] = []
        for role in roles:
            result = self.resolve(role)
            if isinstance(result, AccountNotFound):
                if role not in missing:
                    missing.append(role)
            else:
                found[role] = result
        return RoleResolution(accounts=found, missing=tuple(missing))

    @property
    def roles(self) -> frozenset[AccountRole]:
        return frozenset(self._by_role)
