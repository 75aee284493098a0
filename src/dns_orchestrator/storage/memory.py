"""In-memory storage adapters, for tests and embedding."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from dns_orchestrator.errors import AccountNotFoundError
from dns_orchestrator.storage.base import (
    AccountRepository,
    CredentialStore,
    decode_credentials_blob,
    encode_credentials_blob,
)

if TYPE_CHECKING:
    from dns_orchestrator.accounts import Account, AccountStatus
    from dns_orchestrator.storage.base import CredentialsMap


class InMemoryAccountRepository(AccountRepository):
    """Accounts kept in a dict, in insertion order."""

    def __init__(self, accounts: list[Account] | None = None) -> None:
        self._accounts: dict[str, Account] = {a.id: a for a in accounts or []}
        self._lock = asyncio.Lock()

    async def find_all(self) -> list[Account]:
        return [a.model_copy() for a in self._accounts.values()]

    async def find_by_id(self, account_id: str) -> Account | None:
        account = self._accounts.get(account_id)
        return account.model_copy() if account is not None else None

    async def save(self, account: Account) -> None:
        async with self._lock:
            self._accounts[account.id] = account.model_copy()

    async def save_all(self, accounts: list[Account]) -> None:
        async with self._lock:
            for account in accounts:
                self._accounts[account.id] = account.model_copy()

    async def delete(self, account_id: str) -> None:
        async with self._lock:
            self._accounts.pop(account_id, None)

    async def update_status(
        self,
        account_id: str,
        status: AccountStatus,
        error: str | None = None,
    ) -> None:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            self._accounts[account_id] = account.model_copy(
                update={"status": status, "error": error},
            )


class InMemoryCredentialStore(CredentialStore):
    """
    Credentials kept as a JSON blob in memory.

    Storing the serialized blob (rather than objects) lets a store be seeded
    with legacy data to exercise migration.
    """

    def __init__(self, raw_json: str = "") -> None:
        self._raw = raw_json
        self._lock = asyncio.Lock()

    async def load_all(self) -> CredentialsMap:
        return decode_credentials_blob(self._raw)

    async def save_all(self, credentials: CredentialsMap) -> None:
        async with self._lock:
            self._raw = encode_credentials_blob(credentials)

    async def load_raw_json(self) -> str:
        return self._raw

    async def save_raw_json(self, raw: str) -> None:
        async with self._lock:
            self._raw = raw
