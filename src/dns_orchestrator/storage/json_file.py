"""
JSON file storage adapters.

Accounts live in ``accounts.json`` (a JSON array) and credentials in
``credentials.json`` (one tagged JSON object). Writes go to a temporary
file that replaces the target, so a crash never leaves a truncated file.
File IO runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from dns_orchestrator.accounts import Account
from dns_orchestrator.errors import AccountNotFoundError, StorageError
from dns_orchestrator.storage.base import (
    AccountRepository,
    CredentialStore,
    decode_credentials_blob,
    encode_credentials_blob,
)

if TYPE_CHECKING:
    from dns_orchestrator.accounts import AccountStatus
    from dns_orchestrator.credentials import ProviderCredentials
    from dns_orchestrator.storage.base import CredentialsMap


ACCOUNTS_FILENAME = "accounts.json"
CREDENTIALS_FILENAME = "credentials.json"

accounts_adapter: TypeAdapter[list[Account]] = TypeAdapter(list[Account])


logger = logging.getLogger(__name__)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    except OSError as e:
        raise StorageError(f"Cannot read '{path}': {e}") from e


def _write_text_atomic(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise StorageError(f"Cannot write '{path}': {e}") from e


class JsonAccountRepository(AccountRepository):
    """
    Accounts stored as a camelCase JSON array.

    Parameters
    ----------
    data_dir : Path
        Directory holding ``accounts.json``.
    """

    def __init__(self, data_dir: Path) -> None:
        self.path = data_dir / ACCOUNTS_FILENAME
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[str, Account]:
        text = await asyncio.to_thread(_read_text, self.path)
        if not text.strip():
            return {}
        try:
            accounts = accounts_adapter.validate_json(text)
        except ValidationError as e:
            raise StorageError(f"Invalid accounts file '{self.path}': {e}") from e
        return {a.id: a for a in accounts}

    async def _store(self, accounts: dict[str, Account]) -> None:
        text = json.dumps(
            [a.model_dump(mode="json", by_alias=True) for a in accounts.values()],
            indent=2,
            ensure_ascii=False,
        )
        await asyncio.to_thread(_write_text_atomic, self.path, text)

    async def find_all(self) -> list[Account]:
        return list((await self._load()).values())

    async def find_by_id(self, account_id: str) -> Account | None:
        return (await self._load()).get(account_id)

    async def save(self, account: Account) -> None:
        async with self._lock:
            accounts = await self._load()
            accounts[account.id] = account
            await self._store(accounts)

    async def save_all(self, accounts: list[Account]) -> None:
        async with self._lock:
            stored = await self._load()
            stored.update({a.id: a for a in accounts})
            await self._store(stored)

    async def delete(self, account_id: str) -> None:
        async with self._lock:
            accounts = await self._load()
            if accounts.pop(account_id, None) is not None:
                await self._store(accounts)

    async def update_status(
        self,
        account_id: str,
        status: AccountStatus,
        error: str | None = None,
    ) -> None:
        async with self._lock:
            accounts = await self._load()
            account = accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            accounts[account_id] = account.model_copy(update={"status": status, "error": error})
            await self._store(accounts)


class JsonCredentialStore(CredentialStore):
    """
    Credentials stored as one JSON object keyed by account ID.

    The file is plaintext and created with mode 0600; use
    `SqliteCredentialStore` for encryption at rest.

    Parameters
    ----------
    data_dir : Path
        Directory holding ``credentials.json``.
    """

    def __init__(self, data_dir: Path) -> None:
        self.path = data_dir / CREDENTIALS_FILENAME
        self._lock = asyncio.Lock()

    async def load_all(self) -> CredentialsMap:
        return decode_credentials_blob(await self.load_raw_json())

    async def save_all(self, credentials: CredentialsMap) -> None:
        async with self._lock:
            await self._write(encode_credentials_blob(credentials))
        logger.info("Saved %d credentials to %s", len(credentials), self.path)

    async def load_raw_json(self) -> str:
        return await asyncio.to_thread(_read_text, self.path)

    async def save_raw_json(self, raw: str) -> None:
        async with self._lock:
            await self._write(raw)

    async def set(self, account_id: str, credentials: ProviderCredentials) -> None:
        async with self._lock:
            all_credentials = await self.load_all()
            all_credentials[account_id] = credentials
            await self._write(encode_credentials_blob(all_credentials))
        logger.info("Credentials saved for account: %s", account_id)

    async def remove(self, account_id: str) -> None:
        async with self._lock:
            all_credentials = await self.load_all()
            if all_credentials.pop(account_id, None) is None:
                return
            await self._write(encode_credentials_blob(all_credentials))
        logger.info("Credentials deleted for account: %s", account_id)

    async def _write(self, text: str) -> None:
        await asyncio.to_thread(_write_text_atomic, self.path, text)
