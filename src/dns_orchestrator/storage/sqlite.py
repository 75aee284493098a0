"""
SQLite credential store.

Each row holds one account's tagged credentials JSON, encrypted with
AES-256-GCM under a key derived from the store password (fresh salt and
nonce per row).
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import closing
from typing import TYPE_CHECKING

from pydantic import ValidationError

from dns_orchestrator import crypto
from dns_orchestrator.credentials import parse_credentials
from dns_orchestrator.errors import CredentialError, DecryptionError, StorageError
from dns_orchestrator.storage.base import (
    CredentialStore,
    decode_credentials_blob,
    encode_credentials_blob,
)

if TYPE_CHECKING:
    from pathlib import Path

    from dns_orchestrator.credentials import ProviderCredentials
    from dns_orchestrator.storage.base import CredentialsMap


SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
    account_id TEXT PRIMARY KEY,
    salt TEXT NOT NULL,
    nonce TEXT NOT NULL,
    ciphertext TEXT NOT NULL
)
"""

Row = tuple[str, str, str, str]


logger = logging.getLogger(__name__)


class SqliteCredentialStore(CredentialStore):
    """
    Encrypted per-row credential storage.

    Parameters
    ----------
    path : Path
        SQLite database file; created on first use.
    password : str | None
        Encryption password. Every operation raises `CredentialError`
        while it is not configured.
    """

    def __init__(self, path: Path, password: str | None) -> None:
        self.path = path
        self._password = password
        self._lock = asyncio.Lock()

    def _get_password(self) -> str:
        if not self._password:
            raise CredentialError("Encryption password not configured for SqliteCredentialStore")
        return self._password

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.execute(SCHEMA)
        return conn

    def _execute(self, sql: str, params: tuple[str, ...] = ()) -> list[Row]:
        try:
            with closing(self._connect()) as conn, conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"SQLite error: {e}") from e

    def _replace_all(self, rows: list[Row]) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM credentials")
                conn.executemany(
                    "INSERT INTO credentials (account_id, salt, nonce, ciphertext) "
                    "VALUES (?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            raise StorageError(f"SQLite error: {e}") from e

    def _encrypt(self, account_id: str, credentials: ProviderCredentials) -> Row:
        plaintext = json.dumps(credentials.model_dump(by_alias=True)).encode("utf-8")
        salt, nonce, ciphertext = crypto.encrypt(plaintext, self._get_password())
        return account_id, salt, nonce, ciphertext

    def _decrypt(self, row: Row) -> ProviderCredentials:
        _, salt, nonce, ciphertext = row
        plaintext = crypto.decrypt(ciphertext, self._get_password(), salt, nonce)
        try:
            return parse_credentials(json.loads(plaintext))
        except (ValueError, ValidationError) as e:
            raise StorageError(f"Invalid credentials JSON: {e}") from e

    async def load_all(self) -> CredentialsMap:
        """
        Load and decrypt every row.

        Rows that fail to decrypt or parse are logged and skipped.
        """
        self._get_password()
        rows = await asyncio.to_thread(
            self._execute,
            "SELECT account_id, salt, nonce, ciphertext FROM credentials",
        )

        result: CredentialsMap = {}
        for row in rows:
            try:
                result[row[0]] = await asyncio.to_thread(self._decrypt, row)
            except (DecryptionError, StorageError) as e:
                logger.warning("Failed to decrypt credentials for account %s: %s", row[0], e)
        return result

    async def save_all(self, credentials: CredentialsMap) -> None:
        rows = [
            await asyncio.to_thread(self._encrypt, account_id, creds)
            for account_id, creds in credentials.items()
        ]
        async with self._lock:
            await asyncio.to_thread(self._replace_all, rows)
        logger.info("Saved %d credentials to SQLite", len(rows))

    async def get(self, account_id: str) -> ProviderCredentials | None:
        self._get_password()
        rows = await asyncio.to_thread(
            self._execute,
            "SELECT account_id, salt, nonce, ciphertext FROM credentials WHERE account_id = ?",
            (account_id,),
        )
        if not rows:
            return None
        return await asyncio.to_thread(self._decrypt, rows[0])

    async def set(self, account_id: str, credentials: ProviderCredentials) -> None:
        row = await asyncio.to_thread(self._encrypt, account_id, credentials)
        async with self._lock:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO credentials (account_id, salt, nonce, ciphertext) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(account_id) DO UPDATE SET "
                "salt = excluded.salt, nonce = excluded.nonce, ciphertext = excluded.ciphertext",
                row,
            )
        logger.info("Credentials saved for account: %s", account_id)

    async def remove(self, account_id: str) -> None:
        async with self._lock:
            await asyncio.to_thread(
                self._execute,
                "DELETE FROM credentials WHERE account_id = ?",
                (account_id,),
            )
        logger.info("Credentials deleted for account: %s", account_id)

    async def load_raw_json(self) -> str:
        return encode_credentials_blob(await self.load_all())

    async def save_raw_json(self, raw: str) -> None:
        await self.save_all(decode_credentials_blob(raw))
