"""
Persistence contracts.

The services depend only on `AccountRepository` and `CredentialStore`;
adapters (in-memory, JSON file, SQLite) implement them.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from dns_orchestrator.credentials import ProviderCredentials
from dns_orchestrator.errors import MigrationRequiredError, StorageError

if TYPE_CHECKING:
    from dns_orchestrator.accounts import Account, AccountStatus


CredentialsMap = dict[str, ProviderCredentials]

credentials_map_adapter: TypeAdapter[CredentialsMap] = TypeAdapter(CredentialsMap)
legacy_map_adapter: TypeAdapter[dict[str, dict[str, str]]] = TypeAdapter(
    dict[str, dict[str, str]],
)


logger = logging.getLogger(__name__)


def decode_credentials_blob(raw: str) -> CredentialsMap:
    """
    Decode a stored credentials blob.

    Parameters
    ----------
    raw : str
        JSON object mapping account IDs to tagged credentials. An empty
        string is an empty mapping.

    Returns
    -------
    CredentialsMap
        The typed credentials.

    Raises
    ------
    MigrationRequiredError
        If the blob is in the legacy untyped ``{id: {field: value}}`` shape.
    StorageError
        If the blob is neither shape.
    """
    if not raw.strip():
        return {}
    try:
        return credentials_map_adapter.validate_json(raw)
    except ValidationError as e:
        try:
            legacy_map_adapter.validate_json(raw)
        except ValidationError:
            raise StorageError(f"Invalid credentials data: {e}") from e
        logger.info("Stored credentials use the legacy format")
        raise MigrationRequiredError from e


def encode_credentials_blob(credentials: CredentialsMap) -> str:
    """Serialize credentials in the tagged form."""
    return json.dumps(
        {
            account_id: creds.model_dump(by_alias=True)
            for account_id, creds in credentials.items()
        },
        indent=2,
    )


class AccountRepository(ABC):
    """Persistence of `Account` metadata."""

    @abstractmethod
    async def find_all(self) -> list[Account]:
        """Get every account."""
        ...

    @abstractmethod
    async def find_by_id(self, account_id: str) -> Account | None:
        """Get one account."""
        ...

    @abstractmethod
    async def save(self, account: Account) -> None:
        """Insert or replace an account."""
        ...

    @abstractmethod
    async def save_all(self, accounts: list[Account]) -> None:
        """Insert or replace several accounts."""
        ...

    @abstractmethod
    async def delete(self, account_id: str) -> None:
        """Delete an account; deleting a missing ID is not an error."""
        ...

    @abstractmethod
    async def update_status(
        self,
        account_id: str,
        status: AccountStatus,
        error: str | None = None,
    ) -> None:
        """
        Set an account's status and error message.

        Raises
        ------
        AccountNotFoundError
            If the account does not exist.
        """
        ...


class CredentialStore(ABC):
    """
    Persistence of `ProviderCredentials` by account ID.

    `get`, `set` and `remove` default to read-modify-write over the whole
    mapping; adapters with row-level storage override them.
    """

    @abstractmethod
    async def load_all(self) -> CredentialsMap:
        """
        Load every stored credential.

        Raises
        ------
        MigrationRequiredError
            If the stored data is in the legacy format.
        """
        ...

    @abstractmethod
    async def save_all(self, credentials: CredentialsMap) -> None:
        """Replace the whole mapping."""
        ...

    @abstractmethod
    async def load_raw_json(self) -> str:
        """Get the stored data verbatim, for migration."""
        ...

    @abstractmethod
    async def save_raw_json(self, raw: str) -> None:
        """Replace the stored data verbatim, for migration rollback."""
        ...

    async def get(self, account_id: str) -> ProviderCredentials | None:
        return (await self.load_all()).get(account_id)

    async def set(self, account_id: str, credentials: ProviderCredentials) -> None:
        all_credentials = await self.load_all()
        all_credentials[account_id] = credentials
        await self.save_all(all_credentials)

    async def remove(self, account_id: str) -> None:
        all_credentials = await self.load_all()
        if all_credentials.pop(account_id, None) is not None:
            await self.save_all(all_credentials)
