"""Tests for the storage adapters."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from dns_orchestrator.accounts import Account, AccountStatus
from dns_orchestrator.credentials import AliyunCredentials, CloudflareCredentials
from dns_orchestrator.errors import (
    AccountNotFoundError,
    CredentialError,
    MigrationRequiredError,
    StorageError,
)
from dns_orchestrator.models import ProviderType
from dns_orchestrator.storage.base import decode_credentials_blob, encode_credentials_blob
from dns_orchestrator.storage.json_file import JsonAccountRepository, JsonCredentialStore
from dns_orchestrator.storage.memory import InMemoryAccountRepository, InMemoryCredentialStore
from dns_orchestrator.storage.sqlite import SqliteCredentialStore

if TYPE_CHECKING:
    from pathlib import Path


NOW = datetime(2024, 1, 1, tzinfo=UTC)

LEGACY_BLOB = json.dumps({"acc-1": {"apiToken": "legacy"}})


def _account(account_id: str = "acc-1", name: str = "main") -> Account:
    return Account(
        id=account_id,
        name=name,
        provider=ProviderType.CLOUDFLARE,
        created_at=NOW,
        updated_at=NOW,
        status=AccountStatus.ACTIVE,
    )


class TestCredentialsBlob:
    """Tests for the tagged credentials blob."""

    def test_empty(self):
        assert decode_credentials_blob("") == {}
        assert decode_credentials_blob("  \n") == {}

    def test_round_trip(self):
        creds = {"acc-1": CloudflareCredentials(api_token="T")}
        assert decode_credentials_blob(encode_credentials_blob(creds)) == creds

    def test_tagged_form(self):
        blob = encode_credentials_blob({"acc-1": CloudflareCredentials(api_token="T")})
        assert json.loads(blob) == {
            "acc-1": {"provider": "cloudflare", "credentials": {"apiToken": "T"}},
        }

    def test_legacy_form_requires_migration(self):
        with pytest.raises(MigrationRequiredError):
            decode_credentials_blob(LEGACY_BLOB)

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"acc": 5}'])
    def test_garbage(self, raw: str):
        with pytest.raises(StorageError):
            decode_credentials_blob(raw)


class TestInMemoryAccountRepository:
    """Tests for InMemoryAccountRepository."""

    @pytest.mark.asyncio
    async def test_crud(self):
        repo = InMemoryAccountRepository()
        await repo.save(_account())
        await repo.save_all([_account("acc-2", "second")])
        assert [a.id for a in await repo.find_all()] == ["acc-1", "acc-2"]
        assert (await repo.find_by_id("acc-2")).name == "second"
        await repo.delete("acc-1")
        await repo.delete("missing")
        assert await repo.find_by_id("acc-1") is None

    @pytest.mark.asyncio
    async def test_update_status(self):
        repo = InMemoryAccountRepository([_account()])
        await repo.update_status("acc-1", AccountStatus.ERROR, "credentials invalid")
        account = await repo.find_by_id("acc-1")
        assert account.status == AccountStatus.ERROR
        assert account.error == "credentials invalid"

    @pytest.mark.asyncio
    async def test_update_status_missing(self):
        repo = InMemoryAccountRepository()
        with pytest.raises(AccountNotFoundError):
            await repo.update_status("nope", AccountStatus.ACTIVE)

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        repo = InMemoryAccountRepository([_account()])
        account = await repo.find_by_id("acc-1")
        account.name = "changed"
        assert (await repo.find_by_id("acc-1")).name == "main"


class TestInMemoryCredentialStore:
    """Tests for InMemoryCredentialStore and the default get/set/remove."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self):
        store = InMemoryCredentialStore()
        creds = AliyunCredentials(access_key_id="a", access_key_secret="b")
        await store.set("acc-1", creds)
        assert await store.get("acc-1") == creds
        await store.remove("acc-1")
        assert await store.get("acc-1") is None
        assert await store.load_all() == {}

    @pytest.mark.asyncio
    async def test_legacy_seed(self):
        store = InMemoryCredentialStore(LEGACY_BLOB)
        with pytest.raises(MigrationRequiredError):
            await store.load_all()
        assert await store.load_raw_json() == LEGACY_BLOB


class TestJsonAccountRepository:
    """Tests for JsonAccountRepository."""

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path: Path):
        assert await JsonAccountRepository(tmp_path).find_all() == []

    @pytest.mark.asyncio
    async def test_persists_camel_case(self, tmp_path: Path):
        repo = JsonAccountRepository(tmp_path / "nested")
        await repo.save(_account())
        data = json.loads((tmp_path / "nested" / "accounts.json").read_text(encoding="utf-8"))
        assert data[0]["createdAt"] == "2024-01-01T00:00:00+00:00"
        assert data[0]["provider"] == "cloudflare"

        reloaded = JsonAccountRepository(tmp_path / "nested")
        assert await reloaded.find_all() == [_account()]

    @pytest.mark.asyncio
    async def test_update_and_delete(self, tmp_path: Path):
        repo = JsonAccountRepository(tmp_path)
        await repo.save_all([_account("a"), _account("b")])
        await repo.update_status("b", AccountStatus.ERROR, "boom")
        await repo.delete("a")
        accounts = await repo.find_all()
        assert [(a.id, a.status) for a in accounts] == [("b", AccountStatus.ERROR)]
        with pytest.raises(AccountNotFoundError):
            await repo.update_status("a", AccountStatus.ACTIVE)

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path: Path):
        (tmp_path / "accounts.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(StorageError):
            await JsonAccountRepository(tmp_path).find_all()

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, tmp_path: Path):
        repo = JsonAccountRepository(tmp_path)
        await repo.save(_account())
        assert [p.name for p in tmp_path.iterdir()] == ["accounts.json"]


class TestJsonCredentialStore:
    """Tests for JsonCredentialStore."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self, tmp_path: Path):
        store = JsonCredentialStore(tmp_path)
        await store.set("acc-1", CloudflareCredentials(api_token="T"))
        await store.set("acc-2", AliyunCredentials(access_key_id="a", access_key_secret="b"))

        reloaded = JsonCredentialStore(tmp_path)
        assert await reloaded.get("acc-1") == CloudflareCredentials(api_token="T")
        await reloaded.remove("acc-1")
        assert list(await store.load_all()) == ["acc-2"]

    @pytest.mark.asyncio
    async def test_legacy_file(self, tmp_path: Path):
        (tmp_path / "credentials.json").write_text(LEGACY_BLOB, encoding="utf-8")
        store = JsonCredentialStore(tmp_path)
        with pytest.raises(MigrationRequiredError):
            await store.load_all()

    @pytest.mark.asyncio
    async def test_raw_json(self, tmp_path: Path):
        store = JsonCredentialStore(tmp_path)
        assert await store.load_raw_json() == ""
        await store.save_raw_json(LEGACY_BLOB)
        assert await store.load_raw_json() == LEGACY_BLOB


class TestSqliteCredentialStore:
    """Tests for SqliteCredentialStore (each encryption runs full PBKDF2)."""

    @pytest.mark.asyncio
    async def test_missing_password(self, tmp_path: Path):
        store = SqliteCredentialStore(tmp_path / "credentials.db", None)
        with pytest.raises(CredentialError):
            await store.load_all()
        with pytest.raises(CredentialError):
            await store.set("acc-1", CloudflareCredentials(api_token="T"))

    @pytest.mark.asyncio
    async def test_encrypted_round_trip(self, tmp_path: Path):
        path = tmp_path / "credentials.db"
        store = SqliteCredentialStore(path, "pw")
        await store.set("acc-1", CloudflareCredentials(api_token="secret-token"))

        assert b"secret-token" not in path.read_bytes()
        assert await store.get("acc-1") == CloudflareCredentials(api_token="secret-token")
        assert await store.get("missing") is None

        # A wrong password skips the row instead of failing the whole load
        assert await SqliteCredentialStore(path, "other").load_all() == {}

        await store.remove("acc-1")
        assert await store.load_all() == {}
