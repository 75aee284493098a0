"""
Composition root.

`AppContext` wires the storage adapters, the provider registry and the
services together. Adapters (CLI, HTTP) build one from a `Config`, call
`startup` once, and `aclose` when done.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dns_orchestrator.config import CredentialBackend
from dns_orchestrator.errors import DnsOrchestratorError, MigrationRequiredError
from dns_orchestrator.registry import InMemoryProviderRegistry
from dns_orchestrator.services.account import AccountService
from dns_orchestrator.services.account_bootstrap import AccountBootstrapService
from dns_orchestrator.services.account_lifecycle import AccountLifecycleService
from dns_orchestrator.services.context import ServiceContext
from dns_orchestrator.services.credential_management import CredentialManagementService
from dns_orchestrator.services.dns import DnsService
from dns_orchestrator.services.domain import DomainService
from dns_orchestrator.services.import_export import ImportExportService
from dns_orchestrator.services.migration import MigrationResult, MigrationService
from dns_orchestrator.services.provider_metadata import ProviderMetadataService
from dns_orchestrator.storage.json_file import JsonAccountRepository, JsonCredentialStore
from dns_orchestrator.storage.sqlite import SqliteCredentialStore

if TYPE_CHECKING:
    from typing import Final, Self

    import httpx

    from dns_orchestrator.accounts import RestoreResult
    from dns_orchestrator.config import Config
    from dns_orchestrator.providers.http_client import HttpSettings
    from dns_orchestrator.registry import ProviderRegistry
    from dns_orchestrator.storage.base import AccountRepository, CredentialStore


SQLITE_FILENAME: Final[str] = "credentials.db"


logger = logging.getLogger(__name__)


class AppContext:
    """
    All services over one set of stores.

    Parameters
    ----------
    credential_store : CredentialStore
        Credential persistence.
    account_repository : AccountRepository
        Account metadata persistence.
    registry : ProviderRegistry | None, optional
        Provider registry; a new in-memory one when omitted.
    http_settings : HttpSettings | None, optional
        Provider HTTP settings.
    transport : httpx.AsyncBaseTransport | None, optional
        Custom transport for every provider, used by tests.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        account_repository: AccountRepository,
        registry: ProviderRegistry | None = None,
        http_settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.ctx = ServiceContext(
            credential_store,
            account_repository,
            registry or InMemoryProviderRegistry(),
            http_settings,
            transport,
        )
        self.credential_service = CredentialManagementService(self.ctx)
        self.lifecycle = AccountLifecycleService(self.ctx, self.credential_service)
        self.bootstrap = AccountBootstrapService(self.ctx, self.credential_service)
        self.migration = MigrationService(self.ctx)
        self.accounts = AccountService(self.ctx, self.lifecycle, self.credential_service)
        self.import_export = ImportExportService(self.accounts)
        self.domains = DomainService(self.ctx)
        self.dns = DnsService(self.ctx)
        self.providers = ProviderMetadataService()

    @classmethod
    def from_config(
        cls,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Self:
        """
        Build the context described by the storage and HTTP configuration.

        Parameters
        ----------
        config : Config
            Loaded configuration.
        transport : httpx.AsyncBaseTransport | None, optional
            Custom transport for every provider.

        Returns
        -------
        Self
            A context over JSON account storage and the configured
            credential backend.
        """
        data_dir = config.storage.data_dir_as_path
        credential_store: CredentialStore
        if config.storage.credential_backend == CredentialBackend.SQLITE:
            credential_store = SqliteCredentialStore(
                data_dir / SQLITE_FILENAME,
                config.storage.get_password(),
            )
        else:
            credential_store = JsonCredentialStore(data_dir)

        logger.debug(
            'Using data directory "%s" with %s credentials',
            data_dir,
            config.storage.credential_backend,
        )
        return cls(
            credential_store,
            JsonAccountRepository(data_dir),
            http_settings=config.http,
            transport=transport,
        )

    async def migrate(self) -> MigrationResult:
        """
        Run the credential migration, restoring the raw blob if it raises.

        Returns
        -------
        MigrationResult
            The migration outcome.
        """
        store = self.ctx.credential_store
        try:
            await store.load_all()
        except MigrationRequiredError:
            backup = await store.load_raw_json()
        except DnsOrchestratorError as e:
            # Bootstrap reports unreadable credentials per account
            logger.warning("Skipping credential migration check: %s", e)
            return MigrationResult.not_needed()
        else:
            return MigrationResult.not_needed()

        try:
            return await self.migration.migrate_if_needed()
        except DnsOrchestratorError:
            logger.exception("Credential migration failed, restoring the previous data")
            await store.save_raw_json(backup)
            raise

    async def startup(self) -> RestoreResult:
        """
        Migrate legacy credentials if needed, then restore every account.

        Returns
        -------
        RestoreResult
            Restored and failed account counts.
        """
        result = await self.migrate()
        if result.needed:
            logger.info(
                "Migrated %d credentials (%d failed)",
                result.migrated_count,
                len(result.failed_accounts),
            )
        return await self.bootstrap.restore_accounts()

    async def aclose(self) -> None:
        """Close every registered provider's HTTP client."""
        registry = self.ctx.registry
        for account_id in await registry.list_account_ids():
            provider = await registry.get(account_id)
            if provider is not None:
                await provider.aclose()
