"""
Service context.

`ServiceContext` holds the collaborators every service needs: the
credential store, the account repository, the provider registry and the
HTTP settings used when instantiating providers.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dns_orchestrator.accounts import AccountStatus
from dns_orchestrator.errors import (
    AccountNotFoundError,
    DnsOrchestratorError,
    InvalidCredentialsError,
)

if TYPE_CHECKING:
    from typing import Final

    import httpx

    from dns_orchestrator.providers.base import BaseDNSProvider
    from dns_orchestrator.providers.http_client import HttpSettings
    from dns_orchestrator.registry import ProviderRegistry
    from dns_orchestrator.storage.base import AccountRepository, CredentialStore


CREDENTIALS_INVALIDATED: Final[str] = "credentials invalidated"


logger = logging.getLogger(__name__)


class ServiceContext:
    """
    Dependencies shared by the services.

    Parameters
    ----------
    credential_store : CredentialStore
        Credential persistence.
    account_repository : AccountRepository
        Account metadata persistence.
    registry : ProviderRegistry
        Live provider instances by account ID.
    http_settings : HttpSettings | None, optional
        Timeouts and retries for providers created by the services.
    transport : httpx.AsyncBaseTransport | None, optional
        Custom transport for providers created by the services; tests
        pass an `httpx.MockTransport`.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        account_repository: AccountRepository,
        registry: ProviderRegistry,
        http_settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credential_store = credential_store
        self.account_repository = account_repository
        self.registry = registry
        self.http_settings = http_settings
        self.transport = transport

    async def get_provider(self, account_id: str) -> BaseDNSProvider:
        """
        Get the live provider of an account.

        Raises
        ------
        AccountNotFoundError
            If no provider is registered for the account.
        """
        provider = await self.registry.get(account_id)
        if provider is None:
            raise AccountNotFoundError(account_id)
        return provider

    async def mark_account_invalid(self, account_id: str, message: str) -> None:
        """
        Set an account to `AccountStatus.ERROR`.

        Failures to persist the status are logged, never raised.
        """
        try:
            await self.account_repository.update_status(
                account_id,
                AccountStatus.ERROR,
                message,
            )
        except DnsOrchestratorError as e:
            logger.error("Failed to mark account %s as invalid: %s", account_id, e)  # noqa: TRY400
            return
        logger.warning("Account %s marked as invalid: %s", account_id, message)

    async def handle_provider_error(
        self,
        account_id: str,
        err: DnsOrchestratorError,
    ) -> DnsOrchestratorError:
        """
        Apply the side effects of a provider error and return it.

        An `InvalidCredentialsError` marks the account as invalid.
        """
        if isinstance(err, InvalidCredentialsError):
            await self.mark_account_invalid(account_id, CREDENTIALS_INVALIDATED)
        return err
