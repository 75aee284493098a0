"""Credential validation and persistence, plus provider registration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dns_orchestrator.errors import CredentialError, InvalidCredentialsError
from dns_orchestrator.providers.factory import create_provider

if TYPE_CHECKING:
    from dns_orchestrator.credentials import ProviderCredentials
    from dns_orchestrator.providers.base import BaseDNSProvider
    from dns_orchestrator.services.context import ServiceContext
    from dns_orchestrator.storage.base import CredentialsMap


logger = logging.getLogger(__name__)


class CredentialManagementService:
    """Wraps the credential store and the provider registry."""

    def __init__(self, ctx: ServiceContext) -> None:
        self.ctx = ctx

    async def validate_and_create_provider(
        self,
        credentials: ProviderCredentials,
    ) -> BaseDNSProvider:
        """
        Instantiate a provider and check its credentials against the API.

        Parameters
        ----------
        credentials : ProviderCredentials
            Credentials to validate.

        Returns
        -------
        BaseDNSProvider
            The provider, ready to register.

        Raises
        ------
        InvalidCredentialsError
            If the provider rejects the credentials.
        ProviderError
            For any other failure of the validation call.
        """
        provider = create_provider(credentials, self.ctx.http_settings, self.ctx.transport)
        try:
            valid = await provider.validate_credentials()
        except BaseException:
            await provider.aclose()
            raise
        if not valid:
            await provider.aclose()
            raise InvalidCredentialsError(credentials.provider)
        return provider

    async def save_credentials(self, account_id: str, credentials: ProviderCredentials) -> None:
        await self.ctx.credential_store.set(account_id, credentials)

    async def load_credentials(self, account_id: str) -> ProviderCredentials:
        """
        Load the credentials of an account.

        Raises
        ------
        CredentialError
            If none are stored.
        """
        credentials = await self.ctx.credential_store.get(account_id)
        if credentials is None:
            raise CredentialError(f"No credentials found for account: {account_id}")
        return credentials

    async def delete_credentials(self, account_id: str) -> None:
        await self.ctx.credential_store.remove(account_id)

    async def load_all_credentials(self) -> CredentialsMap:
        return await self.ctx.credential_store.load_all()

    async def register_provider(self, account_id: str, provider: BaseDNSProvider) -> None:
        """
        Register a provider, replacing and closing any previous one.

        The new entry is visible before the old client is closed.
        """
        previous = await self.ctx.registry.get(account_id)
        await self.ctx.registry.register(account_id, provider)
        if previous is not None and previous is not provider:
            await previous.aclose()

    async def unregister_provider(self, account_id: str) -> None:
        provider = await self.ctx.registry.unregister(account_id)
        if provider is not None:
            await provider.aclose()
