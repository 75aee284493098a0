"""Startup restore: rebuild the provider registry from persisted state."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dns_orchestrator.accounts import AccountStatus, RestoreResult
from dns_orchestrator.errors import DnsOrchestratorError
from dns_orchestrator.providers.factory import create_provider

if TYPE_CHECKING:
    from typing import Final

    from dns_orchestrator.accounts import Account
    from dns_orchestrator.services.context import ServiceContext
    from dns_orchestrator.services.credential_management import CredentialManagementService


CREDENTIALS_MISSING: Final[str] = "credentials missing"


logger = logging.getLogger(__name__)


class AccountBootstrapService:
    """Registers a provider for every stored account at startup."""

    def __init__(
        self,
        ctx: ServiceContext,
        credential_service: CredentialManagementService,
    ) -> None:
        self.ctx = ctx
        self.credential_service = credential_service

    async def _set_status(
        self,
        account: Account,
        status: AccountStatus,
        error: str | None = None,
    ) -> None:
        try:
            await self.ctx.account_repository.update_status(account.id, status, error)
        except DnsOrchestratorError as e:
            logger.warning("Failed to update status for account %s: %s", account.id, e)

    async def restore_accounts(self) -> RestoreResult:
        """
        Restore every account.

        Accounts without credentials, or whose credentials belong to
        another provider, are set to `AccountStatus.ERROR`; the others are
        registered and set to `AccountStatus.ACTIVE`. If the credential
        store cannot be read at all, every account is set to
        `AccountStatus.ERROR` with the failure message.

        Legacy credentials count as unreadable, so run
        `MigrationService.migrate_if_needed` first (`AppContext.startup`
        does). Calling this twice has the same effect as calling it once.

        Returns
        -------
        RestoreResult
            Restored and failed account counts.
        """
        accounts = await self.ctx.account_repository.find_all()

        try:
            all_credentials = await self.credential_service.load_all_credentials()
        except DnsOrchestratorError as e:
            logger.error("Failed to load credentials: %s", e)  # noqa: TRY400
            for account in accounts:
                await self._set_status(account, AccountStatus.ERROR, str(e))
            return RestoreResult(success_count=0, error_count=len(accounts))

        success_count = 0
        error_count = 0
        for account in accounts:
            credentials = all_credentials.get(account.id)
            if credentials is None:
                logger.warning("No credentials found for account: %s", account.id)
                await self._set_status(account, AccountStatus.ERROR, CREDENTIALS_MISSING)
                error_count += 1
                continue

            if credentials.provider_type() != account.provider:
                reason = (
                    f"credential format error: expected '{account.provider}' "
                    f"credentials, found '{credentials.provider}'"
                )
                logger.warning("Invalid credentials for account %s: %s", account.id, reason)
                await self._set_status(account, AccountStatus.ERROR, reason)
                error_count += 1
                continue

            provider = create_provider(credentials, self.ctx.http_settings, self.ctx.transport)
            await self.credential_service.register_provider(account.id, provider)
            await self._set_status(account, AccountStatus.ACTIVE)
            success_count += 1

        logger.info("Restored %d accounts (%d failed)", success_count, error_count)
        return RestoreResult(success_count=success_count, error_count=error_count)
