"""
Account lifecycle.

Coordinates account metadata, stored credentials and the registered
provider so the three never disagree in a way a caller can observe.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from dns_orchestrator.accounts import Account, AccountStatus
from dns_orchestrator.errors import AccountNotFoundError, DnsOrchestratorError, InvalidInputError
from dns_orchestrator.models import BatchDeleteResult, BatchFailure
from dns_orchestrator.timeutil import utc_now

if TYPE_CHECKING:
    from collections.abc import Iterable

    from dns_orchestrator.accounts import CreateAccountRequest, UpdateAccountRequest
    from dns_orchestrator.services.context import ServiceContext
    from dns_orchestrator.services.credential_management import CredentialManagementService


logger = logging.getLogger(__name__)


class AccountLifecycleService:
    """Create, update and delete accounts."""

    def __init__(
        self,
        ctx: ServiceContext,
        credential_service: CredentialManagementService,
    ) -> None:
        self.ctx = ctx
        self.credential_service = credential_service

    async def create_account(self, request: CreateAccountRequest) -> Account:
        """
        Create an account.

        The steps are: validate the credentials, save them, register the
        provider, then save the account. If the last step fails, the saved
        credentials and the registration are rolled back on a best-effort
        basis and the original error is raised.

        Parameters
        ----------
        request : CreateAccountRequest
            Name, provider and credentials.

        Returns
        -------
        Account
            The new account, with status `AccountStatus.ACTIVE`.

        Raises
        ------
        InvalidCredentialsError
            If the provider rejects the credentials.
        """
        provider = await self.credential_service.validate_and_create_provider(
            request.credentials,
        )

        account_id = str(uuid.uuid4())
        now = utc_now()

        logger.info("Saving credentials for account: %s", account_id)
        try:
            await self.credential_service.save_credentials(account_id, request.credentials)
        except BaseException:
            await provider.aclose()
            raise

        await self.credential_service.register_provider(account_id, provider)

        account = Account(
            id=account_id,
            name=request.name,
            provider=request.provider,
            created_at=now,
            updated_at=now,
            status=AccountStatus.ACTIVE,
        )
        try:
            await self.ctx.account_repository.save(account)
        except DnsOrchestratorError as e:
            logger.error("Failed to save account metadata, cleaning up: %s", e)  # noqa: TRY400
            await self._cleanup(account_id)
            raise

        logger.info("Created %s account %s (%s)", account.provider, account.name, account_id)
        return account

    async def _cleanup(self, account_id: str) -> None:
        try:
            await self.credential_service.delete_credentials(account_id)
        except DnsOrchestratorError as e:
            logger.warning("Cleanup: failed to delete credentials for %s: %s", account_id, e)
        await self.credential_service.unregister_provider(account_id)

    async def update_account(self, request: UpdateAccountRequest) -> Account:
        """
        Rename an account and/or replace its credentials.

        New credentials are validated, saved and registered in place of the
        old provider; a successful credential update resets the status to
        `AccountStatus.ACTIVE`.

        Raises
        ------
        AccountNotFoundError
            If the account does not exist.
        InvalidInputError
            If the new credentials belong to a different provider.
        """
        account = await self.ctx.account_repository.find_by_id(request.id)
        if account is None:
            raise AccountNotFoundError(request.id)

        update: dict[str, object] = {}
        if request.credentials is not None:
            if request.credentials.provider_type() != account.provider:
                raise InvalidInputError(
                    f"Credentials are for '{request.credentials.provider}' "
                    f"but the account provider is '{account.provider}'",
                )
            provider = await self.credential_service.validate_and_create_provider(
                request.credentials,
            )
            logger.info("Updating credentials for account: %s", request.id)
            try:
                await self.credential_service.save_credentials(request.id, request.credentials)
            except BaseException:
                await provider.aclose()
                raise
            await self.credential_service.register_provider(request.id, provider)
            update |= {"status": AccountStatus.ACTIVE, "error": None}

        if request.name is not None:
            update["name"] = request.name

        update["updated_at"] = utc_now()
        account = account.model_copy(update=update)
        await self.ctx.account_repository.save(account)
        return account

    async def delete_account(self, account_id: str) -> None:
        """
        Delete an account.

        Metadata goes first, so a later failure never leaves a visible
        account without credentials. A failure to delete the credentials is
        only logged.

        Raises
        ------
        AccountNotFoundError
            If the account does not exist.
        """
        if await self.ctx.account_repository.find_by_id(account_id) is None:
            raise AccountNotFoundError(account_id)

        await self.ctx.account_repository.delete(account_id)
        await self.credential_service.unregister_provider(account_id)
        try:
            await self.credential_service.delete_credentials(account_id)
        except DnsOrchestratorError as e:
            logger.warning("Failed to delete credentials for %s: %s", account_id, e)
        logger.info("Deleted account %s", account_id)

    async def batch_delete_accounts(self, account_ids: Iterable[str]) -> BatchDeleteResult:
        """Delete accounts one by one, collecting per-account failures."""
        success_count = 0
        failures: list[BatchFailure] = []
        for account_id in account_ids:
            try:
                await self.delete_account(account_id)
            except DnsOrchestratorError as e:
                failures.append(BatchFailure(id=account_id, reason=str(e)))
            else:
                success_count += 1
        return BatchDeleteResult.from_outcomes(success_count, failures)
