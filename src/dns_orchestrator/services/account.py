"""
Account service.

A facade over the lifecycle service, the credential service and the
account repository; adapters talk to this class only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from dns_orchestrator.accounts import CreateAccountRequest
from dns_orchestrator.errors import AccountNotFoundError, InvalidInputError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from dns_orchestrator.accounts import Account, UpdateAccountRequest
    from dns_orchestrator.credentials import ProviderCredentials
    from dns_orchestrator.models import BatchDeleteResult, ProviderType
    from dns_orchestrator.services.account_lifecycle import AccountLifecycleService
    from dns_orchestrator.services.context import ServiceContext
    from dns_orchestrator.services.credential_management import CredentialManagementService


class AccountService:
    """Account queries and lifecycle operations."""

    def __init__(
        self,
        ctx: ServiceContext,
        lifecycle: AccountLifecycleService,
        credential_service: CredentialManagementService,
    ) -> None:
        self.ctx = ctx
        self.lifecycle = lifecycle
        self.credential_service = credential_service

    async def list_accounts(self) -> list[Account]:
        return await self.ctx.account_repository.find_all()

    async def get_account(self, account_id: str) -> Account:
        """
        Get one account.

        Raises
        ------
        AccountNotFoundError
            If the account does not exist.
        """
        account = await self.ctx.account_repository.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def create_account(self, request: CreateAccountRequest) -> Account:
        return await self.lifecycle.create_account(request)

    async def create_account_from_import(
        self,
        name: str,
        provider: ProviderType,
        credentials: ProviderCredentials,
    ) -> Account:
        """
        Create an imported account; the credentials are validated like any other.

        Raises
        ------
        InvalidInputError
            If the imported fields do not form a valid account request.
        """
        try:
            request = CreateAccountRequest(name=name, provider=provider, credentials=credentials)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc']) or 'account'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidInputError(problems) from e
        return await self.lifecycle.create_account(request)

    async def update_account(self, request: UpdateAccountRequest) -> Account:
        return await self.lifecycle.update_account(request)

    async def delete_account(self, account_id: str) -> None:
        await self.lifecycle.delete_account(account_id)

    async def batch_delete_accounts(self, account_ids: Iterable[str]) -> BatchDeleteResult:
        return await self.lifecycle.batch_delete_accounts(account_ids)

    async def load_credentials(self, account_id: str) -> ProviderCredentials:
        return await self.credential_service.load_credentials(account_id)
