"""Domain (zone) queries across accounts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dns_orchestrator.errors import DnsOrchestratorError
from dns_orchestrator.models import AppDomain, PaginatedResponse, PaginationParams

if TYPE_CHECKING:
    from dns_orchestrator.services.context import ServiceContext


class DomainService:
    """Lists and fetches zones through an account's provider."""

    def __init__(self, ctx: ServiceContext) -> None:
        self.ctx = ctx

    async def list_domains(
        self,
        account_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> PaginatedResponse[AppDomain]:
        """
        List one page of an account's zones.

        Raises
        ------
        AccountNotFoundError
            If the account has no registered provider.
        """
        provider = await self.ctx.get_provider(account_id)
        try:
            response = await provider.list_domains(
                PaginationParams(page=page, page_size=page_size),
            )
        except DnsOrchestratorError as e:
            await self.ctx.handle_provider_error(account_id, e)
            raise

        return PaginatedResponse[AppDomain](
            items=[AppDomain.from_provider(d, account_id) for d in response.items],
            page=response.page,
            page_size=response.page_size,
            total_count=response.total_count,
        )

    async def get_domain(self, account_id: str, domain_id: str) -> AppDomain:
        provider = await self.ctx.get_provider(account_id)
        try:
            domain = await provider.get_domain(domain_id)
        except DnsOrchestratorError as e:
            await self.ctx.handle_provider_error(account_id, e)
            raise
        return AppDomain.from_provider(domain, account_id)
