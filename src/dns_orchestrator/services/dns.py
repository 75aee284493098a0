"""DNS record operations across accounts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dns_orchestrator.errors import DnsOrchestratorError, InvalidCredentialsError
from dns_orchestrator.models import BatchDeleteResult, BatchFailure, RecordQueryParams
from dns_orchestrator.providers.base import gather_bounded
from dns_orchestrator.services.context import CREDENTIALS_INVALIDATED

if TYPE_CHECKING:
    from dns_orchestrator.models import (
        BatchDeleteRequest,
        CreateDnsRecordRequest,
        DnsRecord,
        DnsRecordType,
        PaginatedResponse,
        UpdateDnsRecordRequest,
    )
    from dns_orchestrator.services.context import ServiceContext


logger = logging.getLogger(__name__)


class DnsService:
    """
    Record CRUD through an account's provider.

    Every method raises `AccountNotFoundError` when the account has no
    registered provider. An `InvalidCredentialsError` from the provider
    marks the account as invalid before it propagates.
    """

    def __init__(self, ctx: ServiceContext) -> None:
        self.ctx = ctx

    async def list_records(
        self,
        account_id: str,
        domain_id: str,
        page: int = 1,
        page_size: int = 20,
        keyword: str | None = None,
        record_type: DnsRecordType | None = None,
    ) -> PaginatedResponse[DnsRecord]:
        provider = await self.ctx.get_provider(account_id)
        params = RecordQueryParams(
            page=page,
            page_size=page_size,
            keyword=keyword,
            record_type=record_type,
        )
        try:
            return await provider.list_records(domain_id, params)
        except DnsOrchestratorError as e:
            await self.ctx.handle_provider_error(account_id, e)
            raise

    async def create_record(
        self,
        account_id: str,
        request: CreateDnsRecordRequest,
    ) -> DnsRecord:
        provider = await self.ctx.get_provider(account_id)
        try:
            return await provider.create_record(request)
        except DnsOrchestratorError as e:
            await self.ctx.handle_provider_error(account_id, e)
            raise

    async def update_record(
        self,
        account_id: str,
        record_id: str,
        request: UpdateDnsRecordRequest,
    ) -> DnsRecord:
        provider = await self.ctx.get_provider(account_id)
        try:
            return await provider.update_record(record_id, request)
        except DnsOrchestratorError as e:
            await self.ctx.handle_provider_error(account_id, e)
            raise

    async def delete_record(self, account_id: str, record_id: str, domain_id: str) -> None:
        provider = await self.ctx.get_provider(account_id)
        try:
            await provider.delete_record(record_id, domain_id)
        except DnsOrchestratorError as e:
            await self.ctx.handle_provider_error(account_id, e)
            raise

    async def batch_delete_records(
        self,
        account_id: str,
        request: BatchDeleteRequest,
    ) -> BatchDeleteResult:
        """
        Delete several records of one zone concurrently.

        Parameters
        ----------
        account_id : str
            Owning account.
        request : BatchDeleteRequest
            Zone and record IDs.

        Returns
        -------
        BatchDeleteResult
            Success count and per-record failures. If any delete reports
            invalid credentials, the account is marked invalid once.
        """
        provider = await self.ctx.get_provider(account_id)

        async def delete(record_id: str) -> None:
            await provider.delete_record(record_id, request.domain_id)

        outcomes = await gather_bounded(delete, request.record_ids, provider.id)

        failures: list[BatchFailure] = []
        credentials_rejected = False
        for record_id, outcome in zip(request.record_ids, outcomes, strict=True):
            if isinstance(outcome, DnsOrchestratorError):
                credentials_rejected |= isinstance(outcome, InvalidCredentialsError)
                failures.append(BatchFailure(id=record_id, reason=str(outcome)))

        if credentials_rejected:
            await self.ctx.mark_account_invalid(account_id, CREDENTIALS_INVALIDATED)

        logger.info(
            "Batch delete on %s: %d deleted, %d failed",
            request.domain_id,
            len(request.record_ids) - len(failures),
            len(failures),
        )
        return BatchDeleteResult.from_outcomes(len(request.record_ids) - len(failures), failures)
