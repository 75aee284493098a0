"""
Base class for DNS providers.

This module defines the abstract base class that all DNS provider
implementations must inherit from, together with the default batch
operations built on top of the single-record calls.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, TypeVar

from dns_orchestrator.errors import DnsOrchestratorError
from dns_orchestrator.models import (
    BatchCreateResult,
    BatchDeleteResult,
    BatchFailure,
    BatchUpdateResult,
)
from dns_orchestrator.providers.http_client import ProviderHttpClient

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from typing import Final

    import httpx

    from dns_orchestrator.models import (
        BatchUpdateItem,
        CreateDnsRecordRequest,
        DnsRecord,
        PaginatedResponse,
        PaginationParams,
        ProviderDomain,
        ProviderMetadata,
        ProviderType,
        RecordQueryParams,
        UpdateDnsRecordRequest,
    )
    from dns_orchestrator.providers.http_client import HttpSettings


T = TypeVar("T")
R = TypeVar("R")

# Maximum number of in-flight requests of one batch operation
BATCH_CONCURRENCY: Final[int] = 5


logger = logging.getLogger(__name__)


class BaseDNSProvider(ABC):
    """
    Abstract base class for DNS providers.

    Subclasses set `PROVIDER`, implement `metadata` and the single-record
    operations, and send every request through `self.http`.
    """

    PROVIDER: ClassVar[ProviderType]

    def __init__(
        self,
        http_settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the provider.

        Parameters
        ----------
        http_settings : HttpSettings | None, optional
            Timeouts and retry settings for the HTTP client.
        transport : httpx.AsyncBaseTransport | None, optional
            Custom transport, used by tests.
        """
        self.http = ProviderHttpClient(self.PROVIDER.value, http_settings, transport)

    @property
    def id(self) -> str:
        """Provider tag."""
        return self.PROVIDER.value

    @classmethod
    @abstractmethod
    def metadata(cls) -> ProviderMetadata:
        """
        Get the static provider description.

        Returns
        -------
        ProviderMetadata
            Display name, credential fields, features and page limits.
        """
        ...

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """
        Check the credentials with a lightweight API call.

        Returns
        -------
        bool
            False if the provider rejected the credentials.

        Raises
        ------
        ProviderError
            For any failure other than rejected credentials.
        """
        ...

    @abstractmethod
    async def list_domains(
        self,
        params: PaginationParams,
    ) -> PaginatedResponse[ProviderDomain]:
        """
        List zones visible to the credentials.

        Parameters
        ----------
        params : PaginationParams
            Page request; the page size is clamped to the provider ceiling.

        Returns
        -------
        PaginatedResponse[ProviderDomain]
            One page of zones.
        """
        ...

    @abstractmethod
    async def get_domain(self, domain_id: str) -> ProviderDomain:
        """
        Get a single zone.

        Parameters
        ----------
        domain_id : str
            Provider-issued zone identifier.

        Returns
        -------
        ProviderDomain
            The zone.
        """
        ...

    @abstractmethod
    async def list_records(
        self,
        domain_id: str,
        params: RecordQueryParams,
    ) -> PaginatedResponse[DnsRecord]:
        """
        List records of a zone.

        Parameters
        ----------
        domain_id : str
            Provider-issued zone identifier.
        params : RecordQueryParams
            Page request with optional keyword and record type filters.

        Returns
        -------
        PaginatedResponse[DnsRecord]
            One page of records.
        """
        ...

    @abstractmethod
    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        """
        Create a record.

        Parameters
        ----------
        request : CreateDnsRecordRequest
            Record to create.

        Returns
        -------
        DnsRecord
            The created record.
        """
        ...

    @abstractmethod
    async def update_record(
        self,
        record_id: str,
        request: UpdateDnsRecordRequest,
    ) -> DnsRecord:
        """
        Replace a record's name, TTL and data.

        Parameters
        ----------
        record_id : str
            Provider-issued record identifier.
        request : UpdateDnsRecordRequest
            New record contents.

        Returns
        -------
        DnsRecord
            The updated record.
        """
        ...

    @abstractmethod
    async def delete_record(self, record_id: str, domain_id: str) -> None:
        """
        Delete a record.

        Parameters
        ----------
        record_id : str
            Provider-issued record identifier.
        domain_id : str
            Owning zone identifier.
        """
        ...

    async def batch_create_records(
        self,
        requests: Sequence[CreateDnsRecordRequest],
    ) -> BatchCreateResult:
        """
        Create several records concurrently.

        Failures are collected per record (keyed by record name) and never
        abort the other requests.
        """
        outcomes = await gather_bounded(self.create_record, requests, self.id)

        records: list[DnsRecord] = []
        failures: list[BatchFailure] = []
        for request, outcome in zip(requests, outcomes, strict=True):
            if isinstance(outcome, DnsOrchestratorError):
                failures.append(BatchFailure(id=request.name, reason=str(outcome)))
            else:
                records.append(outcome)

        result = BatchCreateResult.from_outcomes(len(records), failures)
        result.records = records
        return result

    async def batch_update_records(
        self,
        items: Sequence[BatchUpdateItem],
    ) -> BatchUpdateResult:
        """Update several records concurrently, collecting per-record failures."""

        async def update(item: BatchUpdateItem) -> DnsRecord:
            return await self.update_record(item.record_id, item.request)

        outcomes = await gather_bounded(update, items, self.id)

        records: list[DnsRecord] = []
        failures: list[BatchFailure] = []
        for item, outcome in zip(items, outcomes, strict=True):
            if isinstance(outcome, DnsOrchestratorError):
                failures.append(BatchFailure(id=item.record_id, reason=str(outcome)))
            else:
                records.append(outcome)

        result = BatchUpdateResult.from_outcomes(len(records), failures)
        result.records = records
        return result

    async def batch_delete_records(
        self,
        domain_id: str,
        record_ids: Sequence[str],
    ) -> BatchDeleteResult:
        """
        Delete several records of one zone concurrently.

        Returns
        -------
        BatchDeleteResult
            Success count and per-record failures.
        """

        async def delete(record_id: str) -> None:
            await self.delete_record(record_id, domain_id)

        outcomes = await gather_bounded(delete, record_ids, self.id)

        failures = [
            BatchFailure(id=record_id, reason=str(outcome))
            for record_id, outcome in zip(record_ids, outcomes, strict=True)
            if isinstance(outcome, DnsOrchestratorError)
        ]
        return BatchDeleteResult.from_outcomes(len(record_ids) - len(failures), failures)

    async def aclose(self) -> None:
        """Release the HTTP client."""
        await self.http.aclose()


async def gather_bounded(
    func: Callable[[T], Awaitable[R]],
    items: Sequence[T],
    provider: str,
    limit: int = BATCH_CONCURRENCY,
) -> list[R | DnsOrchestratorError]:
    """
    Run `func` over `items` concurrently with at most `limit` in flight.

    Parameters
    ----------
    func : Callable[[T], Awaitable[R]]
        Coroutine function applied to each item.
    items : Sequence[T]
        Inputs, in order.
    provider : str
        Provider tag, used as the log prefix.
    limit : int, optional
        Concurrency bound.

    Returns
    -------
    list[R | DnsOrchestratorError]
        One outcome per item, in input order. Package errors are returned
        in place of a result; any other exception propagates.
    """
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> R | DnsOrchestratorError:
        async with semaphore:
            try:
                return await func(item)
            except DnsOrchestratorError as e:
                logger.warning("[%s] Batch item failed: %s", provider, e)
                return e

    return list(await asyncio.gather(*(run(item) for item in items)))
