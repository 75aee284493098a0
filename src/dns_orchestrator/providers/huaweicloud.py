"""
Huawei Cloud DNS provider implementation.

This module implements the Huawei Cloud DNS v2 REST API for public zones,
signed with SDK-HMAC-SHA256. Record sets use fully-qualified names with a
trailing dot; they are converted to zone-relative names on the way out.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel, Field, ValidationError

from dns_orchestrator.errors import (
    ApiError,
    DomainLockedError,
    DomainNotFoundError,
    ErrorContext,
    InvalidCredentialsError,
    InvalidParameterError,
    NetworkError,
    ParseError,
    PermissionDeniedError,
    QuotaExceededError,
    RateLimitedError,
    RawApiError,
    RecordExistsError,
    RecordNotFoundError,
    SerializationError,
    UnsupportedRecordTypeError,
)
from dns_orchestrator.models import (
    DnsRecord,
    DomainStatus,
    FieldType,
    PaginatedResponse,
    ProviderCredentialField,
    ProviderDomain,
    ProviderLimits,
    ProviderMetadata,
    ProviderType,
)
from dns_orchestrator.providers.base import BaseDNSProvider
from dns_orchestrator.providers.common import (
    DomainCache,
    full_name_to_relative,
    normalize_domain_name,
    parse_optional_timestamp,
    record_data_from_value,
    relative_to_full_name,
)
from dns_orchestrator.providers.http_client import truncate_for_log
from dns_orchestrator.providers.signing import sign_huawei
from dns_orchestrator.timeutil import utc_now

if TYPE_CHECKING:
    from typing import Final

    from dns_orchestrator.credentials import HuaweicloudCredentials
    from dns_orchestrator.errors import ProviderError
    from dns_orchestrator.models import (
        CreateDnsRecordRequest,
        PaginationParams,
        RecordQueryParams,
        UpdateDnsRecordRequest,
    )
    from dns_orchestrator.providers.http_client import HttpSettings


HUAWEICLOUD_DNS_HOST: Final[str] = "dns.myhuaweicloud.com"

MAX_PAGE_SIZE: Final[int] = 500

# TTL assumed when a record set omits it
DEFAULT_TTL: Final[int] = 300

UNKNOWN_ERROR_CODE: Final[str] = "UNKNOWN"
NO_ERROR_MESSAGE: Final[str] = "No error message provided by API"


logger = logging.getLogger(__name__)


# Error mapping
# Reference: https://support.huaweicloud.com/api-dns/ErrorCode.html

INVALID_CREDENTIALS_CODES: Final[frozenset[str]] = frozenset(
    {
        "APIGW.0301",
        "APIGW.0101",
        "APIGW.0303",
        "APIGW.0305",
        "DNS.0005",
        "DNS.0013",
        "DNS.0040",
    },
)

PERMISSION_DENIED_CODES: Final[frozenset[str]] = frozenset(
    {"APIGW.0302", "APIGW.0306", "DNS.0030", "DNS.1802"},
)

QUOTA_EXCEEDED_CODES: Final[frozenset[str]] = frozenset(
    {"DNS.0403", "DNS.0404", "DNS.0405", "DNS.0408", "DNS.0409", "DNS.0021", "DNS.2002"},
)

RATE_LIMITED_CODES: Final[frozenset[str]] = frozenset({"APIGW.0308"})

RECORD_EXISTS_CODES: Final[frozenset[str]] = frozenset({"DNS.0312", "DNS.0335", "DNS.0016"})

RECORD_NOT_FOUND_CODES: Final[frozenset[str]] = frozenset({"DNS.0313", "DNS.0004"})

DOMAIN_NOT_FOUND_CODES: Final[frozenset[str]] = frozenset({"DNS.0302", "DNS.0101", "DNS.1206"})

DOMAIN_LOCKED_CODES: Final[frozenset[str]] = frozenset(
    {"DNS.0213", "DNS.0214", "DNS.0209", "DNS.2003", "DNS.2005", "DNS.2006"},
)

NETWORK_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {"APIGW.0201", "DNS.0012", "DNS.0015", "DNS.0022", "DNS.0036"},
)

INVALID_PARAMETER_CODES: Final[dict[str, str]] = {
    "DNS.0303": "ttl",
    "DNS.0319": "ttl",
    "DNS.0307": "type",
    "DNS.0308": "value",
    "DNS.0304": "name",
    "DNS.0202": "name",
    "DNS.0321": "name",
    "DNS.0323": "general",
    "DNS.0806": "line",
    "DNS.1601": "line",
    "DNS.1602": "line",
    "DNS.1604": "line",
    "DNS.1702": "line",
    "DNS.1704": "line",
    "DNS.1706": "line",
    "DNS.1707": "line",
    "DNS.0309": "general",
    "DNS.0206": "general",
    "DNS.0305": "general",
}


def map_error(raw: RawApiError, ctx: ErrorContext) -> ProviderError:
    """
    Map a Huawei Cloud error code to a semantic error.

    Health check, VPC, PTR, DNSSEC and enterprise project codes are not
    mapped and fall back to `ApiError`.
    """
    provider = ProviderType.HUAWEICLOUD.value
    code = raw.code or ""

    if code in INVALID_CREDENTIALS_CODES:
        return InvalidCredentialsError(provider, raw.message)
    if code in PERMISSION_DENIED_CODES:
        return PermissionDeniedError(provider, raw.message)
    if code in QUOTA_EXCEEDED_CODES:
        return QuotaExceededError(provider, raw.message)
    if code in RATE_LIMITED_CODES:
        return RateLimitedError(provider, None, raw.message)
    if code in RECORD_EXISTS_CODES:
        return RecordExistsError(provider, ctx.record_name_or_unknown, raw.message)
    if code in RECORD_NOT_FOUND_CODES:
        return RecordNotFoundError(provider, ctx.record_id_or_unknown, raw.message)
    if code in DOMAIN_NOT_FOUND_CODES:
        return DomainNotFoundError(provider, ctx.domain_or_unknown, raw.message)
    if code in DOMAIN_LOCKED_CODES:
        return DomainLockedError(provider, ctx.domain_or_unknown, raw.message)
    if code in INVALID_PARAMETER_CODES:
        return InvalidParameterError(provider, INVALID_PARAMETER_CODES[code], raw.message)
    if code in NETWORK_ERROR_CODES:
        return NetworkError(provider, raw.message)
    return ApiError(provider, raw.code, raw.message)


# Response shapes


class HuaweicloudZone(BaseModel):
    id: str
    name: str
    status: str | None = None
    record_num: int | None = None


class ListMetadata(BaseModel):
    total_count: int | None = None


class ListZonesResponse(BaseModel):
    zones: list[HuaweicloudZone] | None = None
    metadata: ListMetadata | None = None


class HuaweicloudRecordSet(BaseModel):
    id: str
    name: str
    type: str
    records: list[str] | None = None
    ttl: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ListRecordSetsResponse(BaseModel):
    recordsets: list[HuaweicloudRecordSet] | None = None
    metadata: ListMetadata | None = None


class RecordSetResponse(BaseModel):
    id: str


class HuaweicloudErrorBody(BaseModel):
    """Error body; API gateway errors use ``error_code``/``error_msg``."""

    code: str | None = Field(default=None)
    message: str | None = Field(default=None)
    error_code: str | None = Field(default=None)
    error_msg: str | None = Field(default=None)

    def to_raw(self) -> RawApiError:
        return RawApiError(
            code=self.code or self.error_code or UNKNOWN_ERROR_CODE,
            message=self.message or self.error_msg or NO_ERROR_MESSAGE,
        )


ZONE_STATUS_MAP: Final[dict[str, DomainStatus]] = {
    "ACTIVE": DomainStatus.ACTIVE,
    "PENDING_CREATE": DomainStatus.PENDING,
    "PENDING_UPDATE": DomainStatus.PENDING,
    "PENDING_DELETE": DomainStatus.PENDING,
    "PENDING_FREEZE": DomainStatus.PENDING,
    "PENDING_DISABLE": DomainStatus.PENDING,
    "FREEZE": DomainStatus.PAUSED,
    "ILLEGAL": DomainStatus.PAUSED,
    "POLICE": DomainStatus.PAUSED,
    "DISABLE": DomainStatus.PAUSED,
    "ERROR": DomainStatus.ERROR,
}


def convert_zone_status(status: str | None) -> DomainStatus:
    if status is None:
        return DomainStatus.UNKNOWN
    return ZONE_STATUS_MAP.get(status, DomainStatus.UNKNOWN)


class HuaweicloudProvider(BaseDNSProvider):
    """
    Huawei Cloud DNS provider.

    Authenticates with an AK/SK pair. Record sets may hold several values;
    only the first value is represented.
    """

    PROVIDER: ClassVar[ProviderType] = ProviderType.HUAWEICLOUD

    def __init__(
        self,
        credentials: HuaweicloudCredentials,
        http_settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(http_settings, transport)
        self._access_key_id = credentials.access_key_id
        self._secret_access_key = credentials.secret_access_key
        self._domain_cache = DomainCache()

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        """Get the Huawei Cloud provider description."""
        return ProviderMetadata(
            id=ProviderType.HUAWEICLOUD,
            name="Huawei Cloud DNS",
            description="Huawei Cloud DNS resolution service",
            required_fields=[
                ProviderCredentialField(
                    key="accessKeyId",
                    label="Access Key ID",
                    type=FieldType.TEXT,
                    placeholder="Enter Access Key ID",
                ),
                ProviderCredentialField(
                    key="secretAccessKey",
                    label="Secret Access Key",
                    type=FieldType.PASSWORD,
                    placeholder="Enter Secret Access Key",
                ),
            ],
            limits=ProviderLimits(
                max_page_size_domains=MAX_PAGE_SIZE,
                max_page_size_records=MAX_PAGE_SIZE,
            ),
        )

    # HTTP

    def _signed_headers(
        self,
        method: str,
        path: str,
        query: str,
        payload: str,
    ) -> dict[str, str]:
        timestamp = utc_now().strftime("%Y%m%dT%H%M%SZ")
        headers = {"Host": HUAWEICLOUD_DNS_HOST, "X-Sdk-Date": timestamp}
        if payload:
            headers["Content-Type"] = "application/json"
        headers["Authorization"] = sign_huawei(
            self._access_key_id,
            self._secret_access_key,
            method=method,
            uri=path,
            query=query,
            headers=headers,
            payload=payload,
            timestamp=timestamp,
        )
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        ctx: ErrorContext,
        *,
        query: str = "",
        body: dict[str, Any] | None = None,
    ) -> Any:
        """
        Send a signed request and return the decoded JSON body.

        Returns
        -------
        Any
            The decoded body, or None for an empty 2xx response.

        Raises
        ------
        ProviderError
            The mapped error for a non-2xx response.
        """
        payload = ""
        if body is not None:
            try:
                payload = json.dumps(body)
            except (TypeError, ValueError) as e:
                raise SerializationError(self.id, str(e)) from e
            logger.debug("[huaweicloud] Request body: %s", truncate_for_log(payload))

        url = f"https://{HUAWEICLOUD_DNS_HOST}{path}"
        if query:
            url = f"{url}?{query}"

        status, text = await self.http.request(
            method,
            url,
            headers=lambda: self._signed_headers(method, path, query, payload),
            content=payload.encode("utf-8") if payload else None,
        )

        if not httpx.codes.is_success(status):
            raise self._response_error(status, text, ctx)

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(self.id, f"Invalid JSON: {e}") from e

    def _response_error(self, status: int, text: str, ctx: ErrorContext) -> ProviderError:
        try:
            error = HuaweicloudErrorBody.model_validate_json(text)
        except ValidationError:
            return ApiError(self.id, None, f"HTTP {status}: {truncate_for_log(text)}")
        raw = error.to_raw()
        logger.error("[huaweicloud] API error: %s - %s", raw.code, raw.message)
        return map_error(raw, ctx)

    def _parse(self, model: type[BaseModel], value: Any) -> Any:
        try:
            return model.model_validate(value)
        except ValidationError as e:
            raise ParseError(self.id, str(e)) from e

    @staticmethod
    def _to_domain(zone: HuaweicloudZone) -> ProviderDomain:
        return ProviderDomain(
            id=zone.id,
            name=normalize_domain_name(zone.name),
            provider=ProviderType.HUAWEICLOUD,
            status=convert_zone_status(zone.status),
            record_count=zone.record_num,
        )

    async def _resolve_domain(self, domain_id: str) -> ProviderDomain:
        cached = self._domain_cache.get(domain_id)
        if cached is not None:
            return cached
        return await self.get_domain(domain_id)

    @staticmethod
    def _record_body(name: str, zone_name: str, request: CreateDnsRecordRequest) -> dict[str, Any]:
        return {
            "name": f"{relative_to_full_name(name, zone_name)}.",
            "type": request.data.type,
            "records": [request.data.display_value()],
            "ttl": request.ttl,
        }

    # Operations

    async def validate_credentials(self) -> bool:
        """List one public zone."""
        try:
            await self._request("GET", "/v2/zones", ErrorContext(), query="type=public&limit=1")
        except InvalidCredentialsError as e:
            logger.warning("[huaweicloud] Credential validation failed: %s", e)
            return False
        return True

    async def list_domains(
        self,
        params: PaginationParams,
    ) -> PaginatedResponse[ProviderDomain]:
        """List public zones, at most 500 per page."""
        params = params.validated(MAX_PAGE_SIZE)
        offset = (params.page - 1) * params.page_size
        value = await self._request(
            "GET",
            "/v2/zones",
            ErrorContext(),
            query=f"type=public&offset={offset}&limit={params.page_size}",
        )
        response: ListZonesResponse = self._parse(ListZonesResponse, value)

        domains = [self._to_domain(z) for z in response.zones or []]
        total = response.metadata.total_count if response.metadata else None
        return PaginatedResponse[ProviderDomain](
            items=domains,
            page=params.page,
            page_size=params.page_size,
            total_count=total or 0,
        )

    async def get_domain(self, domain_id: str) -> ProviderDomain:
        """Get a zone with ``ShowPublicZone``."""
        ctx = ErrorContext(domain=domain_id)
        value = await self._request("GET", f"/v2/zones/{domain_id}", ctx)
        domain = self._to_domain(self._parse(HuaweicloudZone, value))
        self._domain_cache.insert(domain_id, domain)
        return domain

    async def list_records(
        self,
        domain_id: str,
        params: RecordQueryParams,
    ) -> PaginatedResponse[DnsRecord]:
        """
        List record sets of a zone, at most 500 per page.

        SOA record sets and unsupported types are skipped. The keyword is
        a fuzzy match on the record name.
        """
        params = params.validated(MAX_PAGE_SIZE)
        domain = await self._resolve_domain(domain_id)

        query_params: list[tuple[str, str | int]] = [
            ("offset", (params.page - 1) * params.page_size),
            ("limit", params.page_size),
        ]
        if params.keyword:
            query_params.append(("name", params.keyword))
        if params.record_type:
            query_params.append(("type", params.record_type.value))

        ctx = ErrorContext(domain=domain_id)
        value = await self._request(
            "GET",
            f"/v2/zones/{domain_id}/recordsets",
            ctx,
            query=urlencode(query_params, quote_via=quote),
        )
        response: ListRecordSetsResponse = self._parse(ListRecordSetsResponse, value)

        records: list[DnsRecord] = []
        for recordset in response.recordsets or []:
            if recordset.type == "SOA" or not recordset.records:
                continue
            if len(recordset.records) > 1:
                logger.debug(
                    "[huaweicloud] Record '%s' has %d values, only the first is used",
                    recordset.name,
                    len(recordset.records),
                )
            try:
                data = record_data_from_value(recordset.type, recordset.records[0], self.id)
            except UnsupportedRecordTypeError:
                continue
            except ParseError as e:
                logger.warning("[huaweicloud] Skipping record due to parse error: %s", e)
                continue
            records.append(
                DnsRecord(
                    id=recordset.id,
                    domain_id=domain_id,
                    name=full_name_to_relative(recordset.name, domain.name),
                    ttl=recordset.ttl or DEFAULT_TTL,
                    data=data,
                    created_at=parse_optional_timestamp(recordset.created_at),
                    updated_at=parse_optional_timestamp(recordset.updated_at),
                ),
            )

        total = response.metadata.total_count if response.metadata else None
        return PaginatedResponse[DnsRecord](
            items=records,
            page=params.page,
            page_size=params.page_size,
            total_count=total or 0,
        )

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        """Create a record set holding a single value."""
        domain = await self._resolve_domain(request.domain_id)
        ctx = ErrorContext(record_name=request.name, domain=request.domain_id)
        value = await self._request(
            "POST",
            f"/v2/zones/{request.domain_id}/recordsets",
            ctx,
            body=self._record_body(request.name, domain.name, request),
        )
        response: RecordSetResponse = self._parse(RecordSetResponse, value)
        logger.info("[huaweicloud] Created %s record: %s", request.data.type, request.name)

        now = utc_now()
        return DnsRecord(
            id=response.id,
            domain_id=request.domain_id,
            name=request.name,
            ttl=request.ttl,
            data=request.data,
            created_at=now,
            updated_at=now,
        )

    async def update_record(
        self,
        record_id: str,
        request: UpdateDnsRecordRequest,
    ) -> DnsRecord:
        """Replace a record set's name, type, value and TTL."""
        domain = await self._resolve_domain(request.domain_id)
        ctx = ErrorContext(
            record_name=request.name,
            record_id=record_id,
            domain=request.domain_id,
        )
        await self._request(
            "PUT",
            f"/v2/zones/{request.domain_id}/recordsets/{record_id}",
            ctx,
            body=self._record_body(request.name, domain.name, request),
        )
        logger.info("[huaweicloud] Updated %s record: %s", request.data.type, request.name)

        return DnsRecord(
            id=record_id,
            domain_id=request.domain_id,
            name=request.name,
            ttl=request.ttl,
            data=request.data,
            updated_at=utc_now(),
        )

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        """Delete a record set."""
        ctx = ErrorContext(record_id=record_id, domain=domain_id)
        await self._request("DELETE", f"/v2/zones/{domain_id}/recordsets/{record_id}", ctx)
        logger.info("[huaweicloud] Deleted record %s", record_id)
