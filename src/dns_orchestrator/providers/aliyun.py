"""
Aliyun (Alibaba Cloud) DNS provider implementation.

This module implements the Alibaba Cloud DNS (alidns) API, RPC style: the
action parameters travel in the query string, the body is empty, and the
request is signed with ACS3-HMAC-SHA256.

Aliyun addresses zones by name, so `ProviderDomain.id` is the domain name.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dns_orchestrator.errors import (
    ApiError,
    DomainLockedError,
    DomainNotFoundError,
    ErrorContext,
    InvalidCredentialsError,
    InvalidParameterError,
    ParseError,
    PermissionDeniedError,
    QuotaExceededError,
    RateLimitedError,
    RawApiError,
    RecordExistsError,
    RecordNotFoundError,
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
    parse_optional_timestamp,
    record_data_from_value,
    record_data_to_value_priority,
)
from dns_orchestrator.providers.signing import (
    EMPTY_BODY_SHA256,
    aliyun_canonical_query,
    sign_aliyun,
)
from dns_orchestrator.timeutil import utc_now

if TYPE_CHECKING:
    from typing import Final

    import httpx

    from dns_orchestrator.credentials import AliyunCredentials
    from dns_orchestrator.errors import ProviderError
    from dns_orchestrator.models import (
        CreateDnsRecordRequest,
        PaginationParams,
        RecordQueryParams,
        UpdateDnsRecordRequest,
    )
    from dns_orchestrator.providers.http_client import HttpSettings


ALIYUN_DNS_HOST: Final[str] = "alidns.cn-hangzhou.aliyuncs.com"
ALIYUN_DNS_VERSION: Final[str] = "2015-01-09"

MAX_PAGE_SIZE: Final[int] = 100

HTTP_ERROR_THRESHOLD: Final[int] = 400


logger = logging.getLogger(__name__)


# Error mapping
# Reference: https://api.aliyun.com/document/Alidns/2015-01-09/errorCode

INVALID_CREDENTIALS_CODES: Final[frozenset[str]] = frozenset(
    {"InvalidAccessKeyId.NotFound", "SignatureDoesNotMatch"},
)

RECORD_EXISTS_CODES: Final[frozenset[str]] = frozenset(
    {"DomainRecordDuplicate", "DomainRecordConflict"},
)

RECORD_NOT_FOUND_CODES: Final[frozenset[str]] = frozenset(
    {
        "DomainRecordNotBelongToUser",
        "InvalidRecordId.NotFound",
        "InvalidRR.NoExist",
        "PdnsRecord.NotExists",
    },
)

DOMAIN_NOT_FOUND_CODES: Final[frozenset[str]] = frozenset(
    {"InvalidDomainName.NoExist", "DomainNotFound", "PdnsZone.NotExists"},
)

QUOTA_EXCEEDED_CODES: Final[frozenset[str]] = frozenset(
    {
        "QuotaExceeded.ARecord",
        "QuotaExceeded.Record",
        "QuotaExceeded.FreeDnsRecord",
        "QuotaExceeded.SubDomain",
        "QuotaExceeded.TTL",
        "QuotaExceeded.AliasRecord",
        "QuotaExceeded.ALIASRecord",
        "QuotaExceeded.HTTPSRecord",
        "QuotaExceeded.SVCBRecord",
        "LineDnsSlb.QuotaExceeded",
    },
)

RATE_LIMITED_CODES: Final[frozenset[str]] = frozenset({"Throttling", "Throttling.User"})

DOMAIN_LOCKED_CODES: Final[frozenset[str]] = frozenset(
    {
        "DomainRecordLocked",
        "DomainExpiredDNSForbidden",
        "Forbidden.DomainExpired",
        "RecordForbidden.BlackHole",
        # Misspelled variant returned by the API
        "RecordFobidden.BlackHole",
    },
)

PERMISSION_DENIED_CODES: Final[frozenset[str]] = frozenset(
    {
        "Forbidden",
        "Forbidden.RiskControl",
        "OperationDomain.NoPermission",
        "IllegalUser",
        "IncorrectDomainUser",
    },
)

INVALID_PARAMETER_CODES: Final[dict[str, str]] = {
    "InvalidRR.TypeEmpty": "type",
    "SubDomainInvalid.Type": "type",
    "PdnsRecord.InvalidType": "type",
    "InvalidRR.AValue": "value",
    "InvalidRR.AAAAValue": "value",
    "InvalidRR.MXValue": "value",
    "InvalidRR.NSValue": "value",
    "PdnsRecord.InvalidRecordValue": "value",
    "InvalidRR.RrEmpty": "name",
    "InvalidRR.Format": "name",
    "Record.Invalid.Rr": "name",
    "InvalidRR.Length": "name",
    "SubDomainInvalid.TTL": "ttl",
    "PdnsRecord.InvalidTtl": "ttl",
    "SubDomainInvalid.Line": "line",
    "UnsupportedLine": "line",
    "SubDomainInvalid.Priority": "priority",
    "InvalidDomainName.Format": "domain",
    "InvalidDomainName.Suffix": "domain",
    "InvalidDomainName.Length": "domain",
    "DomainEmpty": "domain",
    "PdnsZone.InvalidZoneName": "domain",
}


def map_error(raw: RawApiError, ctx: ErrorContext) -> ProviderError:
    """
    Map an Aliyun error code to a semantic error.

    Parameters
    ----------
    raw : RawApiError
        ``Code`` and ``Message`` of the response.
    ctx : ErrorContext
        Call-site information.

    Returns
    -------
    ProviderError
        The mapped error; `ApiError` for unknown codes.
    """
    provider = ProviderType.ALIYUN.value
    code = raw.code or ""

    if code in INVALID_CREDENTIALS_CODES:
        return InvalidCredentialsError(provider, raw.message)
    if code in RECORD_EXISTS_CODES:
        return RecordExistsError(provider, ctx.record_name_or_unknown, raw.message)
    if code in RECORD_NOT_FOUND_CODES:
        return RecordNotFoundError(provider, ctx.record_id_or_unknown, raw.message)
    if code in DOMAIN_NOT_FOUND_CODES:
        return DomainNotFoundError(provider, ctx.domain_or_unknown, raw.message)
    if code in QUOTA_EXCEEDED_CODES:
        return QuotaExceededError(provider, raw.message)
    if code in RATE_LIMITED_CODES:
        return RateLimitedError(provider, None, raw.message)
    if code in DOMAIN_LOCKED_CODES:
        return DomainLockedError(provider, ctx.domain_or_unknown, raw.message)
    if code in PERMISSION_DENIED_CODES:
        return PermissionDeniedError(provider, raw.message)
    if code in INVALID_PARAMETER_CODES:
        return InvalidParameterError(provider, INVALID_PARAMETER_CODES[code], raw.message)
    return ApiError(provider, raw.code, raw.message)


# Response shapes


class _AliyunModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AliyunDomain(_AliyunModel):
    domain_name: str = Field(..., alias="DomainName")
    domain_status: str | None = Field(default=None, alias="DomainStatus")
    record_count: int | None = Field(default=None, alias="RecordCount")


class AliyunDomainList(_AliyunModel):
    domain: list[AliyunDomain] = Field(default_factory=list, alias="Domain")


class DescribeDomainsResponse(_AliyunModel):
    domains: AliyunDomainList | None = Field(default=None, alias="Domains")
    total_count: int | None = Field(default=None, alias="TotalCount")


class AliyunRecord(_AliyunModel):
    record_id: str = Field(..., alias="RecordId")
    rr: str = Field(..., alias="RR")
    type: str = Field(..., alias="Type")
    value: str = Field(..., alias="Value")
    ttl: int = Field(..., alias="TTL")
    priority: int | None = Field(default=None, alias="Priority")
    create_timestamp: int | None = Field(default=None, alias="CreateTimestamp")
    update_timestamp: int | None = Field(default=None, alias="UpdateTimestamp")


class AliyunRecordList(_AliyunModel):
    record: list[AliyunRecord] = Field(default_factory=list, alias="Record")


class DescribeDomainRecordsResponse(_AliyunModel):
    domain_records: AliyunRecordList | None = Field(default=None, alias="DomainRecords")
    total_count: int | None = Field(default=None, alias="TotalCount")


class AddDomainRecordResponse(_AliyunModel):
    record_id: str = Field(..., alias="RecordId")


DOMAIN_STATUS_MAP: Final[dict[str, DomainStatus]] = {
    "enable": DomainStatus.ACTIVE,
    "pause": DomainStatus.PAUSED,
    "spam": DomainStatus.ERROR,
}


def convert_domain_status(status: str | None) -> DomainStatus:
    """Map an Aliyun domain status (``ENABLE``/``PAUSE``/``SPAM``)."""
    if status is None:
        return DomainStatus.UNKNOWN
    return DOMAIN_STATUS_MAP.get(status.lower(), DomainStatus.UNKNOWN)


class AliyunProvider(BaseDNSProvider):
    """
    Aliyun DNS provider.

    Uses the alidns 2015-01-09 API with AccessKey authentication.
    """

    PROVIDER: ClassVar[ProviderType] = ProviderType.ALIYUN

    def __init__(
        self,
        credentials: AliyunCredentials,
        http_settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(http_settings, transport)
        self._access_key_id = credentials.access_key_id
        self._access_key_secret = credentials.access_key_secret

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        """Get the Aliyun provider description."""
        return ProviderMetadata(
            id=ProviderType.ALIYUN,
            name="Aliyun DNS",
            description="Alibaba Cloud DNS resolution service",
            required_fields=[
                ProviderCredentialField(
                    key="accessKeyId",
                    label="AccessKey ID",
                    type=FieldType.TEXT,
                    placeholder="Enter AccessKey ID",
                ),
                ProviderCredentialField(
                    key="accessKeySecret",
                    label="AccessKey Secret",
                    type=FieldType.PASSWORD,
                    placeholder="Enter AccessKey Secret",
                ),
            ],
            limits=ProviderLimits(
                max_page_size_domains=MAX_PAGE_SIZE,
                max_page_size_records=MAX_PAGE_SIZE,
            ),
        )

    # HTTP

    def _signed_headers(self, action: str, query_string: str) -> dict[str, str]:
        timestamp = utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")
        nonce = str(uuid.uuid4())
        authorization = sign_aliyun(
            self._access_key_id,
            self._access_key_secret,
            action=action,
            query_string=query_string,
            timestamp=timestamp,
            nonce=nonce,
            host=ALIYUN_DNS_HOST,
            version=ALIYUN_DNS_VERSION,
        )
        return {
            "Host": ALIYUN_DNS_HOST,
            "x-acs-action": action,
            "x-acs-version": ALIYUN_DNS_VERSION,
            "x-acs-date": timestamp,
            "x-acs-signature-nonce": nonce,
            "x-acs-content-sha256": EMPTY_BODY_SHA256,
            "Authorization": authorization,
        }

    async def _request(
        self,
        action: str,
        params: dict[str, Any],
        ctx: ErrorContext,
    ) -> dict[str, Any]:
        """
        Call an RPC action and return the decoded JSON object.

        Raises
        ------
        ParseError
            If the response is not a JSON object.
        ProviderError
            The mapped error when the response carries ``Code``/``Message``.
        """
        query_string = aliyun_canonical_query(
            {key: str(value) for key, value in params.items() if value is not None},
        )
        url = f"https://{ALIYUN_DNS_HOST}/"
        if query_string:
            url = f"{url}?{query_string}"

        status, text = await self.http.request(
            "POST",
            url,
            headers=lambda: self._signed_headers(action, query_string),
        )

        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            if status >= HTTP_ERROR_THRESHOLD:
                raise ApiError(self.id, str(status), text) from e
            raise ParseError(self.id, f"Invalid JSON: {e}") from e
        if not isinstance(value, dict):
            raise ParseError(self.id, "Expected a JSON object")

        code = value.get("Code")
        message = value.get("Message")
        if isinstance(code, str) and isinstance(message, str):
            logger.error("[aliyun] API error: %s - %s", code, message)
            raise map_error(RawApiError(code=code, message=message), ctx)
        if status >= HTTP_ERROR_THRESHOLD:
            raise ApiError(self.id, str(status), text)

        return value

    def _parse(self, model: type[BaseModel], value: dict[str, Any]) -> Any:
        try:
            return model.model_validate(value)
        except ValidationError as e:
            raise ParseError(self.id, str(e)) from e

    @staticmethod
    def _to_domain(domain: AliyunDomain) -> ProviderDomain:
        return ProviderDomain(
            id=domain.domain_name,
            name=domain.domain_name,
            provider=ProviderType.ALIYUN,
            status=convert_domain_status(domain.domain_status),
            record_count=domain.record_count,
        )

    # Operations

    async def validate_credentials(self) -> bool:
        """Call ``DescribeDomains`` with a page size of 1."""
        try:
            await self._request(
                "DescribeDomains",
                {"PageNumber": 1, "PageSize": 1},
                ErrorContext(),
            )
        except InvalidCredentialsError as e:
            logger.warning("[aliyun] Credential validation failed: %s", e)
            return False
        return True

    async def list_domains(
        self,
        params: PaginationParams,
    ) -> PaginatedResponse[ProviderDomain]:
        """List domains, at most 100 per page."""
        params = params.validated(MAX_PAGE_SIZE)
        value = await self._request(
            "DescribeDomains",
            {"PageNumber": params.page, "PageSize": params.page_size},
            ErrorContext(),
        )
        response: DescribeDomainsResponse = self._parse(DescribeDomainsResponse, value)

        domains = [self._to_domain(d) for d in response.domains.domain] if response.domains else []
        return PaginatedResponse[ProviderDomain](
            items=domains,
            page=params.page,
            page_size=params.page_size,
            total_count=response.total_count or 0,
        )

    async def get_domain(self, domain_id: str) -> ProviderDomain:
        """
        Get a domain with ``DescribeDomainInfo``.

        Only ``DomainName`` is required in the response; status and record
        count are optional.
        """
        ctx = ErrorContext(domain=domain_id)
        value = await self._request("DescribeDomainInfo", {"DomainName": domain_id}, ctx)
        domain: AliyunDomain = self._parse(AliyunDomain, value)
        return self._to_domain(domain)

    async def list_records(
        self,
        domain_id: str,
        params: RecordQueryParams,
    ) -> PaginatedResponse[DnsRecord]:
        """
        List records, at most 100 per page.

        The keyword is a fuzzy match on the host record (``RRKeyWord``).
        Records of unsupported types are skipped.
        """
        params = params.validated(MAX_PAGE_SIZE)
        ctx = ErrorContext(domain=domain_id)
        value = await self._request(
            "DescribeDomainRecords",
            {
                "DomainName": domain_id,
                "PageNumber": params.page,
                "PageSize": params.page_size,
                "RRKeyWord": params.keyword or None,
                "Type": params.record_type.value if params.record_type else None,
            },
            ctx,
        )
        response: DescribeDomainRecordsResponse = self._parse(
            DescribeDomainRecordsResponse,
            value,
        )

        records: list[DnsRecord] = []
        raw_records = response.domain_records.record if response.domain_records else []
        for raw in raw_records:
            try:
                data = record_data_from_value(raw.type, raw.value, self.id, raw.priority)
            except UnsupportedRecordTypeError:
                continue
            except ParseError as e:
                logger.warning("[aliyun] Skipping record due to parse error: %s", e)
                continue
            records.append(
                DnsRecord(
                    id=raw.record_id,
                    domain_id=domain_id,
                    name=raw.rr,
                    ttl=raw.ttl,
                    data=data,
                    created_at=parse_optional_timestamp(raw.create_timestamp),
                    updated_at=parse_optional_timestamp(raw.update_timestamp),
                ),
            )

        return PaginatedResponse[DnsRecord](
            items=records,
            page=params.page,
            page_size=params.page_size,
            total_count=response.total_count or 0,
        )

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        """Create a record with ``AddDomainRecord``."""
        value, priority = record_data_to_value_priority(request.data)
        ctx = ErrorContext(record_name=request.name, domain=request.domain_id)
        result = await self._request(
            "AddDomainRecord",
            {
                "DomainName": request.domain_id,
                "RR": request.name,
                "Type": request.data.type,
                "Value": value,
                "TTL": request.ttl,
                "Priority": priority,
            },
            ctx,
        )
        response: AddDomainRecordResponse = self._parse(AddDomainRecordResponse, result)
        logger.info("[aliyun] Created %s record: %s", request.data.type, request.name)

        now = utc_now()
        return DnsRecord(
            id=response.record_id,
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
        """Update a record with ``UpdateDomainRecord``."""
        value, priority = record_data_to_value_priority(request.data)
        ctx = ErrorContext(
            record_name=request.name,
            record_id=record_id,
            domain=request.domain_id,
        )
        await self._request(
            "UpdateDomainRecord",
            {
                "RecordId": record_id,
                "RR": request.name,
                "Type": request.data.type,
                "Value": value,
                "TTL": request.ttl,
                "Priority": priority,
            },
            ctx,
        )
        logger.info("[aliyun] Updated %s record: %s", request.data.type, request.name)

        return DnsRecord(
            id=record_id,
            domain_id=request.domain_id,
            name=request.name,
            ttl=request.ttl,
            data=request.data,
            updated_at=utc_now(),
        )

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        """Delete a record with ``DeleteDomainRecord``."""
        ctx = ErrorContext(record_id=record_id, domain=domain_id)
        await self._request("DeleteDomainRecord", {"RecordId": record_id}, ctx)
        logger.info("[aliyun] Deleted record %s", record_id)
