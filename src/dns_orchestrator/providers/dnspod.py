"""
Tencent Cloud DNSPod provider implementation.

This module implements the DNSPod API 2021-03-23. Every action is a POST of
a JSON body to the API host, signed with TC3-HMAC-SHA256; the action name
travels in the ``X-TC-Action`` header.

Zones are addressed by numeric ``DomainId``, but record calls take the
domain name, so record operations resolve the zone first (cached).
"""

from __future__ import annotations

import json
import logging
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
    SerializationError,
    UnsupportedRecordTypeError,
)
from dns_orchestrator.models import (
    DnsRecord,
    DomainStatus,
    FieldType,
    PaginatedResponse,
    PaginationParams,
    ProviderCredentialField,
    ProviderDomain,
    ProviderLimits,
    ProviderMetadata,
    ProviderType,
)
from dns_orchestrator.providers.base import BaseDNSProvider
from dns_orchestrator.providers.common import (
    DomainCache,
    parse_optional_timestamp,
    record_data_from_value,
    record_data_to_value_priority,
)
from dns_orchestrator.providers.http_client import truncate_for_log
from dns_orchestrator.providers.signing import TC3_CONTENT_TYPE, sign_tc3
from dns_orchestrator.timeutil import utc_now

if TYPE_CHECKING:
    from typing import Final

    import httpx

    from dns_orchestrator.credentials import DnspodCredentials
    from dns_orchestrator.errors import ProviderError
    from dns_orchestrator.models import (
        CreateDnsRecordRequest,
        RecordQueryParams,
        UpdateDnsRecordRequest,
    )
    from dns_orchestrator.providers.http_client import HttpSettings


DNSPOD_API_HOST: Final[str] = "dnspod.tencentcloudapi.com"
DNSPOD_SERVICE: Final[str] = "dnspod"
DNSPOD_VERSION: Final[str] = "2021-03-23"

MAX_PAGE_SIZE: Final[int] = 100
MIN_TTL: Final[int] = 600

# Line name DNSPod uses for the default resolution line
DEFAULT_RECORD_LINE: Final[str] = "默认"

# Returned by DescribeRecordList for a zone without matching records
NO_DATA_OF_RECORD: Final[str] = "ResourceNotFound.NoDataOfRecord"


logger = logging.getLogger(__name__)


# Error mapping
# Reference: https://cloud.tencent.com/document/api/1427/56192

INVALID_CREDENTIALS_CODES: Final[frozenset[str]] = frozenset(
    {
        "AuthFailure",
        "AuthFailure.InvalidAuthorization",
        "AuthFailure.InvalidSecretId",
        "AuthFailure.MFAFailure",
        "AuthFailure.SecretIdNotFound",
        "AuthFailure.SignatureExpire",
        "AuthFailure.SignatureFailure",
        "AuthFailure.TokenFailure",
        "AuthFailure.UnauthorizedOperation",
        "InvalidParameter.InvalidSecretId",
        "InvalidParameter.InvalidSignature",
        "InvalidParameter.PermissionDenied",
        "InvalidParameter.LoginTokenIdError",
        "InvalidParameter.LoginTokenNotExists",
        "InvalidParameter.LoginTokenValidateFailed",
    },
)

QUOTA_EXCEEDED_CODES: Final[frozenset[str]] = frozenset(
    {
        "LimitExceeded",
        "LimitExceeded.AAAACountLimit",
        "LimitExceeded.AtNsRecordLimit",
        "LimitExceeded.CustomLineLimited",
        "LimitExceeded.DomainAliasCountExceeded",
        "LimitExceeded.DomainAliasNumberLimit",
        "LimitExceeded.FailedLoginLimitExceeded",
        "LimitExceeded.GroupNumberLimit",
        "LimitExceeded.HiddenUrlExceeded",
        "LimitExceeded.NsCountLimit",
        "LimitExceeded.OffsetExceeded",
        "LimitExceeded.SrvCountLimit",
        "LimitExceeded.SubdomainLevelLimit",
        "LimitExceeded.SubdomainRollLimit",
        "LimitExceeded.SubdomainWcardLimit",
        "LimitExceeded.UrlCountLimit",
        "RequestLimitExceeded.GlobalRegionUinLimitExceeded",
        "RequestLimitExceeded.IPLimitExceeded",
        "RequestLimitExceeded.UinLimitExceeded",
        "RequestLimitExceeded.BatchTaskLimit",
        "RequestLimitExceeded.CreateDomainLimit",
    },
)

RATE_LIMITED_CODES: Final[frozenset[str]] = frozenset(
    {
        "RequestLimitExceeded",
        "RequestLimitExceeded.RequestLimitExceeded",
        "FailedOperation.FrequencyLimit",
        "InvalidParameter.OperationIsTooFrequent",
    },
)

RECORD_EXISTS_CODES: Final[frozenset[str]] = frozenset({"InvalidParameter.DomainRecordExist"})

DOMAIN_NOT_FOUND_CODES: Final[frozenset[str]] = frozenset(
    {"ResourceNotFound.NoDataOfDomain", "InvalidParameterValue.DomainNotExists"},
)

DOMAIN_LOCKED_CODES: Final[frozenset[str]] = frozenset(
    {
        "FailedOperation.DomainIsLocked",
        "FailedOperation.DomainIsSpam",
        "FailedOperation.AccountIsLocked",
        "InvalidParameter.UserAlreadyLocked",
        "InvalidParameter.DomainIsNotlocked",
        "InvalidParameter.DomainNotAllowedLock",
    },
)

PERMISSION_DENIED_CODES: Final[frozenset[str]] = frozenset(
    {
        "OperationDenied",
        "OperationDenied.AccessDenied",
        "OperationDenied.DomainOwnerAllowedOnly",
        "OperationDenied.NoPermissionToOperateDomain",
        "OperationDenied.NotAdmin",
        "OperationDenied.NotAgent",
        "OperationDenied.NotGrantedByOwner",
        "OperationDenied.NotManagedUser",
        "OperationDenied.NotOrderOwner",
        "OperationDenied.NotResourceOwner",
        "OperationDenied.AgentDenied",
        "OperationDenied.AgentSubordinateDenied",
        "UnauthorizedOperation",
        "FailedOperation.NotDomainOwner",
        "FailedOperation.NotResourceOwner",
        "FailedOperation.NotBatchTaskOwner",
        "InvalidParameter.NoAuthorityToSrcDomain",
        "InvalidParameter.NoAuthorityToTheGroup",
    },
)

INVALID_PARAMETER_CODES: Final[dict[str, str]] = {
    "InvalidParameter.RecordLineInvalid": "line",
    "InvalidParameter.LineNotExist": "line",
    "InvalidParameter.RecordTypeInvalid": "type",
    "InvalidParameter.RecordValueInvalid": "value",
    "InvalidParameter.RecordValueLengthInvalid": "value",
    "InvalidParameter.SubdomainInvalid": "name",
    "LimitExceeded.RecordTtlLimit": "ttl",
    "InvalidParameter.MxInvalid": "priority",
    "InvalidParameter.DomainIdInvalid": "domain",
    "InvalidParameter.DomainInvalid": "domain",
    "InvalidParameter.DomainTooLong": "domain",
    "InvalidParameter.DomainTypeInvalid": "domain",
    "InvalidParameter.RecordIdInvalid": "general",
}


def map_error(raw: RawApiError, ctx: ErrorContext) -> ProviderError:
    """
    Map a Tencent Cloud error code to a semantic error.

    Parameters
    ----------
    raw : RawApiError
        ``Error.Code`` and ``Error.Message`` of the response.
    ctx : ErrorContext
        Call-site information.

    Returns
    -------
    ProviderError
        The mapped error; `ApiError` for unknown codes.
    """
    provider = ProviderType.DNSPOD.value
    code = raw.code or ""

    if code in INVALID_CREDENTIALS_CODES:
        return InvalidCredentialsError(provider, raw.message)
    if code in QUOTA_EXCEEDED_CODES:
        return QuotaExceededError(provider, raw.message)
    if code in RATE_LIMITED_CODES:
        return RateLimitedError(provider, None, raw.message)
    if code in RECORD_EXISTS_CODES:
        return RecordExistsError(provider, ctx.record_name_or_unknown, raw.message)
    if code in DOMAIN_NOT_FOUND_CODES:
        return DomainNotFoundError(provider, ctx.domain_or_unknown, raw.message)
    if code in DOMAIN_LOCKED_CODES:
        return DomainLockedError(provider, ctx.domain_or_unknown, raw.message)
    if code in PERMISSION_DENIED_CODES:
        return PermissionDeniedError(provider, raw.message)
    if code in INVALID_PARAMETER_CODES:
        return InvalidParameterError(provider, INVALID_PARAMETER_CODES[code], raw.message)
    return ApiError(provider, raw.code, raw.message)


# Response shapes


class _DnspodModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TencentError(_DnspodModel):
    code: str = Field(..., alias="Code")
    message: str = Field(..., alias="Message")


class DnspodDomain(_DnspodModel):
    domain_id: int = Field(..., alias="DomainId")
    name: str = Field(..., alias="Name")
    status: str = Field(..., alias="Status")
    dns_status: str = Field(default="", alias="DNSStatus")
    record_count: int | None = Field(default=None, alias="RecordCount")


class DomainCountInfo(_DnspodModel):
    all_total: int | None = Field(default=None, alias="AllTotal")


class DomainListResponse(_DnspodModel):
    domain_list: list[DnspodDomain] | None = Field(default=None, alias="DomainList")
    domain_count_info: DomainCountInfo | None = Field(default=None, alias="DomainCountInfo")


class DescribeDomainInfo(_DnspodModel):
    domain_id: int = Field(..., alias="DomainId")
    domain: str = Field(..., alias="Domain")
    status: str = Field(..., alias="Status")
    dns_status: str = Field(default="", alias="DNSStatus")
    record_count: int | None = Field(default=None, alias="RecordCount")


class DescribeDomainResponse(_DnspodModel):
    domain_info: DescribeDomainInfo = Field(..., alias="DomainInfo")


class DnspodRecord(_DnspodModel):
    record_id: int = Field(..., alias="RecordId")
    name: str = Field(..., alias="Name")
    type: str = Field(..., alias="Type")
    value: str = Field(..., alias="Value")
    ttl: int = Field(..., alias="TTL")
    mx: int | None = Field(default=None, alias="MX")
    updated_on: str | None = Field(default=None, alias="UpdatedOn")


class RecordCountInfo(_DnspodModel):
    total_count: int | None = Field(default=None, alias="TotalCount")


class RecordListResponse(_DnspodModel):
    record_list: list[DnspodRecord] | None = Field(default=None, alias="RecordList")
    record_count_info: RecordCountInfo | None = Field(default=None, alias="RecordCountInfo")


class CreateRecordResponse(_DnspodModel):
    record_id: int = Field(..., alias="RecordId")


def convert_domain_status(status: str, dns_status: str) -> DomainStatus:
    """
    Map DNSPod ``Status`` and ``DNSStatus`` to a `DomainStatus`.

    An enabled zone is active unless its DNS status reports an error.
    """
    status = status.lower()
    if status == "enable":
        if not dns_status:
            return DomainStatus.ACTIVE
        if dns_status.upper() == "DNSERROR":
            return DomainStatus.ERROR
        return DomainStatus.UNKNOWN
    if status == "pause":
        return DomainStatus.PAUSED
    if status == "spam":
        return DomainStatus.ERROR
    return DomainStatus.UNKNOWN


def check_ttl(ttl: int) -> None:
    """
    Reject TTLs below the DNSPod minimum.

    Raises
    ------
    InvalidParameterError
        If `ttl` is below 600 seconds.
    """
    if ttl < MIN_TTL:
        raise InvalidParameterError(
            ProviderType.DNSPOD.value,
            "ttl",
            f"TTL must be at least {MIN_TTL} seconds, got {ttl}",
        )


class DnspodProvider(BaseDNSProvider):
    """
    Tencent Cloud DNSPod provider.

    Authenticates with a SecretId/SecretKey pair.
    """

    PROVIDER: ClassVar[ProviderType] = ProviderType.DNSPOD

    def __init__(
        self,
        credentials: DnspodCredentials,
        http_settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(http_settings, transport)
        self._secret_id = credentials.secret_id
        self._secret_key = credentials.secret_key
        self._domain_cache = DomainCache()

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        """Get the DNSPod provider description."""
        return ProviderMetadata(
            id=ProviderType.DNSPOD,
            name="Tencent Cloud DNSPod",
            description="Tencent Cloud DNS resolution service",
            required_fields=[
                ProviderCredentialField(
                    key="secretId",
                    label="SecretId",
                    type=FieldType.TEXT,
                    placeholder="Enter SecretId",
                ),
                ProviderCredentialField(
                    key="secretKey",
                    label="SecretKey",
                    type=FieldType.PASSWORD,
                    placeholder="Enter SecretKey",
                ),
            ],
            limits=ProviderLimits(
                max_page_size_domains=MAX_PAGE_SIZE,
                max_page_size_records=MAX_PAGE_SIZE,
            ),
        )

    # HTTP

    def _signed_headers(self, action: str, payload: str) -> dict[str, str]:
        timestamp = int(utc_now().timestamp())
        authorization = sign_tc3(
            self._secret_id,
            self._secret_key,
            action=action,
            payload=payload,
            timestamp=timestamp,
            host=DNSPOD_API_HOST,
            service=DNSPOD_SERVICE,
        )
        return {
            "Content-Type": TC3_CONTENT_TYPE,
            "Host": DNSPOD_API_HOST,
            "X-TC-Action": action,
            "X-TC-Version": DNSPOD_VERSION,
            "X-TC-Timestamp": str(timestamp),
            "Authorization": authorization,
        }

    async def _request(
        self,
        action: str,
        body: dict[str, Any],
        ctx: ErrorContext,
    ) -> dict[str, Any]:
        """
        Call an action and return the decoded ``Response`` object.

        Raises
        ------
        SerializationError
            If the body cannot be encoded.
        ParseError
            If the response is not a ``{"Response": {...}}`` envelope.
        ProviderError
            The mapped error when ``Response.Error`` is present.
        """
        try:
            payload = json.dumps(
                {key: value for key, value in body.items() if value is not None},
                ensure_ascii=False,
            )
        except (TypeError, ValueError) as e:
            raise SerializationError(self.id, str(e)) from e
        logger.debug("[dnspod] Request body: %s", truncate_for_log(payload))

        _, text = await self.http.request(
            "POST",
            f"https://{DNSPOD_API_HOST}",
            headers=lambda: self._signed_headers(action, payload),
            content=payload.encode("utf-8"),
        )

        try:
            envelope = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(self.id, f"Invalid JSON: {e}") from e
        response = envelope.get("Response") if isinstance(envelope, dict) else None
        if not isinstance(response, dict):
            raise ParseError(self.id, "Missing 'Response' object")

        if "Error" in response:
            try:
                error = TencentError.model_validate(response["Error"])
            except ValidationError as e:
                raise ParseError(self.id, f"Failed to parse error: {e}") from e
            logger.error("[dnspod] API error: %s - %s", error.code, error.message)
            raise map_error(RawApiError(code=error.code, message=error.message), ctx)

        return response

    def _parse(self, model: type[BaseModel], value: dict[str, Any]) -> Any:
        try:
            return model.model_validate(value)
        except ValidationError as e:
            raise ParseError(self.id, str(e)) from e

    async def _resolve_domain(self, domain_id: str) -> ProviderDomain:
        cached = self._domain_cache.get(domain_id)
        if cached is not None:
            return cached
        return await self.get_domain(domain_id)

    def _parse_record_id(self, record_id: str) -> int:
        try:
            return int(record_id)
        except ValueError:
            raise RecordNotFoundError(self.id, record_id) from None

    # Operations

    async def validate_credentials(self) -> bool:
        """Call ``DescribeDomainList`` with a limit of 1."""
        try:
            await self._request("DescribeDomainList", {"Offset": 0, "Limit": 1}, ErrorContext())
        except InvalidCredentialsError as e:
            logger.warning("[dnspod] Credential validation failed: %s", e)
            return False
        return True

    async def list_domains(
        self,
        params: PaginationParams,
    ) -> PaginatedResponse[ProviderDomain]:
        """List domains, at most 100 per page (translated to offset/limit)."""
        params = params.validated(MAX_PAGE_SIZE)
        value = await self._request(
            "DescribeDomainList",
            {"Offset": (params.page - 1) * params.page_size, "Limit": params.page_size},
            ErrorContext(),
        )
        response: DomainListResponse = self._parse(DomainListResponse, value)

        domains = [
            ProviderDomain(
                id=str(d.domain_id),
                name=d.name,
                provider=ProviderType.DNSPOD,
                status=convert_domain_status(d.status, d.dns_status),
                record_count=d.record_count,
            )
            for d in response.domain_list or []
        ]
        for domain in domains:
            self._domain_cache.insert(domain.id, domain)

        total = response.domain_count_info.all_total if response.domain_count_info else None
        return PaginatedResponse[ProviderDomain](
            items=domains,
            page=params.page,
            page_size=params.page_size,
            total_count=total or 0,
        )

    async def get_domain(self, domain_id: str) -> ProviderDomain:
        """
        Get a domain by name or numeric ID.

        A name (containing a dot) is looked up with ``DescribeDomain``; a
        numeric ID is searched in the first page of ``DescribeDomainList``.

        Raises
        ------
        DomainNotFoundError
            If a numeric ID is not among the listed domains.
        """
        if "." in domain_id:
            ctx = ErrorContext(domain=domain_id)
            value = await self._request("DescribeDomain", {"Domain": domain_id}, ctx)
            info = self._parse(DescribeDomainResponse, value).domain_info
            domain = ProviderDomain(
                id=str(info.domain_id),
                name=info.domain,
                provider=ProviderType.DNSPOD,
                status=convert_domain_status(info.status, info.dns_status),
                record_count=info.record_count,
            )
            self._domain_cache.insert(domain_id, domain)
            self._domain_cache.insert(domain.id, domain)
            return domain

        page = await self.list_domains(PaginationParams(page=1, page_size=MAX_PAGE_SIZE))
        for domain in page.items:
            if domain.id == domain_id:
                return domain
        raise DomainNotFoundError(self.id, domain_id)

    async def list_records(
        self,
        domain_id: str,
        params: RecordQueryParams,
    ) -> PaginatedResponse[DnsRecord]:
        """
        List records, at most 100 per page.

        A zone without matching records yields an empty page instead of
        an error. Records of unsupported types are skipped.
        """
        params = params.validated(MAX_PAGE_SIZE)
        domain = await self._resolve_domain(domain_id)
        ctx = ErrorContext(domain=domain_id)

        try:
            value = await self._request(
                "DescribeRecordList",
                {
                    "Domain": domain.name,
                    "Offset": (params.page - 1) * params.page_size,
                    "Limit": params.page_size,
                    "Keyword": params.keyword or None,
                    "RecordType": params.record_type.value if params.record_type else None,
                },
                ctx,
            )
        except ApiError as e:
            if e.raw_code != NO_DATA_OF_RECORD:
                raise
            return PaginatedResponse[DnsRecord](
                items=[],
                page=params.page,
                page_size=params.page_size,
                total_count=0,
            )
        response: RecordListResponse = self._parse(RecordListResponse, value)

        records: list[DnsRecord] = []
        for raw in response.record_list or []:
            try:
                data = record_data_from_value(raw.type, raw.value, self.id, raw.mx)
            except UnsupportedRecordTypeError:
                continue
            except ParseError as e:
                logger.warning("[dnspod] Skipping record due to parse error: %s", e)
                continue
            records.append(
                DnsRecord(
                    id=str(raw.record_id),
                    domain_id=domain_id,
                    name=raw.name,
                    ttl=raw.ttl,
                    data=data,
                    updated_at=parse_optional_timestamp(raw.updated_on),
                ),
            )

        total = response.record_count_info.total_count if response.record_count_info else None
        return PaginatedResponse[DnsRecord](
            items=records,
            page=params.page,
            page_size=params.page_size,
            total_count=total or 0,
        )

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        """Create a record on the default line with ``CreateRecord``."""
        check_ttl(request.ttl)
        domain = await self._resolve_domain(request.domain_id)
        value, mx = record_data_to_value_priority(request.data)
        ctx = ErrorContext(record_name=request.name, domain=request.domain_id)

        result = await self._request(
            "CreateRecord",
            {
                "Domain": domain.name,
                "SubDomain": request.name,
                "RecordType": request.data.type,
                "RecordLine": DEFAULT_RECORD_LINE,
                "Value": value,
                "TTL": request.ttl,
                "MX": mx,
            },
            ctx,
        )
        response: CreateRecordResponse = self._parse(CreateRecordResponse, result)
        logger.info("[dnspod] Created %s record: %s", request.data.type, request.name)

        now = utc_now()
        return DnsRecord(
            id=str(response.record_id),
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
        """Replace a record with ``ModifyRecord``."""
        check_ttl(request.ttl)
        record_id_num = self._parse_record_id(record_id)
        domain = await self._resolve_domain(request.domain_id)
        value, mx = record_data_to_value_priority(request.data)
        ctx = ErrorContext(
            record_name=request.name,
            record_id=record_id,
            domain=request.domain_id,
        )

        await self._request(
            "ModifyRecord",
            {
                "Domain": domain.name,
                "RecordId": record_id_num,
                "SubDomain": request.name,
                "RecordType": request.data.type,
                "RecordLine": DEFAULT_RECORD_LINE,
                "Value": value,
                "TTL": request.ttl,
                "MX": mx,
            },
            ctx,
        )
        logger.info("[dnspod] Updated %s record: %s", request.data.type, request.name)

        return DnsRecord(
            id=record_id,
            domain_id=request.domain_id,
            name=request.name,
            ttl=request.ttl,
            data=request.data,
            updated_at=utc_now(),
        )

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        """Delete a record with ``DeleteRecord``."""
        record_id_num = self._parse_record_id(record_id)
        domain = await self._resolve_domain(domain_id)
        ctx = ErrorContext(record_id=record_id, domain=domain_id)
        await self._request(
            "DeleteRecord",
            {"Domain": domain.name, "RecordId": record_id_num},
            ctx,
        )
        logger.info("[dnspod] Deleted record %s", record_id)
