"""
CloudFlare DNS provider implementation.

This module implements the CloudFlare API v4 (zones and DNS records).
Only API Token authentication is supported (not Global API Key).
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ValidationError

from dns_orchestrator.errors import (
    ApiError,
    DomainNotFoundError,
    ErrorContext,
    InvalidCredentialsError,
    InvalidParameterError,
    ParseError,
    QuotaExceededError,
    RawApiError,
    RecordExistsError,
    RecordNotFoundError,
    UnsupportedRecordTypeError,
)
from dns_orchestrator.models import (
    AAAARecordData,
    ARecordData,
    CAARecordData,
    CNAMERecordData,
    DnsRecord,
    DomainStatus,
    FieldType,
    MXRecordData,
    NSRecordData,
    PaginatedResponse,
    ProviderCredentialField,
    ProviderDomain,
    ProviderFeatures,
    ProviderLimits,
    ProviderMetadata,
    ProviderType,
    SRVRecordData,
    TXTRecordData,
)
from dns_orchestrator.providers.base import BaseDNSProvider
from dns_orchestrator.providers.common import (
    DomainCache,
    full_name_to_relative,
    parse_caa,
    parse_optional_timestamp,
    parse_srv,
    relative_to_full_name,
)

if TYPE_CHECKING:
    from typing import Final

    import httpx

    from dns_orchestrator.credentials import CloudflareCredentials
    from dns_orchestrator.errors import ProviderError
    from dns_orchestrator.models import (
        CreateDnsRecordRequest,
        PaginationParams,
        RecordData,
        RecordQueryParams,
        UpdateDnsRecordRequest,
    )
    from dns_orchestrator.providers.http_client import HttpSettings


# CloudFlare API base URL
CF_API_BASE: Final[str] = "https://api.cloudflare.com/client/v4"

MAX_PAGE_SIZE_ZONES: Final[int] = 50
MAX_PAGE_SIZE_RECORDS: Final[int] = 100

TTL_AUTO: Final[int] = 1
TTL_MIN: Final[int] = 120
TTL_MAX: Final[int] = 2_147_483_647

PROXIABLE_TYPES: Final[frozenset[str]] = frozenset({"A", "AAAA", "CNAME"})


logger = logging.getLogger(__name__)


# Error mapping
# Reference: https://api.cloudflare.com/#getting-started-responses

INVALID_CREDENTIALS_CODES: Final[frozenset[str]] = frozenset(
    {"1000", "6003", "6103", "6111", "9109", "10000"},
)

INVALID_PARAMETER_CODES: Final[dict[str, str]] = {
    "1004": "general",
    "9000": "name",
    "9005": "value",
    "9006": "value",
    "9009": "value",
    "9021": "ttl",
    "9041": "proxied",
}

RECORD_EXISTS_CODES: Final[frozenset[str]] = frozenset(
    {"81053", "81054", "81055", "81056", "81057", "81058"},
)

DOMAIN_NOT_FOUND_CODES: Final[frozenset[str]] = frozenset({"7000", "7003"})


def map_error(raw: RawApiError, ctx: ErrorContext) -> ProviderError:
    """
    Map a CloudFlare error code to a semantic error.

    Parameters
    ----------
    raw : RawApiError
        Code and message from the ``errors`` array.
    ctx : ErrorContext
        Call-site information.

    Returns
    -------
    ProviderError
        The mapped error; `ApiError` for unknown codes.
    """
    provider = ProviderType.CLOUDFLARE.value
    code = raw.code

    if code in INVALID_CREDENTIALS_CODES:
        return InvalidCredentialsError(provider, raw.message)
    if code in INVALID_PARAMETER_CODES:
        return InvalidParameterError(provider, INVALID_PARAMETER_CODES[code], raw.message)
    if code in RECORD_EXISTS_CODES:
        return RecordExistsError(provider, ctx.record_name_or_unknown, raw.message)
    if code == "81044":
        return RecordNotFoundError(provider, ctx.record_id_or_unknown, raw.message)
    if code == "81045":
        return QuotaExceededError(provider, raw.message)
    if code in DOMAIN_NOT_FOUND_CODES:
        return DomainNotFoundError(provider, ctx.domain_or_unknown, raw.message)
    return ApiError(provider, code, raw.message)


# Response shapes


class CloudflareApiError(BaseModel):
    code: int
    message: str = ""


class CloudflareResultInfo(BaseModel):
    total_count: int = 0


class CloudflareEnvelope(BaseModel):
    success: bool
    result: Any = None
    errors: list[CloudflareApiError] | None = None
    result_info: CloudflareResultInfo | None = None


class CloudflareZone(BaseModel):
    id: str
    name: str
    status: str = ""


class CloudflareDnsRecord(BaseModel):
    id: str
    type: str
    name: str
    content: str = ""
    ttl: int
    priority: int | None = None
    proxied: bool | None = None
    created_on: str | None = None
    modified_on: str | None = None
    data: dict[str, Any] | None = None


ZONE_STATUS_MAP: Final[dict[str, DomainStatus]] = {
    "active": DomainStatus.ACTIVE,
    "pending": DomainStatus.PENDING,
    "initializing": DomainStatus.PENDING,
    "moved": DomainStatus.PAUSED,
}


def check_ttl(ttl: int) -> None:
    """
    Check a TTL against CloudFlare's bounds.

    Raises
    ------
    InvalidParameterError
        Unless `ttl` is 1 (automatic) or within 120..2147483647.
    """
    if ttl != TTL_AUTO and not TTL_MIN <= ttl <= TTL_MAX:
        raise InvalidParameterError(
            ProviderType.CLOUDFLARE.value,
            "ttl",
            f"TTL must be 1 (automatic) or between {TTL_MIN} and {TTL_MAX}, got {ttl}",
        )


class CloudflareProvider(BaseDNSProvider):
    """
    CloudFlare DNS provider.

    Uses CloudFlare API v4 with API Token authentication. Zone names are
    cached per instance to avoid a zone lookup on every record call.
    """

    PROVIDER: ClassVar[ProviderType] = ProviderType.CLOUDFLARE

    def __init__(
        self,
        credentials: CloudflareCredentials,
        http_settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the provider.

        Parameters
        ----------
        credentials : CloudflareCredentials
            API token.
        http_settings : HttpSettings | None, optional
            HTTP client settings.
        transport : httpx.AsyncBaseTransport | None, optional
            Custom transport, used by tests.
        """
        super().__init__(http_settings, transport)
        self._api_token = credentials.api_token
        self._domain_cache = DomainCache()

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        """Get the CloudFlare provider description."""
        return ProviderMetadata(
            id=ProviderType.CLOUDFLARE,
            name="Cloudflare",
            description="Global CDN and DNS provider",
            required_fields=[
                ProviderCredentialField(
                    key="apiToken",
                    label="API Token",
                    type=FieldType.PASSWORD,
                    placeholder="Enter your Cloudflare API Token",
                    help_text="Create one in Cloudflare Dashboard -> My Profile -> API Tokens",
                ),
            ],
            features=ProviderFeatures(proxy=True),
            limits=ProviderLimits(
                max_page_size_domains=MAX_PAGE_SIZE_ZONES,
                max_page_size_records=MAX_PAGE_SIZE_RECORDS,
            ),
        )

    # HTTP

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        ctx: ErrorContext,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> CloudflareEnvelope:
        """
        Send a request and unwrap the CloudFlare envelope.

        Raises
        ------
        ParseError
            If the response is not a CloudFlare envelope.
        ProviderError
            The mapped error when ``success`` is false.
        """
        url = f"{CF_API_BASE}{path}"
        content = None
        if body is not None:
            content = json.dumps(body).encode("utf-8")

        _, text = await self.http.request(
            method,
            url,
            headers=self._headers(),
            params=params,
            content=content,
        )

        try:
            envelope = CloudflareEnvelope.model_validate_json(text)
        except ValidationError as e:
            raise ParseError(self.id, f"Unexpected response: {e}") from e

        if not envelope.success:
            if envelope.errors:
                first = envelope.errors[0]
                raw = RawApiError(code=str(first.code), message=first.message)
            else:
                raw = RawApiError(message="Unknown error")
            logger.error("[cloudflare] API error: %s - %s", raw.code, raw.message)
            raise map_error(raw, ctx)

        return envelope

    def _parse_result(self, model: type[BaseModel], value: Any) -> Any:
        if value is None:
            raise ParseError(self.id, "Missing 'result' field in response")
        try:
            return model.model_validate(value)
        except ValidationError as e:
            raise ParseError(self.id, str(e)) from e

    # Conversions

    @staticmethod
    def _zone_to_domain(zone: CloudflareZone) -> ProviderDomain:
        return ProviderDomain(
            id=zone.id,
            name=zone.name,
            provider=ProviderType.CLOUDFLARE,
            status=ZONE_STATUS_MAP.get(zone.status, DomainStatus.UNKNOWN),
        )

    def _parse_record_data(self, record: CloudflareDnsRecord) -> RecordData:
        content = record.content
        try:
            match record.type:
                case "A":
                    return ARecordData(address=content)
                case "AAAA":
                    return AAAARecordData(address=content)
                case "CNAME":
                    return CNAMERecordData(target=content)
                case "MX":
                    if record.priority is None:
                        raise ParseError(self.id, "MX record missing priority field")
                    return MXRecordData(priority=record.priority, exchange=content)
                case "TXT":
                    return TXTRecordData(text=content)
                case "NS":
                    return NSRecordData(nameserver=content)
                case "SRV":
                    if record.data is not None:
                        fields = ("priority", "weight", "port", "target")
                        return SRVRecordData.model_validate(
                            {key: record.data.get(key) for key in fields},
                        )
                    if record.priority is None:
                        raise ParseError(self.id, "SRV record missing priority field")
                    return parse_srv(f"{record.priority} {content}", self.id)
                case "CAA":
                    if record.data is not None:
                        fields = ("flags", "tag", "value")
                        return CAARecordData.model_validate(
                            {key: record.data.get(key) for key in fields},
                        )
                    return parse_caa(content, self.id)
        except ValidationError as e:
            raise ParseError(self.id, f"Invalid {record.type} record data: {e}") from e
        raise UnsupportedRecordTypeError(self.id, record.type)

    def _to_dns_record(self, record: CloudflareDnsRecord, zone_id: str, zone_name: str) -> DnsRecord:
        return DnsRecord(
            id=record.id,
            domain_id=zone_id,
            name=full_name_to_relative(record.name, zone_name),
            ttl=record.ttl,
            data=self._parse_record_data(record),
            proxied=record.proxied,
            created_at=parse_optional_timestamp(record.created_on),
            updated_at=parse_optional_timestamp(record.modified_on),
        )

    @staticmethod
    def _build_record_body(
        full_name: str,
        ttl: int,
        data: RecordData,
        proxied: bool | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"type": data.type, "name": full_name, "ttl": ttl}

        if isinstance(data, SRVRecordData):
            body["data"] = {
                "priority": data.priority,
                "weight": data.weight,
                "port": data.port,
                "target": data.target,
            }
        elif isinstance(data, CAARecordData):
            body["data"] = {"flags": data.flags, "tag": data.tag, "value": data.value}
        elif isinstance(data, MXRecordData):
            body["content"] = data.exchange
            body["priority"] = data.priority
        else:
            body["content"] = data.display_value()

        if proxied is not None and data.type in PROXIABLE_TYPES:
            body["proxied"] = proxied
        return body

    async def _zone(self, domain_id: str, ctx: ErrorContext) -> ProviderDomain:
        cached = self._domain_cache.get(domain_id)
        if cached is not None:
            return cached
        envelope = await self._request("GET", f"/zones/{domain_id}", ctx)
        domain = self._zone_to_domain(self._parse_result(CloudflareZone, envelope.result))
        self._domain_cache.insert(domain_id, domain)
        return domain

    # Operations

    async def validate_credentials(self) -> bool:
        """
        Verify the API token.

        Returns
        -------
        bool
            True if the token is active, False if CloudFlare rejected it.
        """
        try:
            envelope = await self._request("GET", "/user/tokens/verify", ErrorContext())
        except InvalidCredentialsError as e:
            logger.warning("[cloudflare] Credential validation failed: %s", e)
            return False

        result = envelope.result if isinstance(envelope.result, dict) else {}
        return result.get("status") == "active"

    async def list_domains(
        self,
        params: PaginationParams,
    ) -> PaginatedResponse[ProviderDomain]:
        """List zones, at most 50 per page."""
        params = params.validated(MAX_PAGE_SIZE_ZONES)
        envelope = await self._request(
            "GET",
            "/zones",
            ErrorContext(),
            params={"page": params.page, "per_page": params.page_size},
        )

        zones = envelope.result or []
        if not isinstance(zones, list):
            raise ParseError(self.id, "Expected a list of zones")
        domains = [self._zone_to_domain(self._parse_result(CloudflareZone, zone)) for zone in zones]
        total = envelope.result_info.total_count if envelope.result_info else len(domains)

        return PaginatedResponse[ProviderDomain](
            items=domains,
            page=params.page,
            page_size=params.page_size,
            total_count=total,
        )

    async def get_domain(self, domain_id: str) -> ProviderDomain:
        """Get a zone by ID."""
        ctx = ErrorContext(domain=domain_id)
        envelope = await self._request("GET", f"/zones/{domain_id}", ctx)
        domain = self._zone_to_domain(self._parse_result(CloudflareZone, envelope.result))
        self._domain_cache.insert(domain_id, domain)
        return domain

    async def list_records(
        self,
        domain_id: str,
        params: RecordQueryParams,
    ) -> PaginatedResponse[DnsRecord]:
        """
        List records of a zone, at most 100 per page.

        The keyword filters on record name (``name.contains``). Records of
        unsupported types, or whose data cannot be parsed, are skipped.
        """
        ctx = ErrorContext(domain=domain_id)
        zone = await self._zone(domain_id, ctx)
        params = params.validated(MAX_PAGE_SIZE_RECORDS)

        query: dict[str, Any] = {"page": params.page, "per_page": params.page_size}
        if params.keyword:
            query["name.contains"] = params.keyword
        if params.record_type is not None:
            query["type"] = params.record_type.value

        envelope = await self._request(
            "GET",
            f"/zones/{domain_id}/dns_records",
            ctx,
            params=query,
        )

        raw_records = envelope.result or []
        if not isinstance(raw_records, list):
            raise ParseError(self.id, "Expected a list of DNS records")
        records: list[DnsRecord] = []
        for item in raw_records:
            raw = self._parse_result(CloudflareDnsRecord, item)
            try:
                records.append(self._to_dns_record(raw, domain_id, zone.name))
            except UnsupportedRecordTypeError:
                logger.debug("[cloudflare] Skipping unsupported %s record %s", raw.type, raw.id)
            except ParseError as e:
                logger.warning("[cloudflare] Skipping record due to parse error: %s", e)
        total = envelope.result_info.total_count if envelope.result_info else len(records)

        return PaginatedResponse[DnsRecord](
            items=records,
            page=params.page,
            page_size=params.page_size,
            total_count=total,
        )

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        """Create a record."""
        check_ttl(request.ttl)
        ctx = ErrorContext(record_name=request.name, domain=request.domain_id)
        zone = await self._zone(request.domain_id, ctx)

        body = self._build_record_body(
            relative_to_full_name(request.name, zone.name),
            request.ttl,
            request.data,
            request.proxied,
        )
        envelope = await self._request(
            "POST",
            f"/zones/{request.domain_id}/dns_records",
            ctx,
            body=body,
        )
        record = self._parse_result(CloudflareDnsRecord, envelope.result)
        logger.info("[cloudflare] Created %s record: %s", record.type, record.name)
        return self._to_dns_record(record, request.domain_id, zone.name)

    async def update_record(
        self,
        record_id: str,
        request: UpdateDnsRecordRequest,
    ) -> DnsRecord:
        """Update a record (PATCH)."""
        check_ttl(request.ttl)
        ctx = ErrorContext(
            record_name=request.name,
            record_id=record_id,
            domain=request.domain_id,
        )
        zone = await self._zone(request.domain_id, ctx)

        body = self._build_record_body(
            relative_to_full_name(request.name, zone.name),
            request.ttl,
            request.data,
            request.proxied,
        )
        envelope = await self._request(
            "PATCH",
            f"/zones/{request.domain_id}/dns_records/{record_id}",
            ctx,
            body=body,
        )
        record = self._parse_result(CloudflareDnsRecord, envelope.result)
        logger.info("[cloudflare] Updated %s record: %s", record.type, record.name)
        return self._to_dns_record(record, request.domain_id, zone.name)

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        """Delete a record."""
        ctx = ErrorContext(record_id=record_id, domain=domain_id)
        await self._request("DELETE", f"/zones/{domain_id}/dns_records/{record_id}", ctx)
        logger.info("[cloudflare] Deleted record %s", record_id)

