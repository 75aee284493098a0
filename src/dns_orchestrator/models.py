"""
Data models for DNS Orchestrator.

This module defines the provider-agnostic DNS model shared by every
provider implementation and service: provider and record-type enumerations,
the tagged `RecordData` union, records, domains, pagination and batch
results, and static provider metadata.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from dns_orchestrator.timeutil import UtcDatetime  # noqa: TC001

if TYPE_CHECKING:
    from typing import Self


T = TypeVar("T")


CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderType(StrEnum):
    """
    Supported DNS providers.

    Attributes
    ----------
    CLOUDFLARE : str
        CloudFlare DNS (API v4, bearer token).
    ALIYUN : str
        Alibaba Cloud DNS (alidns, ACS3-HMAC-SHA256).
    DNSPOD : str
        Tencent Cloud DNSPod (TC3-HMAC-SHA256).
    HUAWEICLOUD : str
        Huawei Cloud DNS (SDK-HMAC-SHA256).
    """

    CLOUDFLARE = "cloudflare"
    ALIYUN = "aliyun"
    DNSPOD = "dnspod"
    HUAWEICLOUD = "huaweicloud"


class DomainStatus(StrEnum):
    """Normalized zone status."""

    ACTIVE = "active"
    PAUSED = "paused"
    PENDING = "pending"
    ERROR = "error"
    UNKNOWN = "unknown"


class DnsRecordType(StrEnum):
    """
    Supported DNS record types.

    Attributes
    ----------
    A : str
        IPv4 address record.
    AAAA : str
        IPv6 address record.
    CNAME : str
        Canonical name (alias) record.
    MX : str
        Mail exchange record.
    TXT : str
        Text record.
    NS : str
        Name server record.
    SRV : str
        Service locator record.
    CAA : str
        Certification authority authorization record.
    """

    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    NS = "NS"
    SRV = "SRV"
    CAA = "CAA"


# Record data variants


Port = Annotated[int, Field(ge=0, le=65535)]


class ARecordData(BaseModel):
    """IPv4 address."""

    type: Literal["A"] = "A"
    address: str = Field(..., min_length=1)

    def display_value(self) -> str:
        return self.address


class AAAARecordData(BaseModel):
    """IPv6 address."""

    type: Literal["AAAA"] = "AAAA"
    address: str = Field(..., min_length=1)

    def display_value(self) -> str:
        return self.address


class CNAMERecordData(BaseModel):
    """Alias target."""

    type: Literal["CNAME"] = "CNAME"
    target: str = Field(..., min_length=1)

    def display_value(self) -> str:
        return self.target


class MXRecordData(BaseModel):
    """Mail exchanger with priority."""

    type: Literal["MX"] = "MX"
    priority: Port
    exchange: str = Field(..., min_length=1)

    def display_value(self) -> str:
        return f"{self.priority} {self.exchange}"


class TXTRecordData(BaseModel):
    """Free-form text."""

    type: Literal["TXT"] = "TXT"
    text: str

    def display_value(self) -> str:
        return self.text


class NSRecordData(BaseModel):
    """Delegated name server."""

    type: Literal["NS"] = "NS"
    nameserver: str = Field(..., min_length=1)

    def display_value(self) -> str:
        return self.nameserver


class SRVRecordData(BaseModel):
    """Service locator."""

    type: Literal["SRV"] = "SRV"
    priority: Port
    weight: Port
    port: Port
    target: str = Field(..., min_length=1)

    def display_value(self) -> str:
        return f"{self.priority} {self.weight} {self.port} {self.target}"


class CAARecordData(BaseModel):
    """Certification authority authorization."""

    type: Literal["CAA"] = "CAA"
    flags: int = Field(..., ge=0, le=255)
    tag: str = Field(..., min_length=1)
    value: str

    def display_value(self) -> str:
        return f'{self.flags} {self.tag} "{self.value}"'


RecordData = Annotated[
    ARecordData
    | AAAARecordData
    | CNAMERecordData
    | MXRecordData
    | TXTRecordData
    | NSRecordData
    | SRVRecordData
    | CAARecordData,
    Field(discriminator="type"),
]


def record_type_of(data: RecordData) -> DnsRecordType:
    """Get the `DnsRecordType` of a record data variant."""
    return DnsRecordType(data.type)


class DnsRecord(BaseModel):
    """
    A single DNS record in the unified model.

    Attributes
    ----------
    id : str
        Provider-issued record identifier.
    domain_id : str
        Identifier of the owning zone.
    name : str
        Record name relative to the zone, ``@`` for the apex.
    ttl : int
        Time to live in seconds.
    data : RecordData
        Typed record payload.
    proxied : bool | None
        CloudFlare proxy flag (None for other providers).
    created_at : datetime | None
        Creation time, when the provider reports it.
    updated_at : datetime | None
        Last modification time, when the provider reports it.
    """

    model_config = CAMEL_CONFIG

    id: str
    domain_id: str
    name: str
    ttl: int
    data: RecordData
    proxied: bool | None = None
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None

    @property
    def record_type(self) -> DnsRecordType:
        return record_type_of(self.data)


class ProviderDomain(BaseModel):
    """
    A DNS zone as reported by a provider.

    Attributes
    ----------
    id : str
        Provider-issued zone identifier.
    name : str
        Zone name, without trailing dot.
    provider : ProviderType
        The provider that owns the zone.
    status : DomainStatus
        Normalized zone status.
    record_count : int | None
        Number of records, when the provider reports it.
    """

    model_config = CAMEL_CONFIG

    id: str
    name: str
    provider: ProviderType
    status: DomainStatus = DomainStatus.UNKNOWN
    record_count: int | None = None


class AppDomain(ProviderDomain):
    """A `ProviderDomain` bound to the account it was listed through."""

    account_id: str

    @classmethod
    def from_provider(cls, domain: ProviderDomain, account_id: str) -> Self:
        return cls(**domain.model_dump(), account_id=account_id)


class PaginationParams(BaseModel):
    """
    Page request (1-based page numbers).

    Attributes
    ----------
    page : int
        Page number, starting at 1.
    page_size : int
        Items per page.
    """

    model_config = CAMEL_CONFIG

    page: int = 1
    page_size: int = 20

    def validated(self, max_page_size: int) -> Self:
        """
        Clamp the page to >= 1 and the page size to ``1..max_page_size``.

        Parameters
        ----------
        max_page_size : int
            Provider API ceiling.

        Returns
        -------
        Self
            A clamped copy.
        """
        return self.model_copy(
            update={
                "page": max(self.page, 1),
                "page_size": min(max(self.page_size, 1), max_page_size),
            },
        )


class RecordQueryParams(PaginationParams):
    """Page request for records, with optional keyword and type filters."""

    keyword: str | None = None
    record_type: DnsRecordType | None = None


class PaginatedResponse(BaseModel, Generic[T]):
    """
    One page of results.

    Attributes
    ----------
    items : list[T]
        Items on this page.
    page : int
        Page number (1-based).
    page_size : int
        Requested page size after clamping.
    total_count : int
        Total number of items across all pages.
    """

    model_config = CAMEL_CONFIG

    items: list[T]
    page: int
    page_size: int
    total_count: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        """Whether a further page exists."""
        return self.page * self.page_size < self.total_count


class CreateDnsRecordRequest(BaseModel):
    """
    Record creation request.

    Attributes
    ----------
    domain_id : str
        Target zone identifier.
    name : str
        Record name relative to the zone (``@`` for the apex).
    ttl : int
        Time to live in seconds.
    data : RecordData
        Typed record payload.
    proxied : bool | None
        CloudFlare proxy flag.
    """

    model_config = CAMEL_CONFIG

    domain_id: str = Field(..., min_length=1)
    name: str
    ttl: int = Field(..., ge=1)
    data: RecordData
    proxied: bool | None = None


class UpdateDnsRecordRequest(CreateDnsRecordRequest):
    """Record update request (full replacement of name, TTL and data)."""


class BatchUpdateItem(BaseModel):
    """One record of a batch update."""

    model_config = CAMEL_CONFIG

    record_id: str
    request: UpdateDnsRecordRequest


class BatchDeleteRequest(BaseModel):
    """Delete several records of one zone."""

    model_config = CAMEL_CONFIG

    domain_id: str
    record_ids: list[str]


class BatchFailure(BaseModel):
    """One failed item of a batch operation."""

    id: str
    reason: str


class BatchResult(BaseModel):
    """
    Aggregate outcome of a batch operation.

    Attributes
    ----------
    success_count : int
        Items that succeeded.
    failed_count : int
        Items that failed.
    failures : list[BatchFailure]
        Per-item failure reasons.
    """

    model_config = CAMEL_CONFIG

    success_count: int = 0
    failed_count: int = 0
    failures: list[BatchFailure] = Field(default_factory=list)

    @classmethod
    def from_outcomes(cls, success_count: int, failures: list[BatchFailure]) -> Self:
        return cls(
            success_count=success_count,
            failed_count=len(failures),
            failures=failures,
        )


class BatchCreateResult(BatchResult):
    """Outcome of `batch_create_records`; the created records are kept."""

    records: list[DnsRecord] = Field(default_factory=list)


class BatchUpdateResult(BatchResult):
    """Outcome of `batch_update_records`; the updated records are kept."""

    records: list[DnsRecord] = Field(default_factory=list)


class BatchDeleteResult(BatchResult):
    """Outcome of a batch delete (records or accounts)."""


# Provider metadata


class FieldType(StrEnum):
    """Input kind of a credential field."""

    TEXT = "text"
    PASSWORD = "password"  # noqa: S105


class ProviderCredentialField(BaseModel):
    """A credential field a provider requires."""

    model_config = CAMEL_CONFIG

    key: str
    label: str
    type: FieldType
    placeholder: str | None = None
    help_text: str | None = None


class ProviderFeatures(BaseModel):
    """Optional provider capabilities."""

    proxy: bool = False


class ProviderLimits(BaseModel):
    """Per-page ceilings of the provider API."""

    model_config = CAMEL_CONFIG

    max_page_size_domains: int
    max_page_size_records: int


class ProviderMetadata(BaseModel):
    """
    Static description of a provider.

    Attributes
    ----------
    id : ProviderType
        Provider tag.
    name : str
        Display name.
    description : str
        Short description.
    required_fields : list[ProviderCredentialField]
        Credential fields needed to build the provider.
    features : ProviderFeatures
        Capability flags.
    limits : ProviderLimits
        Pagination ceilings.
    """

    model_config = CAMEL_CONFIG

    id: ProviderType
    name: str
    description: str
    required_fields: list[ProviderCredentialField]
    features: ProviderFeatures = Field(default_factory=ProviderFeatures)
    limits: ProviderLimits
