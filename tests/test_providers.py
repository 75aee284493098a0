"""Tests for the DNS provider implementations."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from conftest import FAST_HTTP, GOOD_TOKEN, ZONE_ID, FakeCloudflare, cf_failure, cf_success
from dns_orchestrator.credentials import (
    AliyunCredentials,
    CloudflareCredentials,
    DnspodCredentials,
    HuaweicloudCredentials,
)
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
)
from dns_orchestrator.models import (
    ARecordData,
    BatchUpdateItem,
    CreateDnsRecordRequest,
    DnsRecordType,
    DomainStatus,
    MXRecordData,
    PaginationParams,
    ProviderType,
    RecordQueryParams,
    SRVRecordData,
    TXTRecordData,
    UpdateDnsRecordRequest,
)
from dns_orchestrator.providers import aliyun, cloudflare, dnspod, huaweicloud
from dns_orchestrator.providers.aliyun import AliyunProvider
from dns_orchestrator.providers.cloudflare import CloudflareProvider
from dns_orchestrator.providers.dnspod import DnspodProvider
from dns_orchestrator.providers.factory import create_provider, get_all_provider_metadata
from dns_orchestrator.providers.huaweicloud import HuaweicloudProvider


def _create(domain_id: str, name: str, ttl: int = 600, **data: Any) -> CreateDnsRecordRequest:
    return CreateDnsRecordRequest(domain_id=domain_id, name=name, ttl=ttl, data=data)


def _update(domain_id: str, name: str, ttl: int = 600, **data: Any) -> UpdateDnsRecordRequest:
    return UpdateDnsRecordRequest(domain_id=domain_id, name=name, ttl=ttl, data=data)


class TestFactory:
    """Tests for the provider factory."""

    @pytest.mark.parametrize(
        ("credentials", "provider_class"),
        [
            (CloudflareCredentials(api_token="t"), CloudflareProvider),
            (AliyunCredentials(access_key_id="a", access_key_secret="b"), AliyunProvider),
            (DnspodCredentials(secret_id="a", secret_key="b"), DnspodProvider),
            (
                HuaweicloudCredentials(access_key_id="a", secret_access_key="b"),
                HuaweicloudProvider,
            ),
        ],
    )
    def test_dispatch(self, credentials, provider_class):
        provider = create_provider(credentials)
        assert isinstance(provider, provider_class)
        assert provider.id == credentials.provider

    def test_all_metadata(self):
        metadata = {m.id: m for m in get_all_provider_metadata()}
        assert set(metadata) == set(ProviderType)
        assert metadata[ProviderType.CLOUDFLARE].features.proxy is True
        assert metadata[ProviderType.ALIYUN].features.proxy is False
        assert [f.key for f in metadata[ProviderType.HUAWEICLOUD].required_fields] == [
            "accessKeyId",
            "secretAccessKey",
        ]
        assert metadata[ProviderType.CLOUDFLARE].limits.max_page_size_domains == 50


class TestErrorMapping:
    """Tests for the per-provider error code tables."""

    CTX = ErrorContext(record_name="www", record_id="r1", domain="example.com")

    @pytest.mark.parametrize(
        ("module", "code", "expected"),
        [
            (cloudflare, "10000", InvalidCredentialsError),
            (cloudflare, "9021", InvalidParameterError),
            (cloudflare, "81057", RecordExistsError),
            (cloudflare, "81044", RecordNotFoundError),
            (cloudflare, "81045", QuotaExceededError),
            (cloudflare, "7003", DomainNotFoundError),
            (aliyun, "InvalidAccessKeyId.NotFound", InvalidCredentialsError),
            (aliyun, "DomainRecordDuplicate", RecordExistsError),
            (aliyun, "Throttling.User", RateLimitedError),
            (aliyun, "DomainRecordLocked", DomainLockedError),
            (aliyun, "Forbidden.RiskControl", PermissionDeniedError),
            (aliyun, "QuotaExceeded.ARecord", QuotaExceededError),
            (dnspod, "AuthFailure.SignatureFailure", InvalidCredentialsError),
            (dnspod, "InvalidParameter.DomainRecordExist", RecordExistsError),
            (dnspod, "RequestLimitExceeded", RateLimitedError),
            (dnspod, "LimitExceeded.SrvCountLimit", QuotaExceededError),
            (dnspod, "ResourceNotFound.NoDataOfDomain", DomainNotFoundError),
            (dnspod, "OperationDenied.NotAdmin", PermissionDeniedError),
            (huaweicloud, "APIGW.0301", InvalidCredentialsError),
            (huaweicloud, "DNS.0312", RecordExistsError),
            (huaweicloud, "DNS.0313", RecordNotFoundError),
            (huaweicloud, "DNS.0302", DomainNotFoundError),
            (huaweicloud, "APIGW.0308", RateLimitedError),
            (huaweicloud, "APIGW.0201", NetworkError),
        ],
    )
    def test_known_codes(self, module, code: str, expected: type):
        err = module.map_error(RawApiError(code=code, message="msg"), self.CTX)
        assert type(err) is expected

    @pytest.mark.parametrize("module", [cloudflare, aliyun, dnspod, huaweicloud])
    def test_unknown_code_is_api_error(self, module):
        err = module.map_error(RawApiError(code="Nope.Unknown", message="msg"), self.CTX)
        assert isinstance(err, ApiError)
        assert err.raw_code == "Nope.Unknown"

    def test_context_fills_error_fields(self):
        err = aliyun.map_error(RawApiError(code="DomainRecordDuplicate", message="dup"), self.CTX)
        assert isinstance(err, RecordExistsError)
        assert err.record_name == "www"

    def test_missing_context_uses_placeholder(self):
        err = cloudflare.map_error(RawApiError(code="81044", message="gone"), ErrorContext())
        assert "<unknown>" in str(err)

    @pytest.mark.parametrize(
        ("code", "param"),
        [("InvalidRR.AValue", "value"), ("SubDomainInvalid.TTL", "ttl")],
    )
    def test_aliyun_invalid_parameter_names(self, code: str, param: str):
        err = aliyun.map_error(RawApiError(code=code, message="bad"), self.CTX)
        assert isinstance(err, InvalidParameterError)
        assert err.param == param


class TestCloudflareProvider:
    """Tests for CloudflareProvider against the fake API."""

    @pytest.fixture
    def provider(self, transport: httpx.MockTransport) -> CloudflareProvider:
        return CloudflareProvider(CloudflareCredentials(api_token=GOOD_TOKEN), FAST_HTTP, transport)

    @pytest.mark.asyncio
    async def test_validate_credentials(self, provider: CloudflareProvider):
        assert await provider.validate_credentials() is True

    @pytest.mark.asyncio
    async def test_validate_rejected_token(self, transport: httpx.MockTransport):
        provider = CloudflareProvider(CloudflareCredentials(api_token="nope"), FAST_HTTP, transport)
        assert await provider.validate_credentials() is False

    @pytest.mark.asyncio
    async def test_list_domains_clamps_page_size(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        page = await provider.list_domains(PaginationParams(page=1, page_size=500))
        assert page.page_size == 50
        assert [d.name for d in page.items] == ["example.com"]
        assert page.items[0].status == DomainStatus.ACTIVE
        assert fake_cloudflare.requests[-1].url.params["per_page"] == "50"

    @pytest.mark.asyncio
    async def test_get_missing_domain(self, provider: CloudflareProvider):
        with pytest.raises(DomainNotFoundError) as exc_info:
            await provider.get_domain("zone-404")
        assert exc_info.value.domain == "zone-404"

    @pytest.mark.asyncio
    async def test_list_records_relative_names(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        fake_cloudflare.add_record("www.example.com", "A", "192.0.2.1")
        fake_cloudflare.add_record("example.com", "MX", "mx.example.com", priority=10)
        page = await provider.list_records(ZONE_ID, RecordQueryParams())
        by_name = {r.name: r for r in page.items}
        assert by_name["www"].data == ARecordData(address="192.0.2.1")
        assert by_name["@"].data == MXRecordData(priority=10, exchange="mx.example.com")
        assert page.total_count == 2

    @pytest.mark.asyncio
    async def test_list_records_filters(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        fake_cloudflare.add_record("www.example.com", "A", "192.0.2.1")
        fake_cloudflare.add_record("api.example.com", "A", "192.0.2.2")
        fake_cloudflare.add_record("www.example.com", "TXT", "hello")
        page = await provider.list_records(
            ZONE_ID,
            RecordQueryParams(keyword="www", record_type=DnsRecordType.A),
        )
        assert [r.data for r in page.items] == [ARecordData(address="192.0.2.1")]
        params = fake_cloudflare.requests[-1].url.params
        assert params["name.contains"] == "www"
        assert params["type"] == "A"

    @pytest.mark.asyncio
    async def test_list_records_skips_unsupported(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        fake_cloudflare.add_record("www.example.com", "A", "192.0.2.1")
        fake_cloudflare.add_record("1.2.0.192.in-addr.arpa", "PTR", "www.example.com")
        fake_cloudflare.add_record("mx.example.com", "MX", "mail.example.com")
        page = await provider.list_records(ZONE_ID, RecordQueryParams())
        assert [r.name for r in page.items] == ["www"]
        assert page.total_count == 3

    @pytest.mark.asyncio
    async def test_create_record_sends_full_name(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        record = await provider.create_record(
            CreateDnsRecordRequest(
                domain_id=ZONE_ID,
                name="www",
                ttl=300,
                data={"type": "A", "address": "192.0.2.10"},
                proxied=True,
            ),
        )
        body = json.loads(fake_cloudflare.requests[-1].content)
        assert body == {
            "type": "A",
            "name": "www.example.com",
            "ttl": 300,
            "content": "192.0.2.10",
            "proxied": True,
        }
        assert record.name == "www"
        assert record.proxied is True

    @pytest.mark.asyncio
    async def test_create_srv_uses_data_object(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        record = await provider.create_record(
            _create(ZONE_ID, "_sip._tcp", ttl=1, type="SRV", priority=1, weight=2, port=5060,
                    target="sip.example.com"),
        )
        body = json.loads(fake_cloudflare.requests[-1].content)
        assert body["data"] == {"priority": 1, "weight": 2, "port": 5060, "target": "sip.example.com"}
        assert "proxied" not in body
        assert record.data == SRVRecordData(priority=1, weight=2, port=5060, target="sip.example.com")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [60, 119])
    async def test_create_rejects_invalid_ttl(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
        ttl: int,
    ):
        with pytest.raises(InvalidParameterError) as exc_info:
            await provider.create_record(_create(ZONE_ID, "www", ttl=ttl, type="A", address="192.0.2.1"))
        assert exc_info.value.param == "ttl"
        assert fake_cloudflare.requests == []

    @pytest.mark.asyncio
    async def test_update_record_patches(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        record_id = fake_cloudflare.add_record("www.example.com", "A", "192.0.2.1")
        record = await provider.update_record(
            record_id,
            _update(ZONE_ID, "www", ttl=120, type="A", address="192.0.2.99"),
        )
        assert fake_cloudflare.requests[-1].method == "PATCH"
        assert record.data == ARecordData(address="192.0.2.99")
        assert record.ttl == 120

    @pytest.mark.asyncio
    async def test_delete_missing_record(self, provider: CloudflareProvider):
        with pytest.raises(RecordNotFoundError) as exc_info:
            await provider.delete_record("rec-404", ZONE_ID)
        assert exc_info.value.record_id == "rec-404"

    @pytest.mark.asyncio
    async def test_zone_lookup_is_cached(
        self,
        provider: CloudflareProvider,
        fake_cloudflare: FakeCloudflare,
    ):
        await provider.list_records(ZONE_ID, RecordQueryParams())
        await provider.list_records(ZONE_ID, RecordQueryParams())
        zone_lookups = [r for r in fake_cloudflare.requests if r.url.path.endswith(f"/zones/{ZONE_ID}")]
        assert len(zone_lookups) == 1

    @pytest.mark.asyncio
    async def test_unexpected_body_is_parse_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        provider = CloudflareProvider(CloudflareCredentials(api_token="t"), FAST_HTTP, transport)
        with pytest.raises(ParseError, match="Unexpected response"):
            await provider.list_domains(PaginationParams())

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, json=cf_success([], 0))

        provider = CloudflareProvider(
            CloudflareCredentials(api_token="t"), FAST_HTTP, httpx.MockTransport(handler),
        )
        page = await provider.list_domains(PaginationParams())
        assert page.items == []
        assert len(calls) == 2


class TestBatchOperations:
    """Tests for the default batch implementations."""

    @pytest.fixture
    def provider(self, transport: httpx.MockTransport) -> CloudflareProvider:
        return CloudflareProvider(CloudflareCredentials(api_token=GOOD_TOKEN), FAST_HTTP, transport)

    @pytest.mark.asyncio
    async def test_batch_create_collects_failures(self, provider: CloudflareProvider):
        result = await provider.batch_create_records(
            [
                _create(ZONE_ID, "a", ttl=300, type="A", address="192.0.2.1"),
                _create(ZONE_ID, "b", ttl=5, type="A", address="192.0.2.2"),
                _create(ZONE_ID, "c", ttl=300, type="TXT", text="hi"),
            ],
        )
        assert result.success_count == 2
        assert result.failed_count == 1
        assert result.failures[0].id == "b"
        assert {r.name for r in result.records} == {"a", "c"}

    @pytest.mark.asyncio
    async def test_batch_update(self, provider: CloudflareProvider, fake_cloudflare: FakeCloudflare):
        record_id = fake_cloudflare.add_record("www.example.com", "A", "192.0.2.1")
        result = await provider.batch_update_records(
            [
                BatchUpdateItem(
                    record_id=record_id,
                    request=_update(ZONE_ID, "www", ttl=300, type="A", address="192.0.2.2"),
                ),
                BatchUpdateItem(
                    record_id="rec-404",
                    request=_update(ZONE_ID, "x", ttl=300, type="A", address="192.0.2.3"),
                ),
            ],
        )
        assert result.success_count == 1
        assert [f.id for f in result.failures] == ["rec-404"]

    @pytest.mark.asyncio
    async def test_batch_delete(self, provider: CloudflareProvider, fake_cloudflare: FakeCloudflare):
        first = fake_cloudflare.add_record("a.example.com", "A", "192.0.2.1")
        second = fake_cloudflare.add_record("b.example.com", "A", "192.0.2.2")
        result = await provider.batch_delete_records(ZONE_ID, [first, "rec-404", second])
        assert result.success_count == 2
        assert result.failed_count == 1
        assert result.failures[0].id == "rec-404"
        assert fake_cloudflare.records == {}

    @pytest.mark.asyncio
    async def test_empty_batch(self, provider: CloudflareProvider):
        result = await provider.batch_delete_records(ZONE_ID, [])
        assert result.success_count == 0
        assert result.failures == []


class FakeAliyun:
    """Routes alidns RPC actions by the ``x-acs-action`` header."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, tuple[int, dict[str, Any]]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.get(
            request.headers["x-acs-action"],
            (404, {"Code": "InvalidAction.NotFound", "Message": "no such action"}),
        )
        return httpx.Response(status, json=body)


class TestAliyunProvider:
    """Tests for AliyunProvider."""

    @pytest.fixture
    def fake(self) -> FakeAliyun:
        return FakeAliyun()

    @pytest.fixture
    def provider(self, fake: FakeAliyun) -> AliyunProvider:
        return AliyunProvider(
            AliyunCredentials(access_key_id="LTAI", access_key_secret="secret"),
            FAST_HTTP,
            httpx.MockTransport(fake),
        )

    @pytest.mark.asyncio
    async def test_signed_request(self, provider: AliyunProvider, fake: FakeAliyun):
        fake.responses["DescribeDomains"] = (200, {"Domains": {"Domain": []}, "TotalCount": 0})
        assert await provider.validate_credentials() is True
        request = fake.requests[0]
        assert request.method == "POST"
        assert request.url.host == "alidns.cn-hangzhou.aliyuncs.com"
        assert request.url.params["PageSize"] == "1"
        assert request.headers["authorization"].startswith("ACS3-HMAC-SHA256 Credential=LTAI,")
        assert request.headers["x-acs-version"] == "2015-01-09"

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, provider: AliyunProvider, fake: FakeAliyun):
        fake.responses["DescribeDomains"] = (
            404,
            {"Code": "InvalidAccessKeyId.NotFound", "Message": "Specified access key is not found."},
        )
        assert await provider.validate_credentials() is False

    @pytest.mark.asyncio
    async def test_list_domains(self, provider: AliyunProvider, fake: FakeAliyun):
        fake.responses["DescribeDomains"] = (
            200,
            {
                "Domains": {
                    "Domain": [
                        {"DomainName": "example.com", "DomainStatus": "ENABLE", "RecordCount": 3},
                        {"DomainName": "paused.cn", "DomainStatus": "PAUSE"},
                    ],
                },
                "TotalCount": 2,
            },
        )
        page = await provider.list_domains(PaginationParams(page=1, page_size=20))
        assert [(d.id, d.status) for d in page.items] == [
            ("example.com", DomainStatus.ACTIVE),
            ("paused.cn", DomainStatus.PAUSED),
        ]
        assert page.items[0].record_count == 3
        assert page.total_count == 2

    @pytest.mark.asyncio
    async def test_list_records_skips_unsupported(self, provider: AliyunProvider, fake: FakeAliyun):
        fake.responses["DescribeDomainRecords"] = (
            200,
            {
                "DomainRecords": {
                    "Record": [
                        {"RecordId": "1", "RR": "www", "Type": "A", "Value": "192.0.2.1", "TTL": 600},
                        {
                            "RecordId": "2",
                            "RR": "@",
                            "Type": "MX",
                            "Value": "mx.example.com",
                            "TTL": 600,
                            "Priority": 5,
                        },
                        {"RecordId": "3", "RR": "r", "Type": "REDIRECT_URL", "Value": "x", "TTL": 600},
                    ],
                },
                "TotalCount": 3,
            },
        )
        page = await provider.list_records("example.com", RecordQueryParams(keyword="w"))
        assert [r.id for r in page.items] == ["1", "2"]
        assert page.items[1].data == MXRecordData(priority=5, exchange="mx.example.com")
        assert fake.requests[0].url.params["RRKeyWord"] == "w"
        assert "Type" not in fake.requests[0].url.params

    @pytest.mark.asyncio
    async def test_create_record(self, provider: AliyunProvider, fake: FakeAliyun):
        fake.responses["AddDomainRecord"] = (200, {"RecordId": "9001", "RequestId": "req"})
        record = await provider.create_record(
            _create("example.com", "mail", type="MX", priority=10, exchange="mx.example.com"),
        )
        params = fake.requests[0].url.params
        assert params["Value"] == "mx.example.com"
        assert params["Priority"] == "10"
        assert params["RR"] == "mail"
        assert record.id == "9001"

    @pytest.mark.asyncio
    async def test_duplicate_record(self, provider: AliyunProvider, fake: FakeAliyun):
        fake.responses["AddDomainRecord"] = (
            400,
            {"Code": "DomainRecordDuplicate", "Message": "The DNS record already exists."},
        )
        with pytest.raises(RecordExistsError) as exc_info:
            await provider.create_record(_create("example.com", "www", type="A", address="192.0.2.1"))
        assert exc_info.value.record_name == "www"

    @pytest.mark.asyncio
    async def test_http_error_without_code(self, provider: AliyunProvider, fake: FakeAliyun):
        fake.responses["DeleteDomainRecord"] = (400, {"unexpected": True})
        with pytest.raises(ApiError) as exc_info:
            await provider.delete_record("1", "example.com")
        assert exc_info.value.raw_code == "400"


class FakeDnspod:
    """Routes Tencent Cloud actions by the ``X-TC-Action`` header."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, dict[str, Any]] = {}

    def bodies(self, action: str) -> list[dict[str, Any]]:
        return [
            json.loads(r.content) for r in self.requests if r.headers["x-tc-action"] == action
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.get(
            request.headers["x-tc-action"],
            {"Error": {"Code": "InvalidAction", "Message": "no such action"}},
        )
        return httpx.Response(200, json={"Response": {**response, "RequestId": "req"}})


DNSPOD_DOMAIN = {"Domain": "example.com", "DomainId": 42, "Status": "ENABLE", "DNSStatus": ""}


class TestDnspodProvider:
    """Tests for DnspodProvider."""

    @pytest.fixture
    def fake(self) -> FakeDnspod:
        fake = FakeDnspod()
        fake.responses["DescribeDomain"] = {"DomainInfo": DNSPOD_DOMAIN}
        return fake

    @pytest.fixture
    def provider(self, fake: FakeDnspod) -> DnspodProvider:
        return DnspodProvider(
            DnspodCredentials(secret_id="AKID", secret_key="key"),
            FAST_HTTP,
            httpx.MockTransport(fake),
        )

    @pytest.mark.asyncio
    async def test_signed_request(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["DescribeDomainList"] = {"DomainList": [], "DomainCountInfo": {"AllTotal": 0}}
        assert await provider.validate_credentials() is True
        request = fake.requests[0]
        assert request.headers["authorization"].startswith("TC3-HMAC-SHA256 Credential=AKID/")
        assert request.headers["x-tc-version"] == "2021-03-23"
        assert json.loads(request.content) == {"Offset": 0, "Limit": 1}

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["DescribeDomainList"] = {
            "Error": {"Code": "AuthFailure.SecretIdNotFound", "Message": "The SecretId is not found"},
        }
        assert await provider.validate_credentials() is False

    @pytest.mark.asyncio
    async def test_list_domains_offset(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["DescribeDomainList"] = {
            "DomainList": [
                {"DomainId": 42, "Name": "example.com", "Status": "ENABLE", "DNSStatus": ""},
                {"DomainId": 43, "Name": "broken.com", "Status": "ENABLE", "DNSStatus": "DNSERROR"},
            ],
            "DomainCountInfo": {"AllTotal": 12},
        }
        page = await provider.list_domains(PaginationParams(page=2, page_size=10))
        assert fake.bodies("DescribeDomainList") == [{"Offset": 10, "Limit": 10}]
        assert [(d.id, d.status) for d in page.items] == [
            ("42", DomainStatus.ACTIVE),
            ("43", DomainStatus.ERROR),
        ]
        assert page.total_count == 12

    @pytest.mark.asyncio
    async def test_list_records(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["DescribeRecordList"] = {
            "RecordList": [
                {"RecordId": 1, "Name": "www", "Type": "A", "Value": "192.0.2.1", "TTL": 600},
                {"RecordId": 2, "Name": "@", "Type": "MX", "Value": "mx.example.com", "TTL": 600, "MX": 10},
                {"RecordId": 3, "Name": "@", "Type": "SOA", "Value": "x", "TTL": 600},
            ],
            "RecordCountInfo": {"TotalCount": 3},
        }
        page = await provider.list_records("example.com", RecordQueryParams(record_type=DnsRecordType.A))
        assert [r.id for r in page.items] == ["1", "2"]
        assert page.items[1].data == MXRecordData(priority=10, exchange="mx.example.com")
        body = fake.bodies("DescribeRecordList")[0]
        assert body["Domain"] == "example.com"
        assert body["RecordType"] == "A"
        assert "Keyword" not in body

    @pytest.mark.asyncio
    async def test_no_records_is_empty_page(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["DescribeRecordList"] = {
            "Error": {"Code": "ResourceNotFound.NoDataOfRecord", "Message": "No records"},
        }
        page = await provider.list_records("example.com", RecordQueryParams())
        assert page.items == []
        assert page.total_count == 0

    @pytest.mark.asyncio
    async def test_create_rejects_short_ttl(self, provider: DnspodProvider, fake: FakeDnspod):
        with pytest.raises(InvalidParameterError):
            await provider.create_record(_create("example.com", "www", ttl=300, type="A", address="192.0.2.1"))
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_create_record(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["CreateRecord"] = {"RecordId": 777}
        record = await provider.create_record(
            _create("example.com", "txt", type="TXT", text="hello"),
        )
        body = fake.bodies("CreateRecord")[0]
        assert body["SubDomain"] == "txt"
        assert body["RecordLine"] == "默认"
        assert "MX" not in body
        assert record.id == "777"
        assert record.data == TXTRecordData(text="hello")

    @pytest.mark.asyncio
    async def test_domain_lookup_by_numeric_id(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["DescribeDomainList"] = {
            "DomainList": [{"DomainId": 42, "Name": "example.com", "Status": "ENABLE"}],
            "DomainCountInfo": {"AllTotal": 1},
        }
        domain = await provider.get_domain("42")
        assert domain.name == "example.com"
        with pytest.raises(DomainNotFoundError):
            await provider.get_domain("99")

    @pytest.mark.asyncio
    async def test_non_numeric_record_id(self, provider: DnspodProvider):
        with pytest.raises(RecordNotFoundError):
            await provider.delete_record("abc", "example.com")

    @pytest.mark.asyncio
    async def test_delete_record(self, provider: DnspodProvider, fake: FakeDnspod):
        fake.responses["DeleteRecord"] = {}
        await provider.delete_record("12", "example.com")
        assert fake.bodies("DeleteRecord") == [{"Domain": "example.com", "RecordId": 12}]


class FakeHuaweicloud:
    """Minimal Huawei Cloud DNS zone and record set endpoints."""

    ZONE = {"id": "zone-h", "name": "example.com.", "status": "ACTIVE", "record_num": 4}

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.zones: list[dict[str, Any]] = [self.ZONE]
        self.recordsets: list[dict[str, Any]] = []

    @staticmethod
    def _page(request: httpx.Request, key: str, items: list[dict[str, Any]]) -> dict[str, Any]:
        offset = int(request.url.params.get("offset", "0"))
        limit = int(request.url.params.get("limit", "500"))
        return {key: items[offset : offset + limit], "metadata": {"total_count": len(items)}}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("x-sdk-date") is None:
            return httpx.Response(401, json={"error_code": "APIGW.0301", "error_msg": "unsigned"})
        path = request.url.path
        if path == "/v2/zones":
            return httpx.Response(200, json=self._page(request, "zones", self.zones))
        if path == "/v2/zones/zone-h":
            return httpx.Response(200, json=self.ZONE)
        if path == "/v2/zones/zone-h/recordsets":
            if request.method == "POST":
                return httpx.Response(202, json={"id": "rs-new"})
            return httpx.Response(200, json=self._page(request, "recordsets", self.recordsets))
        if path.startswith("/v2/zones/zone-h/recordsets/"):
            if path.endswith("/missing"):
                return httpx.Response(404, json={"code": "DNS.0313", "message": "Record set does not exist."})
            return httpx.Response(202, json={"id": path.rsplit("/", 1)[-1]})
        return httpx.Response(404, json={"code": "DNS.0302", "message": "Zone does not exist."})


class TestHuaweicloudProvider:
    """Tests for HuaweicloudProvider."""

    @pytest.fixture
    def fake(self) -> FakeHuaweicloud:
        return FakeHuaweicloud()

    @pytest.fixture
    def provider(self, fake: FakeHuaweicloud) -> HuaweicloudProvider:
        return HuaweicloudProvider(
            HuaweicloudCredentials(access_key_id="AK", secret_access_key="SK"),
            FAST_HTTP,
            httpx.MockTransport(fake),
        )

    @pytest.mark.asyncio
    async def test_signed_request(self, provider: HuaweicloudProvider, fake: FakeHuaweicloud):
        assert await provider.validate_credentials() is True
        request = fake.requests[0]
        assert request.headers["authorization"].startswith("SDK-HMAC-SHA256 Access=AK, ")
        assert request.url.params["type"] == "public"

    @pytest.mark.asyncio
    async def test_gateway_auth_error_shape(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                401,
                json={"error_code": "APIGW.0301", "error_msg": "Incorrect IAM authentication information"},
            )

        provider = HuaweicloudProvider(
            HuaweicloudCredentials(access_key_id="AK", secret_access_key="SK"),
            FAST_HTTP,
            httpx.MockTransport(handler),
        )
        assert await provider.validate_credentials() is False

    @pytest.mark.asyncio
    async def test_unparseable_error_body(self):
        provider = HuaweicloudProvider(
            HuaweicloudCredentials(access_key_id="AK", secret_access_key="SK"),
            FAST_HTTP,
            httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
        )
        with pytest.raises(ApiError, match="HTTP 500"):
            await provider.get_domain("zone-h")

    @pytest.mark.asyncio
    async def test_list_domains_strips_trailing_dot(self, provider: HuaweicloudProvider):
        page = await provider.list_domains(PaginationParams())
        assert page.items[0].name == "example.com"
        assert page.items[0].status == DomainStatus.ACTIVE
        assert page.items[0].record_count == 4

    @pytest.mark.asyncio
    async def test_list_records(self, provider: HuaweicloudProvider, fake: FakeHuaweicloud):
        fake.recordsets = [
            {"id": "rs-soa", "name": "example.com.", "type": "SOA", "records": ["ns. hostmaster. 1"]},
            {"id": "rs-1", "name": "www.example.com.", "type": "A", "records": ["192.0.2.1", "192.0.2.2"], "ttl": 60},
            {"id": "rs-2", "name": "example.com.", "type": "MX", "records": ["10 mx.example.com."]},
            {"id": "rs-3", "name": "empty.example.com.", "type": "A", "records": []},
        ]
        page = await provider.list_records("zone-h", RecordQueryParams())
        assert [(r.id, r.name) for r in page.items] == [("rs-1", "www"), ("rs-2", "@")]
        assert page.items[0].data == ARecordData(address="192.0.2.1")
        assert page.items[1].ttl == 300

    @pytest.mark.asyncio
    async def test_create_record(self, provider: HuaweicloudProvider, fake: FakeHuaweicloud):
        record = await provider.create_record(
            _create("zone-h", "www", ttl=300, type="A", address="192.0.2.1"),
        )
        body = json.loads(fake.requests[-1].content)
        assert body == {"name": "www.example.com.", "type": "A", "records": ["192.0.2.1"], "ttl": 300}
        assert fake.requests[-1].headers["content-type"] == "application/json"
        assert record.id == "rs-new"

    @pytest.mark.asyncio
    async def test_update_missing_record(self, provider: HuaweicloudProvider):
        with pytest.raises(RecordNotFoundError) as exc_info:
            await provider.update_record(
                "missing", _update("zone-h", "www", ttl=300, type="A", address="192.0.2.1"),
            )
        assert exc_info.value.record_id == "missing"

    @pytest.mark.asyncio
    async def test_unknown_zone(self, provider: HuaweicloudProvider):
        with pytest.raises(DomainNotFoundError):
            await provider.get_domain("zone-x")


class TestCloudflareEnvelopeErrors:
    """Tests for CloudFlare error envelopes outside the fake API."""

    @pytest.mark.asyncio
    async def test_failure_without_errors(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(400, json={"success": False, "errors": [], "result": None}),
        )
        provider = CloudflareProvider(CloudflareCredentials(api_token="t"), FAST_HTTP, transport)
        with pytest.raises(ApiError, match="Unknown error"):
            await provider.list_domains(PaginationParams())

    @pytest.mark.asyncio
    async def test_quota_exceeded(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json=cf_success({"id": ZONE_ID, "name": "example.com"}))
            return httpx.Response(400, json=cf_failure(81045, "Record quota exceeded."))

        provider = CloudflareProvider(
            CloudflareCredentials(api_token="t"), FAST_HTTP, httpx.MockTransport(handler),
        )
        with pytest.raises(QuotaExceededError):
            await provider.create_record(_create(ZONE_ID, "www", ttl=300, type="A", address="192.0.2.1"))


async def _walk_pages(list_page, page_size: int) -> list[Any]:
    pages = []
    page_number = 1
    while True:
        page = await list_page(page_number, page_size)
        pages.append(page)
        if not page.has_more:
            return pages
        page_number += 1


def _assert_pages_partition(pages: list[Any], full: Any) -> None:
    ids = [item.id for page in pages for item in page.items]
    assert len(ids) == len(set(ids))
    assert set(ids) == {item.id for item in full.items}
    assert {page.total_count for page in pages} == {full.total_count}
    assert all(len(page.items) <= page.page_size for page in pages)


class TestPagination:
    """Consecutive pages are disjoint, cover the full listing, and agree on the total."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_size", [1, 2, 3, 7])
    async def test_cloudflare_domains(self, fake_cloudflare: FakeCloudflare, page_size: int):
        for n in range(2, 8):
            fake_cloudflare.zones[f"zone-{n}"] = {"id": f"zone-{n}", "name": f"example{n}.com", "status": "active"}
        provider = CloudflareProvider(
            CloudflareCredentials(api_token=GOOD_TOKEN), FAST_HTTP, httpx.MockTransport(fake_cloudflare),
        )

        pages = await _walk_pages(
            lambda page, size: provider.list_domains(PaginationParams(page=page, page_size=size)),
            page_size,
        )
        full = await provider.list_domains(PaginationParams(page=1, page_size=50))

        assert full.total_count == 7
        _assert_pages_partition(pages, full)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_size", [1, 4, 5, 20])
    async def test_cloudflare_records(self, fake_cloudflare: FakeCloudflare, page_size: int):
        for n in range(10):
            fake_cloudflare.add_record(f"host{n}.example.com", "A", f"192.0.2.{n}")
        provider = CloudflareProvider(
            CloudflareCredentials(api_token=GOOD_TOKEN), FAST_HTTP, httpx.MockTransport(fake_cloudflare),
        )

        pages = await _walk_pages(
            lambda page, size: provider.list_records(ZONE_ID, RecordQueryParams(page=page, page_size=size)),
            page_size,
        )
        full = await provider.list_records(ZONE_ID, RecordQueryParams(page=1, page_size=100))

        assert full.total_count == 10
        _assert_pages_partition(pages, full)
        assert len(pages) == -(-10 // page_size)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_size", [1, 2, 5])
    async def test_huaweicloud_domains_and_records(self, page_size: int):
        fake = FakeHuaweicloud()
        fake.zones = [
            {"id": f"zone-{n}", "name": f"example{n}.com.", "status": "ACTIVE"} for n in range(6)
        ]
        fake.recordsets = [
            {"id": f"rs-{n}", "name": f"host{n}.example.com.", "type": "A", "records": [f"192.0.2.{n}"]}
            for n in range(9)
        ]
        provider = HuaweicloudProvider(
            HuaweicloudCredentials(access_key_id="AK", secret_access_key="SK"),
            FAST_HTTP,
            httpx.MockTransport(fake),
        )

        domain_pages = await _walk_pages(
            lambda page, size: provider.list_domains(PaginationParams(page=page, page_size=size)),
            page_size,
        )
        _assert_pages_partition(
            domain_pages,
            await provider.list_domains(PaginationParams(page=1, page_size=500)),
        )

        record_pages = await _walk_pages(
            lambda page, size: provider.list_records("zone-h", RecordQueryParams(page=page, page_size=size)),
            page_size,
        )
        full = await provider.list_records("zone-h", RecordQueryParams(page=1, page_size=500))
        assert full.total_count == 9
        _assert_pages_partition(record_pages, full)
