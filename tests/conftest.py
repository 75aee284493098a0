"""Shared fixtures: an in-process fake of the CloudFlare API and app contexts."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from dns_orchestrator.app import AppContext
from dns_orchestrator.providers.http_client import HttpSettings
from dns_orchestrator.storage.memory import InMemoryAccountRepository, InMemoryCredentialStore

if TYPE_CHECKING:
    from collections.abc import Callable


GOOD_TOKEN = "good-token"
BAD_TOKEN = "bad-token"

ZONE_ID = "zone-1"
ZONE_NAME = "example.com"

# Retries without waiting
FAST_HTTP = HttpSettings(max_retries=2, retry_base_delay=0.0, retry_max_delay=0.0)


def cf_success(result: Any, total: int | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "errors": [], "result": result}
    if total is not None:
        body["result_info"] = {"total_count": total}
    return body


def cf_failure(code: int, message: str) -> dict[str, Any]:
    return {"success": False, "errors": [{"code": code, "message": message}], "result": None}


class FakeCloudflare:
    """
    Minimal CloudFlare API v4 backed by a dict of records.

    Requests authenticated with anything other than `GOOD_TOKEN` get error
    1000. Setting `revoked` rejects every call except token verification,
    which simulates a token revoked after the account was created.
    """

    def __init__(self) -> None:
        self.zones = {ZONE_ID: {"id": ZONE_ID, "name": ZONE_NAME, "status": "active"}}
        self.records: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.revoked = False
        self._next_id = 1

    def add_record(self, name: str, record_type: str, content: str, **extra: Any) -> str:
        record_id = f"rec-{self._next_id}"
        self._next_id += 1
        self.records[record_id] = {
            "id": record_id,
            "type": record_type,
            "name": name,
            "content": content,
            "ttl": 300,
            "proxied": False,
            **extra,
        }
        return record_id

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        path = request.url.path.removeprefix("/client/v4")

        if token != GOOD_TOKEN:
            return httpx.Response(401, json=cf_failure(1000, "Invalid API Token"))
        if path == "/user/tokens/verify":
            return httpx.Response(200, json=cf_success({"id": "t", "status": "active"}))
        if self.revoked:
            return httpx.Response(403, json=cf_failure(10000, "Authentication error"))

        parts = path.strip("/").split("/")
        if parts == ["zones"]:
            return httpx.Response(200, json=self._page(request, list(self.zones.values())))

        zone = self.zones.get(parts[1]) if len(parts) > 1 else None
        if zone is None:
            return httpx.Response(404, json=cf_failure(7003, "Could not route to zone"))
        if len(parts) == 2:  # noqa: PLR2004
            return httpx.Response(200, json=cf_success(zone))
        if len(parts) == 3:  # noqa: PLR2004
            return self._records_collection(request)
        return self._record_item(request, parts[3])

    def _records_collection(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            body = json.loads(request.content)
            record_id = self.add_record(
                body["name"],
                body["type"],
                body.get("content", ""),
                ttl=body["ttl"],
                **{k: body[k] for k in ("priority", "data", "proxied") if k in body},
            )
            return httpx.Response(200, json=cf_success(self.records[record_id]))

        records = list(self.records.values())
        record_type = request.url.params.get("type")
        if record_type:
            records = [r for r in records if r["type"] == record_type]
        keyword = request.url.params.get("name.contains")
        if keyword:
            records = [r for r in records if keyword in r["name"]]
        return httpx.Response(200, json=self._page(request, records))

    @staticmethod
    def _page(request: httpx.Request, items: list[dict[str, Any]]) -> dict[str, Any]:
        page = int(request.url.params.get("page", "1"))
        per_page = int(request.url.params.get("per_page", "20"))
        start = (page - 1) * per_page
        return cf_success(items[start : start + per_page], len(items))

    def _record_item(self, request: httpx.Request, record_id: str) -> httpx.Response:
        if record_id not in self.records:
            return httpx.Response(404, json=cf_failure(81044, "Record does not exist."))
        if request.method == "DELETE":
            del self.records[record_id]
            return httpx.Response(200, json=cf_success({"id": record_id}))
        if request.method == "PATCH":
            body = json.loads(request.content)
            self.records[record_id].update(body)
        return httpx.Response(200, json=cf_success(self.records[record_id]))


@pytest.fixture
def fake_cloudflare() -> FakeCloudflare:
    """A fresh fake CloudFlare API."""
    return FakeCloudflare()


@pytest.fixture
def transport(fake_cloudflare: FakeCloudflare) -> httpx.MockTransport:
    """Mock transport routing every provider request to the fake API."""
    return httpx.MockTransport(fake_cloudflare)


@pytest.fixture
def make_app() -> Callable[..., AppContext]:
    """Factory for app contexts over in-memory stores."""

    def factory(
        transport: httpx.AsyncBaseTransport,
        account_repository: InMemoryAccountRepository | None = None,
        credential_store: InMemoryCredentialStore | None = None,
    ) -> AppContext:
        return AppContext(
            credential_store or InMemoryCredentialStore(),
            account_repository or InMemoryAccountRepository(),
            http_settings=FAST_HTTP,
            transport=transport,
        )

    return factory


@pytest.fixture
def app_context(
    make_app: Callable[..., AppContext],
    transport: httpx.MockTransport,
) -> AppContext:
    """An app context talking to the fake CloudFlare API."""
    return make_app(transport)
