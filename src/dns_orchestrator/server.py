"""
FastAPI server for DNS Orchestrator.

This module exposes the account, domain, record and import/export
services over HTTP, with optional bearer-token authentication.
"""

from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette import status as st_status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from dns_orchestrator import __version__
from dns_orchestrator.accounts import (
    CreateAccountRequest,
    ExportAccountsRequest,
    ImportAccountsRequest,
    UpdateAccountRequest,
)
from dns_orchestrator.app import AppContext
from dns_orchestrator.config import Config, load_config
from dns_orchestrator.credentials import ProviderCredentials  # noqa: TC001
from dns_orchestrator.errors import DnsOrchestratorError
from dns_orchestrator.models import (
    CAMEL_CONFIG,
    BatchDeleteRequest,
    CreateDnsRecordRequest,
    DnsRecordType,
    RecordData,
    UpdateDnsRecordRequest,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from typing import Final


logger = logging.getLogger(__name__)

# Global state (set during startup)
_config: Config | None = None
_app_context: AppContext | None = None

# Paths served without authentication
PUBLIC_PATHS: Final[frozenset[str]] = frozenset({"/health"})

# HTTP status of each error code; unlisted codes map to 500
ERROR_STATUS: Final[dict[str, int]] = {
    "AccountNotFound": st_status.HTTP_404_NOT_FOUND,
    "ProviderNotFound": st_status.HTTP_404_NOT_FOUND,
    "DomainNotFound": st_status.HTTP_404_NOT_FOUND,
    "RecordNotFound": st_status.HTTP_404_NOT_FOUND,
    "InvalidCredentials": st_status.HTTP_401_UNAUTHORIZED,
    "PermissionDenied": st_status.HTTP_403_FORBIDDEN,
    "RecordExists": st_status.HTTP_409_CONFLICT,
    "DomainLocked": st_status.HTTP_423_LOCKED,
    "RateLimited": st_status.HTTP_429_TOO_MANY_REQUESTS,
    "QuotaExceeded": st_status.HTTP_429_TOO_MANY_REQUESTS,
    "InvalidParameter": st_status.HTTP_400_BAD_REQUEST,
    "UnsupportedRecordType": st_status.HTTP_400_BAD_REQUEST,
    "ValidationError": st_status.HTTP_400_BAD_REQUEST,
    "NoAccountsSelected": st_status.HTTP_400_BAD_REQUEST,
    "UnsupportedFileVersion": st_status.HTTP_400_BAD_REQUEST,
    "ImportExportError": st_status.HTTP_400_BAD_REQUEST,
    "DecryptionFailed": st_status.HTTP_400_BAD_REQUEST,
    "CredentialValidation": st_status.HTTP_422_UNPROCESSABLE_CONTENT,
    "NetworkError": st_status.HTTP_502_BAD_GATEWAY,
    "Timeout": st_status.HTTP_504_GATEWAY_TIMEOUT,
}


def get_config() -> Config:
    """Get the current configuration."""
    if _config is None:
        msg = "Configuration not loaded"
        raise RuntimeError(msg)
    return _config


def get_app_context() -> AppContext:
    """Get the running application context."""
    if _app_context is None:
        msg = "Application context not initialized"
        raise RuntimeError(msg)
    return _app_context


def set_preloaded_config(config: Config) -> None:
    """
    Inject a pre-loaded configuration into the server module.

    This allows the CLI entry point to pass the parsed configuration to the
    server instance, avoiding the need to re-parse command-line arguments
    during application startup.

    Parameters
    ----------
    config : Config
        The configuration object to set.
    """
    global _config  # noqa: PLW0603
    _config = config


def set_app_context(app_context: AppContext | None) -> None:
    """
    Inject a pre-built application context.

    The lifespan handler uses it instead of building one from the
    configuration; tests use this to supply mock transports.
    """
    global _app_context  # noqa: PLW0603
    _app_context = app_context


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    """Build the unified error body."""
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "error",
            "code": status_code,
            "error": error,
            "message": message,
        },
    )


def _json(value: BaseModel | list[Any], status_code: int = st_status.HTTP_200_OK) -> Response:
    if isinstance(value, list):
        content: Any = [
            v.model_dump(mode="json", by_alias=True) if isinstance(v, BaseModel) else v
            for v in value
        ]
    else:
        content = value.model_dump(mode="json", by_alias=True)
    return JSONResponse(content=content, status_code=status_code)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Bearer-token authentication.

    A missing token gives 401 and an unknown token 403. `PUBLIC_PATHS` and
    every path while authentication is disabled pass through.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process the request through authentication."""
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        # Config may not be loaded during startup
        try:
            config = get_config()
        except RuntimeError:
            return await call_next(request)

        if not config.auth.enabled:
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        server_token: str | None = None
        if auth_header.lower().startswith("bearer "):
            server_token = auth_header[7:].strip()

        if not server_token:
            return error_response(
                st_status.HTTP_401_UNAUTHORIZED,
                "Unauthorized",
                "Missing authentication token",
            )
        if server_token not in config.auth.tokens:
            return error_response(
                st_status.HTTP_403_FORBIDDEN,
                "Forbidden",
                "Invalid authentication token",
            )

        return await call_next(request)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the application context and restore accounts."""
    global _config, _app_context  # noqa: PLW0603

    # If config was not set by the CLI (e.g., running via uvicorn directly),
    # load it here from config.toml and defaults
    if _config is None:
        _config = load_config(argparse.Namespace())

    if _app_context is None:
        _app_context = AppContext.from_config(_config)

    result = await _app_context.startup()
    logger.info(
        'DNS Orchestrator starting on "%s:%d" (%d accounts restored, %d failed).',
        _config.server.host,
        _config.server.port,
        result.success_count,
        result.error_count,
    )

    yield

    await _app_context.aclose()
    logger.info("DNS Orchestrator shutting down.")


app = FastAPI(
    title="DNS Orchestrator",
    description="Unified DNS record management across cloud providers",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(AuthMiddleware)


@app.exception_handler(DnsOrchestratorError)
async def orchestrator_exception_handler(
    _request: Request,
    exc: DnsOrchestratorError,
) -> Response:
    """Render package errors with the status of their code."""
    status_code = ERROR_STATUS.get(exc.code, st_status.HTTP_500_INTERNAL_SERVER_ERROR)
    if exc.is_expected:
        logger.warning("[response] status=%d error=%s", status_code, exc)
    else:
        logger.error("[response] status=%d error=%s", status_code, exc)
    return error_response(status_code, exc.code, exc.message)


@app.exception_handler(HTTPException)
async def http_exception_handler(_request: Request, exc: HTTPException) -> Response:
    """Convert FastAPI's default {"detail": "..."} format to the unified format."""
    return error_response(exc.status_code, "HTTPError", str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    _request: Request,
    exc: RequestValidationError,
) -> Response:
    """
    Handle validation errors with consistent JSON responses.

    Lists all missing or invalid fields in the message.
    """
    missing_fields: list[str] = []
    invalid_fields: list[str] = []

    for error in exc.errors():
        field_path = ".".join(
            str(loc) for loc in error["loc"] if loc not in {"query", "body", "path"}
        )
        if error["type"] == "missing":
            missing_fields.append(field_path)
        else:
            invalid_fields.append(f"{field_path}: {error['msg']}")

    messages: list[str] = []
    if missing_fields:
        messages.append(f"Missing required fields: {', '.join(missing_fields)}")
    if invalid_fields:
        messages.append(f"Invalid fields: {'; '.join(invalid_fields)}")

    return error_response(
        st_status.HTTP_422_UNPROCESSABLE_CONTENT,
        "ValidationError",
        ". ".join(messages) if messages else "Validation error",
    )


# Request bodies whose IDs come from the path


class AccountUpdateBody(BaseModel):
    """Fields of an account update."""

    model_config = CAMEL_CONFIG

    name: str | None = Field(default=None, min_length=1)
    credentials: ProviderCredentials | None = None


class AccountIdsBody(BaseModel):
    """A list of account IDs."""

    model_config = CAMEL_CONFIG

    account_ids: list[str]


class RecordBody(BaseModel):
    """Record fields of a create or update request."""

    model_config = CAMEL_CONFIG

    name: str
    ttl: int = Field(..., ge=1)
    data: RecordData
    proxied: bool | None = None


class RecordIdsBody(BaseModel):
    """A list of record IDs."""

    model_config = CAMEL_CONFIG

    record_ids: list[str]


# Routes


@app.get("/health")
async def health() -> Response:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"})


@app.get("/providers")
async def list_providers() -> Response:
    return _json(get_app_context().providers.list_providers())


@app.get("/accounts")
async def list_accounts() -> Response:
    return _json(await get_app_context().accounts.list_accounts())


@app.post("/accounts")
async def create_account(body: CreateAccountRequest) -> Response:
    account = await get_app_context().accounts.create_account(body)
    return _json(account, st_status.HTTP_201_CREATED)


@app.post("/accounts/batch-delete")
async def batch_delete_accounts(body: AccountIdsBody) -> Response:
    return _json(await get_app_context().accounts.batch_delete_accounts(body.account_ids))


@app.patch("/accounts/{account_id}")
async def update_account(account_id: str, body: AccountUpdateBody) -> Response:
    request = UpdateAccountRequest(
        id=account_id,
        name=body.name,
        credentials=body.credentials,
    )
    return _json(await get_app_context().accounts.update_account(request))


@app.delete("/accounts/{account_id}")
async def delete_account(account_id: str) -> Response:
    await get_app_context().accounts.delete_account(account_id)
    return Response(status_code=st_status.HTTP_204_NO_CONTENT)


@app.get("/accounts/{account_id}/domains")
async def list_domains(
    account_id: str,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(alias="pageSize", ge=1)] = 20,
) -> Response:
    domains = await get_app_context().domains.list_domains(account_id, page, page_size)
    return _json(domains)


@app.get("/accounts/{account_id}/domains/{domain_id}")
async def get_domain(account_id: str, domain_id: str) -> Response:
    return _json(await get_app_context().domains.get_domain(account_id, domain_id))


@app.get("/accounts/{account_id}/domains/{domain_id}/records")
async def list_records(  # noqa: PLR0913
    account_id: str,
    domain_id: str,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(alias="pageSize", ge=1)] = 20,
    keyword: Annotated[str | None, Query()] = None,
    record_type: Annotated[DnsRecordType | None, Query(alias="type")] = None,
) -> Response:
    records = await get_app_context().dns.list_records(
        account_id,
        domain_id,
        page,
        page_size,
        keyword,
        record_type,
    )
    return _json(records)


@app.post("/accounts/{account_id}/domains/{domain_id}/records")
async def create_record(account_id: str, domain_id: str, body: RecordBody) -> Response:
    request = CreateDnsRecordRequest(domain_id=domain_id, **body.model_dump())
    record = await get_app_context().dns.create_record(account_id, request)
    return _json(record, st_status.HTTP_201_CREATED)


@app.post("/accounts/{account_id}/domains/{domain_id}/records/batch-delete")
async def batch_delete_records(
    account_id: str,
    domain_id: str,
    body: RecordIdsBody,
) -> Response:
    request = BatchDeleteRequest(domain_id=domain_id, record_ids=body.record_ids)
    return _json(await get_app_context().dns.batch_delete_records(account_id, request))


@app.put("/accounts/{account_id}/domains/{domain_id}/records/{record_id}")
async def update_record(
    account_id: str,
    domain_id: str,
    record_id: str,
    body: RecordBody,
) -> Response:
    request = UpdateDnsRecordRequest(domain_id=domain_id, **body.model_dump())
    return _json(await get_app_context().dns.update_record(account_id, record_id, request))


@app.delete("/accounts/{account_id}/domains/{domain_id}/records/{record_id}")
async def delete_record(account_id: str, domain_id: str, record_id: str) -> Response:
    await get_app_context().dns.delete_record(account_id, record_id, domain_id)
    return Response(status_code=st_status.HTTP_204_NO_CONTENT)


@app.post("/export")
async def export_accounts(body: ExportAccountsRequest) -> Response:
    return _json(await get_app_context().import_export.export_accounts(body))


@app.post("/import/preview")
async def preview_import(body: ImportAccountsRequest) -> Response:
    preview = await get_app_context().import_export.preview_import(body.content, body.password)
    return _json(preview)


@app.post("/import")
async def import_accounts(body: ImportAccountsRequest) -> Response:
    return _json(await get_app_context().import_export.import_accounts(body))
