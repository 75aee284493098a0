"""
Error taxonomy for DNS Orchestrator.

Every failure surfaced by the package is a subclass of `DnsOrchestratorError`.
Provider-facing failures derive from `ProviderError` and always carry the
provider tag; orchestration failures derive from `CoreError`.

Each class exposes a stable `code` (the variant name callers match on) and
belongs to one of three bands:

- expected: user- or remote-driven, logged at warning level;
- transient: retried by the HTTP helper before being surfaced;
- fatal: everything else, logged at error level.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel

if TYPE_CHECKING:
    from typing import Any, Final


UNKNOWN: Final[str] = "<unknown>"


class DnsOrchestratorError(Exception):
    """
    Base class for all package errors.

    Attributes
    ----------
    code : str
        Stable, machine-readable variant name.
    expected : bool
        Whether the error is user- or remote-driven.
    retryable : bool
        Whether the HTTP helper may retry the failed call.
    """

    code: ClassVar[str] = "Error"
    expected: ClassVar[bool] = False
    retryable: ClassVar[bool] = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def is_expected(self) -> bool:
        """Whether the error belongs to the expected band."""
        return self.expected

    def details(self) -> dict[str, Any]:
        """Variant-specific fields, used by `to_dict`."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the error for adapters (CLI JSON output, HTTP responses).

        Returns
        -------
        dict[str, Any]
            ``{"code": ..., "message": ..., "details": {...}}``.
        """
        return {"code": self.code, "message": self.message, "details": self.details()}


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class ProviderError(DnsOrchestratorError):
    """
    Base class for errors raised by a DNS provider implementation.

    Attributes
    ----------
    provider : str
        Provider tag ("cloudflare", "aliyun", "dnspod", "huaweicloud").
    raw_message : str | None
        The provider's own message, when one was returned.
    """

    code: ClassVar[str] = "ProviderError"

    def __init__(
        self,
        provider: str,
        text: str,
        raw_message: str | None = None,
    ) -> None:
        self.provider = provider
        self.raw_message = raw_message
        message = f"[{provider}] {text}"
        if raw_message:
            message = f"{message}: {raw_message}"
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        result: dict[str, Any] = {"provider": self.provider}
        if self.raw_message is not None:
            result["raw_message"] = self.raw_message
        return result


class NetworkError(ProviderError):
    """Transport failure or upstream gateway error."""

    code = "NetworkError"
    retryable = True

    def __init__(self, provider: str, detail: str) -> None:
        self.detail = detail
        super().__init__(provider, f"Network error: {detail}")


class RequestTimeoutError(ProviderError):
    """The request exceeded its connect or total timeout."""

    code = "Timeout"
    retryable = True

    def __init__(self, provider: str, detail: str) -> None:
        self.detail = detail
        super().__init__(provider, f"Request timeout: {detail}")


class InvalidCredentialsError(ProviderError):
    """The provider rejected the credentials."""

    code = "InvalidCredentials"
    expected = True

    def __init__(self, provider: str, raw_message: str | None = None) -> None:
        super().__init__(provider, "Invalid credentials", raw_message)


class RecordExistsError(ProviderError):
    """A record with the same name/type/value already exists."""

    code = "RecordExists"
    expected = True

    def __init__(
        self,
        provider: str,
        record_name: str,
        raw_message: str | None = None,
    ) -> None:
        self.record_name = record_name
        super().__init__(provider, f"Record '{record_name}' already exists", raw_message)

    def details(self) -> dict[str, Any]:
        return {**super().details(), "record_name": self.record_name}


class RecordNotFoundError(ProviderError):
    """The addressed record does not exist."""

    code = "RecordNotFound"
    expected = True

    def __init__(
        self,
        provider: str,
        record_id: str,
        raw_message: str | None = None,
    ) -> None:
        self.record_id = record_id
        super().__init__(provider, f"Record '{record_id}' not found", raw_message)

    def details(self) -> dict[str, Any]:
        return {**super().details(), "record_id": self.record_id}


class InvalidParameterError(ProviderError):
    """
    The provider rejected a request parameter.

    Attributes
    ----------
    param : str
        Canonical parameter name: name, value, type, ttl, priority,
        proxied, line, domain or general.
    detail : str
        What was wrong with it.
    """

    code = "InvalidParameter"
    expected = True

    def __init__(self, provider: str, param: str, detail: str) -> None:
        self.param = param
        self.detail = detail
        super().__init__(provider, f"Invalid parameter '{param}': {detail}")

    def details(self) -> dict[str, Any]:
        return {**super().details(), "param": self.param, "detail": self.detail}


class UnsupportedRecordTypeError(ProviderError):
    """The record type is not supported by this provider or by the model."""

    code = "UnsupportedRecordType"
    expected = True

    def __init__(self, provider: str, record_type: str) -> None:
        self.record_type = record_type
        super().__init__(provider, f"Unsupported record type: {record_type}")

    def details(self) -> dict[str, Any]:
        return {**super().details(), "record_type": self.record_type}


class QuotaExceededError(ProviderError):
    """An account or zone quota was hit."""

    code = "QuotaExceeded"
    expected = True

    def __init__(self, provider: str, raw_message: str | None = None) -> None:
        super().__init__(provider, "Quota exceeded", raw_message)


class RateLimitedError(ProviderError):
    """
    The provider throttled the request.

    Attributes
    ----------
    retry_after : int | None
        Seconds the provider asked us to wait, when it said.
    """

    code = "RateLimited"
    expected = True
    retryable = True

    def __init__(
        self,
        provider: str,
        retry_after: int | None = None,
        raw_message: str | None = None,
    ) -> None:
        self.retry_after = retry_after
        text = "Rate limited"
        if retry_after is not None:
            text = f"Rate limited (retry after {retry_after}s)"
        super().__init__(provider, text, raw_message)

    def details(self) -> dict[str, Any]:
        return {**super().details(), "retry_after": self.retry_after}


class DomainNotFoundError(ProviderError):
    """The zone does not exist or is not visible to the credentials."""

    code = "DomainNotFound"
    expected = True

    def __init__(
        self,
        provider: str,
        domain: str,
        raw_message: str | None = None,
    ) -> None:
        self.domain = domain
        super().__init__(provider, f"Domain '{domain}' not found", raw_message)

    def details(self) -> dict[str, Any]:
        return {**super().details(), "domain": self.domain}


class DomainLockedError(ProviderError):
    """The zone is locked, expired or otherwise frozen."""

    code = "DomainLocked"
    expected = True

    def __init__(
        self,
        provider: str,
        domain: str,
        raw_message: str | None = None,
    ) -> None:
        self.domain = domain
        super().__init__(provider, f"Domain '{domain}' is locked", raw_message)

    def details(self) -> dict[str, Any]:
        return {**super().details(), "domain": self.domain}


class PermissionDeniedError(ProviderError):
    """The credentials are valid but lack permission."""

    code = "PermissionDenied"
    expected = True

    def __init__(self, provider: str, raw_message: str | None = None) -> None:
        super().__init__(provider, "Permission denied", raw_message)


class ParseError(ProviderError):
    """The provider response could not be parsed."""

    code = "ParseError"

    def __init__(self, provider: str, detail: str) -> None:
        self.detail = detail
        super().__init__(provider, f"Failed to parse response: {detail}")


class SerializationError(ProviderError):
    """A request payload could not be serialized."""

    code = "SerializationError"

    def __init__(self, provider: str, detail: str) -> None:
        self.detail = detail
        super().__init__(provider, f"Serialization error: {detail}")


class ApiError(ProviderError):
    """Fallback for provider error codes without a semantic mapping."""

    code = "ApiError"

    def __init__(
        self,
        provider: str,
        raw_code: str | None,
        raw_message: str,
    ) -> None:
        self.raw_code = raw_code
        text = f"API error {raw_code}" if raw_code else "API error"
        super().__init__(provider, text, raw_message)

    def details(self) -> dict[str, Any]:
        return {**super().details(), "raw_code": self.raw_code}


class RawApiError(BaseModel):
    """An error code/message pair as returned by a provider API."""

    model_config = {"frozen": True}

    code: str | None = None
    message: str = ""


class ErrorContext(BaseModel):
    """
    Call-site information used to fill variant-specific error fields.

    Missing values render as ``<unknown>``.
    """

    model_config = {"frozen": True}

    record_name: str | None = None
    record_id: str | None = None
    domain: str | None = None

    @property
    def record_name_or_unknown(self) -> str:
        return self.record_name or UNKNOWN

    @property
    def record_id_or_unknown(self) -> str:
        return self.record_id or UNKNOWN

    @property
    def domain_or_unknown(self) -> str:
        return self.domain or UNKNOWN


# ---------------------------------------------------------------------------
# Core errors
# ---------------------------------------------------------------------------


class CoreError(DnsOrchestratorError):
    """Base class for orchestration (non-provider) errors."""

    code: ClassVar[str] = "CoreError"


class ProviderNotFoundError(CoreError):
    """The provider tag is not one of the supported providers."""

    code = "ProviderNotFound"
    expected = True

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider not found: {provider}")


class AccountNotFoundError(CoreError):
    """No account (or no live provider) exists for the ID."""

    code = "AccountNotFound"
    expected = True

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")

    def details(self) -> dict[str, Any]:
        return {"account_id": self.account_id}


class CredentialError(CoreError):
    """Credentials are missing or cannot be read from the store."""

    code = "CredentialError"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Credential error: {detail}")


class CredentialValidationKind(StrEnum):
    """Kinds of field-level credential validation failures."""

    MISSING_FIELD = "MissingField"
    EMPTY_FIELD = "EmptyField"
    INVALID_FORMAT = "InvalidFormat"


class CredentialValidationError(CoreError):
    """
    Field-level validation failure of credential input.

    Attributes
    ----------
    kind : CredentialValidationKind
        What went wrong.
    provider : str
        Provider tag the credentials were built for.
    field : str
        Offending field (canonical camelCase key).
    detail : str | None
        Extra description for `INVALID_FORMAT`.
    """

    code = "CredentialValidation"
    expected = True

    def __init__(
        self,
        kind: CredentialValidationKind,
        provider: str,
        field: str,
        detail: str | None = None,
    ) -> None:
        self.kind = kind
        self.provider = provider
        self.field = field
        self.detail = detail
        if kind == CredentialValidationKind.MISSING_FIELD:
            text = f"Missing required field '{field}' for {provider}"
        elif kind == CredentialValidationKind.EMPTY_FIELD:
            text = f"Field '{field}' cannot be empty for {provider}"
        else:
            text = f"Invalid format for field '{field}' ({provider}): {detail}"
        super().__init__(text)

    def details(self) -> dict[str, Any]:
        return {
            "kind": str(self.kind),
            "provider": self.provider,
            "field": self.field,
            "detail": self.detail,
        }


class MigrationRequiredError(CoreError):
    """The credential store holds data in the legacy (untyped) format."""

    code = "MigrationRequired"

    def __init__(self) -> None:
        super().__init__("Credential data migration required")


class MigrationFailedError(CoreError):
    """The legacy credential blob could not be migrated."""

    code = "MigrationFailed"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Migration failed: {detail}")


class UnsupportedFileVersionError(CoreError):
    """The export file version is not known to this build."""

    code = "UnsupportedFileVersion"
    expected = True

    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(f"Unsupported file version: {version}")

    def details(self) -> dict[str, Any]:
        return {"version": self.version}


class NoAccountsSelectedError(CoreError):
    """An export was requested without selecting any account."""

    code = "NoAccountsSelected"
    expected = True

    def __init__(self) -> None:
        super().__init__("No accounts selected")


class InvalidInputError(CoreError):
    """Caller input failed validation."""

    code = "ValidationError"
    expected = True

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Validation error: {detail}")


class ImportExportError(CoreError):
    """An export file could not be produced or read."""

    code = "ImportExportError"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Import/Export error: {detail}")


class StorageError(CoreError):
    """A persistence adapter failed."""

    code = "StorageError"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Storage error: {detail}")


class DecryptionError(CoreError):
    """
    Decryption failed.

    Wrong password, corrupted ciphertext and malformed base64 are
    deliberately indistinguishable.
    """

    code = "DecryptionFailed"

    def __init__(self) -> None:
        super().__init__("Decryption failed: invalid password or corrupted data")
