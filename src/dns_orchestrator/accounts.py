"""
Account and export-file models.

An `Account` binds a human-readable name to one provider; its credentials
live separately in a credential store under the same ID. The export file
models describe the portable (optionally encrypted) account bundle.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic_core import PydanticCustomError

from dns_orchestrator.credentials import ProviderCredentials  # noqa: TC001
from dns_orchestrator.models import CAMEL_CONFIG, ProviderType
from dns_orchestrator.timeutil import UtcDatetime  # noqa: TC001

if TYPE_CHECKING:
    from typing import Self


class AccountStatus(StrEnum):
    """Account health as last observed."""

    ACTIVE = "active"
    ERROR = "error"


class Account(BaseModel):
    """
    A registered cloud account.

    Attributes
    ----------
    id : str
        Stable identifier (UUID v4 for accounts created here).
    name : str
        Human-readable name.
    provider : ProviderType
        Provider tag.
    created_at : datetime
        Creation time (UTC).
    updated_at : datetime
        Last modification time (UTC).
    status : AccountStatus | None
        Last known status.
    error : str | None
        Reason for `AccountStatus.ERROR`.
    """

    model_config = CAMEL_CONFIG

    id: str
    name: str
    provider: ProviderType
    created_at: UtcDatetime
    updated_at: UtcDatetime
    status: AccountStatus | None = None
    error: str | None = None


def _check_provider_match(provider: ProviderType, credentials: Any) -> None:
    if credentials is not None and credentials.provider_type() != provider:
        err_type = "provider_mismatch"
        raise PydanticCustomError(
            err_type,
            "Credentials are for '{found}' but the account provider is '{expected}'",
            {"found": credentials.provider, "expected": provider.value},
        )


class CreateAccountRequest(BaseModel):
    """
    Account creation request.

    The provider tag inside `credentials` must match `provider`.
    """

    model_config = CAMEL_CONFIG

    name: str = Field(..., min_length=1)
    provider: ProviderType
    credentials: ProviderCredentials

    @model_validator(mode="after")
    def check_provider_matches(self) -> Self:
        _check_provider_match(self.provider, self.credentials)
        return self


class UpdateAccountRequest(BaseModel):
    """
    Account update request.

    Omitted fields are left unchanged. New credentials must keep the
    account's provider; the lifecycle service enforces that.
    """

    model_config = CAMEL_CONFIG

    id: str
    name: str | None = Field(default=None, min_length=1)
    credentials: ProviderCredentials | None = None


class RestoreResult(BaseModel):
    """Outcome of startup bootstrap."""

    success_count: int
    error_count: int


# Export file


class ExportedAccount(BaseModel):
    """
    One account inside an export file.

    `credentials` is the untyped camelCase field map (see
    `BaseCredentials.to_map`), kept untyped for compatibility with older files.
    """

    model_config = CAMEL_CONFIG

    id: str
    name: str
    provider: ProviderType
    created_at: UtcDatetime
    updated_at: UtcDatetime | None = None
    credentials: dict[str, str]


class ExportFileHeader(BaseModel):
    """
    Plaintext header of an export file.

    Attributes
    ----------
    version : int
        File format version; implies the PBKDF2 iteration count.
    encrypted : bool
        Whether `data` is base64 ciphertext.
    salt : str | None
        Base64 PBKDF2 salt (encrypted files only).
    nonce : str | None
        Base64 AES-GCM nonce (encrypted files only).
    exported_at : str
        RFC 3339 export time.
    app_version : str
        Version of the exporting application.
    """

    version: int
    encrypted: bool
    salt: str | None = None
    nonce: str | None = None
    exported_at: str = Field(
        ...,
        validation_alias=AliasChoices("exported_at", "exportedAt"),
    )
    app_version: str = Field(
        ...,
        validation_alias=AliasChoices("app_version", "appVersion"),
    )


class ExportFile(BaseModel):
    """The export envelope: header plus inline array or ciphertext."""

    header: ExportFileHeader
    data: list[Any] | str


class ExportAccountsRequest(BaseModel):
    """Export request."""

    model_config = CAMEL_CONFIG

    account_ids: list[str]
    encrypt: bool = False
    password: str | None = Field(default=None, repr=False)


class ExportAccountsResponse(BaseModel):
    """Serialized export file and a suggested filename."""

    model_config = CAMEL_CONFIG

    content: str
    suggested_filename: str


class ImportAccountsRequest(BaseModel):
    """Import request."""

    model_config = CAMEL_CONFIG

    content: str
    password: str | None = Field(default=None, repr=False)


class ImportPreviewAccount(BaseModel):
    """One account of an import preview."""

    model_config = CAMEL_CONFIG

    name: str
    provider: ProviderType
    has_conflict: bool


class ImportPreview(BaseModel):
    """
    Preview of an export file before import.

    `account_count` and `accounts` are None when the file is encrypted and
    no password was supplied.
    """

    model_config = CAMEL_CONFIG

    encrypted: bool
    account_count: int | None = None
    accounts: list[ImportPreviewAccount] | None = None


class ImportFailure(BaseModel):
    """One account that could not be imported."""

    name: str
    reason: str


class ImportResult(BaseModel):
    """Aggregate outcome of an import."""

    model_config = CAMEL_CONFIG

    success_count: int = 0
    failures: list[ImportFailure] = Field(default_factory=list)
