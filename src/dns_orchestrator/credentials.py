"""
Provider credentials.

`ProviderCredentials` is a tagged union with one variant per provider. The
serialized form carries the provider tag next to a camelCase field map::

    {"provider": "cloudflare", "credentials": {"apiToken": "..."}}

Untyped ``dict[str, str]`` maps (the legacy storage format and the export
file format) are converted with `credentials_from_map` / `to_map`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Any, ClassVar, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    TypeAdapter,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from dns_orchestrator.errors import (
    CredentialValidationError,
    CredentialValidationKind,
    ProviderNotFoundError,
)
from dns_orchestrator.models import ProviderType

if TYPE_CHECKING:
    from collections.abc import Mapping


class BaseCredentials(BaseModel):
    """
    Common behaviour of every credentials variant.

    Subclasses declare `FIELDS`, a tuple of ``(attribute, camelCase key)``
    pairs in the order the provider's form presents them.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    FIELDS: ClassVar[tuple[tuple[str, str], ...]] = ()

    provider: str

    @model_validator(mode="before")
    @classmethod
    def _unwrap_tagged(cls, data: Any) -> Any:
        """Accept both the tagged form and a flat field map."""
        if isinstance(data, dict) and isinstance(data.get("credentials"), dict):
            return {"provider": data.get("provider"), **data["credentials"]}
        return data

    @model_serializer(mode="wrap")
    def _wrap_tagged(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        flat = handler(self)
        provider = flat.pop("provider")
        return {"provider": provider, "credentials": flat}

    def provider_type(self) -> ProviderType:
        """Get the provider tag of these credentials."""
        return ProviderType(self.provider)

    def to_map(self) -> dict[str, str]:
        """
        Convert to an untyped camelCase map.

        Returns
        -------
        dict[str, str]
            E.g. ``{"accessKeyId": "...", "accessKeySecret": "..."}``.
        """
        return {key: getattr(self, attr) for attr, key in self.FIELDS}


class CloudflareCredentials(BaseCredentials):
    """CloudFlare API token."""

    FIELDS = (("api_token", "apiToken"),)

    provider: Literal["cloudflare"] = "cloudflare"
    api_token: str = Field(..., repr=False)


class AliyunCredentials(BaseCredentials):
    """Alibaba Cloud AccessKey pair."""

    FIELDS = (
        ("access_key_id", "accessKeyId"),
        ("access_key_secret", "accessKeySecret"),
    )

    provider: Literal["aliyun"] = "aliyun"
    access_key_id: str
    access_key_secret: str = Field(..., repr=False)


class DnspodCredentials(BaseCredentials):
    """Tencent Cloud SecretId/SecretKey pair."""

    FIELDS = (
        ("secret_id", "secretId"),
        ("secret_key", "secretKey"),
    )

    provider: Literal["dnspod"] = "dnspod"
    secret_id: str
    secret_key: str = Field(..., repr=False)


class HuaweicloudCredentials(BaseCredentials):
    """Huawei Cloud AK/SK pair."""

    FIELDS = (
        ("access_key_id", "accessKeyId"),
        ("secret_access_key", "secretAccessKey"),
    )

    provider: Literal["huaweicloud"] = "huaweicloud"
    access_key_id: str
    secret_access_key: str = Field(..., repr=False)


ProviderCredentials = Annotated[
    CloudflareCredentials
    | AliyunCredentials
    | DnspodCredentials
    | HuaweicloudCredentials,
    Field(discriminator="provider"),
]

provider_credentials_adapter: TypeAdapter[ProviderCredentials] = TypeAdapter(
    ProviderCredentials,
)

CREDENTIAL_CLASSES: dict[ProviderType, type[BaseCredentials]] = {
    ProviderType.CLOUDFLARE: CloudflareCredentials,
    ProviderType.ALIYUN: AliyunCredentials,
    ProviderType.DNSPOD: DnspodCredentials,
    ProviderType.HUAWEICLOUD: HuaweicloudCredentials,
}


def credentials_from_map(
    provider: ProviderType | str,
    data: Mapping[str, str],
) -> ProviderCredentials:
    """
    Build typed credentials from an untyped field map.

    Keys are accepted in camelCase (``apiToken``) and in snake_case
    (``api_token``); camelCase wins when both are present.

    Parameters
    ----------
    provider : ProviderType | str
        Provider tag the map belongs to.
    data : Mapping[str, str]
        Field map.

    Returns
    -------
    ProviderCredentials
        The typed credentials variant.

    Raises
    ------
    ProviderNotFoundError
        If the provider tag is unknown.
    CredentialValidationError
        If a required field is missing, blank, or not a string.
    """
    try:
        provider_type = ProviderType(provider)
    except ValueError as e:
        raise ProviderNotFoundError(str(provider)) from e

    cls = CREDENTIAL_CLASSES[provider_type]
    values: dict[str, str] = {}
    for attr, key in cls.FIELDS:
        value = data.get(key, data.get(attr))
        if value is None:
            raise CredentialValidationError(
                CredentialValidationKind.MISSING_FIELD,
                provider_type.value,
                key,
            )
        if not isinstance(value, str):
            raise CredentialValidationError(
                CredentialValidationKind.INVALID_FORMAT,
                provider_type.value,
                key,
                f"expected string, got {type(value).__name__}",
            )
        if not value.strip():
            raise CredentialValidationError(
                CredentialValidationKind.EMPTY_FIELD,
                provider_type.value,
                key,
            )
        values[attr] = value

    return cls(**values)  # type: ignore[return-value]


def parse_credentials(data: Any) -> ProviderCredentials:
    """Validate a serialized (tagged) credentials object."""
    return provider_credentials_adapter.validate_python(data)
