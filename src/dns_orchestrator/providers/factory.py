"""
Provider factory.

`create_provider` is the only way the services instantiate a provider; it
dispatches on the credentials' provider tag.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dns_orchestrator.credentials import (
    AliyunCredentials,
    CloudflareCredentials,
    DnspodCredentials,
    HuaweicloudCredentials,
)
from dns_orchestrator.providers.aliyun import AliyunProvider
from dns_orchestrator.providers.cloudflare import CloudflareProvider
from dns_orchestrator.providers.dnspod import DnspodProvider
from dns_orchestrator.providers.huaweicloud import HuaweicloudProvider

if TYPE_CHECKING:
    import httpx

    from dns_orchestrator.credentials import ProviderCredentials
    from dns_orchestrator.models import ProviderMetadata
    from dns_orchestrator.providers.base import BaseDNSProvider
    from dns_orchestrator.providers.http_client import HttpSettings


PROVIDER_CLASSES: tuple[type[BaseDNSProvider], ...] = (
    CloudflareProvider,
    AliyunProvider,
    DnspodProvider,
    HuaweicloudProvider,
)


logger = logging.getLogger(__name__)


def create_provider(
    credentials: ProviderCredentials,
    http_settings: HttpSettings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseDNSProvider:
    """
    Create a provider instance for the given credentials.

    Parameters
    ----------
    credentials : ProviderCredentials
        Typed credentials; the variant selects the provider.
    http_settings : HttpSettings | None, optional
        Timeouts and retry settings passed to the provider's HTTP client.
    transport : httpx.AsyncBaseTransport | None, optional
        Custom transport, used by tests.

    Returns
    -------
    BaseDNSProvider
        A new provider bound to the credentials.
    """
    logger.debug("Creating %s provider", credentials.provider)
    match credentials:
        case CloudflareCredentials():
            return CloudflareProvider(credentials, http_settings, transport)
        case AliyunCredentials():
            return AliyunProvider(credentials, http_settings, transport)
        case DnspodCredentials():
            return DnspodProvider(credentials, http_settings, transport)
        case HuaweicloudCredentials():
            return HuaweicloudProvider(credentials, http_settings, transport)
    msg = f"Unsupported credentials type: {type(credentials).__name__}"
    raise TypeError(msg)


def get_all_provider_metadata() -> list[ProviderMetadata]:
    """Get the metadata of every supported provider."""
    return [cls.metadata() for cls in PROVIDER_CLASSES]
