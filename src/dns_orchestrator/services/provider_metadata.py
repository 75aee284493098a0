"""Static information about the supported providers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dns_orchestrator.providers.factory import get_all_provider_metadata

if TYPE_CHECKING:
    from dns_orchestrator.models import ProviderMetadata


class ProviderMetadataService:
    """Lists provider metadata for forms and pickers."""

    def list_providers(self) -> list[ProviderMetadata]:
        return get_all_provider_metadata()
