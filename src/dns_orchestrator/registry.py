"""
Provider registry.

Maps account IDs to live provider instances. The registry holds no
persistent state; bootstrap repopulates it at startup.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dns_orchestrator.providers.base import BaseDNSProvider


logger = logging.getLogger(__name__)


class ProviderRegistry(ABC):
    """Account ID to provider instance map."""

    @abstractmethod
    async def register(self, account_id: str, provider: BaseDNSProvider) -> None:
        """Register `provider` for `account_id`, replacing any existing entry."""
        ...

    @abstractmethod
    async def unregister(self, account_id: str) -> BaseDNSProvider | None:
        """Remove the entry for `account_id` and return it, if any."""
        ...

    @abstractmethod
    async def get(self, account_id: str) -> BaseDNSProvider | None:
        """Get the provider registered for `account_id`."""
        ...

    @abstractmethod
    async def list_account_ids(self) -> list[str]:
        """Snapshot of the registered account IDs."""
        ...


class InMemoryProviderRegistry(ProviderRegistry):
    """
    In-process registry.

    Writes are serialized by a lock and swap the entry in one step, so a
    concurrent reader sees either the old or the new provider.
    """

    def __init__(self) -> None:
        self._providers: dict[str, BaseDNSProvider] = {}
        self._lock = asyncio.Lock()

    async def register(self, account_id: str, provider: BaseDNSProvider) -> None:
        async with self._lock:
            self._providers[account_id] = provider
        logger.debug("Registered %s provider for account %s", provider.id, account_id)

    async def unregister(self, account_id: str) -> BaseDNSProvider | None:
        async with self._lock:
            provider = self._providers.pop(account_id, None)
        if provider is not None:
            logger.debug("Unregistered provider for account %s", account_id)
        return provider

    async def get(self, account_id: str) -> BaseDNSProvider | None:
        return self._providers.get(account_id)

    async def list_account_ids(self) -> list[str]:
        return list(self._providers)
