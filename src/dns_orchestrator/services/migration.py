"""
Credential format migration.

Upgrades the legacy untyped credential blob (``{account_id: {field:
value}}``) to typed `ProviderCredentials`. Backing up the raw blob before
the migration, and restoring it if the migration raises, is the host's
job; see `AppContext.startup`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

from dns_orchestrator.credentials import credentials_from_map
from dns_orchestrator.errors import (
    DnsOrchestratorError,
    MigrationFailedError,
    MigrationRequiredError,
)
from dns_orchestrator.storage.base import legacy_map_adapter

if TYPE_CHECKING:
    from dns_orchestrator.services.context import ServiceContext
    from dns_orchestrator.storage.base import CredentialsMap


logger = logging.getLogger(__name__)


class MigrationFailure(BaseModel):
    """One account whose credentials could not be migrated."""

    account_id: str
    reason: str


class MigrationResult(BaseModel):
    """
    Outcome of `MigrationService.migrate_if_needed`.

    Attributes
    ----------
    needed : bool
        False when the stored data was already typed (or empty).
    migrated_count : int
        Accounts converted.
    failed_accounts : list[MigrationFailure]
        Accounts left unconverted, with the reason.
    """

    needed: bool = False
    migrated_count: int = 0
    failed_accounts: list[MigrationFailure] = Field(default_factory=list)

    @classmethod
    def not_needed(cls) -> MigrationResult:
        return cls()


class MigrationService:
    """Detects the legacy credential format and upgrades it."""

    def __init__(self, ctx: ServiceContext) -> None:
        self.ctx = ctx

    async def migrate_if_needed(self) -> MigrationResult:
        """
        Run the migration when the credential store reports the legacy format.

        A row that cannot be converted is recorded as a failure and never
        aborts the others.

        Returns
        -------
        MigrationResult
            Not needed, or the migrated and failed counts.

        Raises
        ------
        MigrationFailedError
            If the raw blob cannot be parsed.
        """
        try:
            await self.ctx.credential_store.load_all()
        except MigrationRequiredError:
            logger.info("Legacy credential format detected, starting migration")
            return await self._migrate()
        logger.info("Credentials are already in the current format; migration not needed")
        return MigrationResult.not_needed()

    async def _migrate(self) -> MigrationResult:
        raw = await self.ctx.credential_store.load_raw_json()
        try:
            legacy = legacy_map_adapter.validate_json(raw)
        except ValidationError as e:
            raise MigrationFailedError(f"Failed to parse legacy format: {e}") from e

        if not legacy:
            logger.info("Legacy credentials are empty; migration not needed")
            return MigrationResult.not_needed()

        providers = {a.id: a.provider for a in await self.ctx.account_repository.find_all()}

        converted: CredentialsMap = {}
        failures: list[MigrationFailure] = []
        for account_id, fields in legacy.items():
            provider = providers.get(account_id)
            if provider is None:
                logger.warning("Account metadata not found for %s, skipping migration", account_id)
                failures.append(
                    MigrationFailure(account_id=account_id, reason="Missing account metadata"),
                )
                continue
            try:
                converted[account_id] = credentials_from_map(provider, fields)
            except DnsOrchestratorError as e:
                logger.warning("Failed to convert credentials for account %s: %s", account_id, e)
                failures.append(
                    MigrationFailure(account_id=account_id, reason=f"Conversion failed: {e}"),
                )

        if converted:
            await self.ctx.credential_store.save_all(converted)
            logger.info(
                "Credential migration completed: %d succeeded, %d failed",
                len(converted),
                len(failures),
            )

        return MigrationResult(
            needed=True,
            migrated_count=len(converted),
            failed_accounts=failures,
        )
