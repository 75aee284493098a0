"""
Account import and export.

Export files are a JSON envelope: a plaintext `ExportFileHeader` and a
`data` field that is either the account array or, when encrypted, its
base64 AES-256-GCM ciphertext. The header version selects the PBKDF2
iteration count used to derive the key.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from dns_orchestrator import __version__, crypto
from dns_orchestrator.accounts import (
    ExportAccountsResponse,
    ExportedAccount,
    ExportFile,
    ExportFileHeader,
    ImportFailure,
    ImportPreview,
    ImportPreviewAccount,
    ImportResult,
)
from dns_orchestrator.credentials import credentials_from_map
from dns_orchestrator.errors import (
    DnsOrchestratorError,
    ImportExportError,
    InvalidInputError,
    NoAccountsSelectedError,
    UnsupportedFileVersionError,
)
from dns_orchestrator.timeutil import format_timestamp, utc_now

if TYPE_CHECKING:
    from typing import Final

    from dns_orchestrator.accounts import ExportAccountsRequest, ImportAccountsRequest
    from dns_orchestrator.services.account import AccountService


EXPORT_FILENAME_FORMAT: Final[str] = "dns-accounts-%Y%m%d-%H%M%S.json"
NAME_CONFLICT: Final[str] = "name conflict"

exported_accounts_adapter: TypeAdapter[list[ExportedAccount]] = TypeAdapter(
    list[ExportedAccount],
)


logger = logging.getLogger(__name__)


def _parse_file(content: str) -> ExportFile:
    try:
        export_file = ExportFile.model_validate_json(content)
    except ValidationError as e:
        raise ImportExportError(f"Invalid import file: {e}") from e
    if crypto.get_pbkdf2_iterations(export_file.header.version) is None:
        raise UnsupportedFileVersionError(export_file.header.version)
    return export_file


def _read_accounts(export_file: ExportFile, password: str | None) -> list[ExportedAccount] | None:
    """
    Get the accounts of a parsed export file.

    Returns
    -------
    list[ExportedAccount] | None
        None if the file is encrypted and no password was given.

    Raises
    ------
    DecryptionError
        If the password is wrong or the ciphertext is corrupted.
    ImportExportError
        If the payload is malformed.
    """
    header = export_file.header
    if not header.encrypted:
        if not isinstance(export_file.data, list):
            raise ImportExportError("Expected an account array in an unencrypted file")
        payload = export_file.data
    else:
        if password is None:
            return None
        if not isinstance(export_file.data, str):
            raise ImportExportError("Expected base64 ciphertext in an encrypted file")
        if header.salt is None or header.nonce is None:
            raise ImportExportError("Encrypted file is missing its salt or nonce")

        iterations = crypto.get_pbkdf2_iterations(header.version)
        logger.info(
            "Decrypting version %d file with PBKDF2-HMAC-SHA256 (%s iterations)",
            header.version,
            iterations,
        )
        plaintext = crypto.decrypt(
            export_file.data,
            password,
            header.salt,
            header.nonce,
            iterations,
        )
        try:
            payload = json.loads(plaintext)
        except ValueError as e:
            raise ImportExportError(f"Failed to parse account data: {e}") from e

    try:
        return exported_accounts_adapter.validate_python(payload)
    except ValidationError as e:
        raise ImportExportError(f"Failed to parse account data: {e}") from e


class ImportExportService:
    """Exports accounts to, and imports them from, export files."""

    def __init__(self, account_service: AccountService) -> None:
        self.account_service = account_service

    async def export_accounts(self, request: ExportAccountsRequest) -> ExportAccountsResponse:
        """
        Export accounts with their credentials.

        Unknown IDs are ignored; accounts whose credentials cannot be
        loaded are skipped with a warning.

        Parameters
        ----------
        request : ExportAccountsRequest
            Account IDs, whether to encrypt, and the password.

        Returns
        -------
        ExportAccountsResponse
            The file content and a suggested filename.

        Raises
        ------
        NoAccountsSelectedError
            If no existing account was selected.
        InvalidInputError
            If encryption was requested without a password.
        """
        if not request.account_ids:
            raise NoAccountsSelectedError
        if request.encrypt and not request.password:
            raise InvalidInputError("A password is required for encrypted export")

        wanted = set(request.account_ids)
        selected = [a for a in await self.account_service.list_accounts() if a.id in wanted]
        if not selected:
            raise NoAccountsSelectedError

        exported: list[ExportedAccount] = []
        for account in selected:
            try:
                credentials = await self.account_service.load_credentials(account.id)
            except DnsOrchestratorError as e:
                logger.warning("Skipping account %s in export: %s", account.id, e)
                continue
            exported.append(
                ExportedAccount(
                    id=account.id,
                    name=account.name,
                    provider=account.provider,
                    created_at=account.created_at,
                    updated_at=account.updated_at,
                    credentials=credentials.to_map(),
                ),
            )

        accounts_json = [a.model_dump(mode="json", by_alias=True) for a in exported]
        now = utc_now()
        header = ExportFileHeader(
            version=crypto.current_version(),
            encrypted=request.encrypt,
            exported_at=format_timestamp(now),
            app_version=__version__,
        )

        if request.encrypt:
            plaintext = json.dumps(accounts_json, ensure_ascii=False).encode("utf-8")
            salt, nonce, ciphertext = crypto.encrypt(plaintext, request.password or "")
            header = header.model_copy(update={"salt": salt, "nonce": nonce})
            export_file = ExportFile(header=header, data=ciphertext)
        else:
            export_file = ExportFile(header=header, data=accounts_json)

        logger.info("Exported %d accounts (encrypted: %s)", len(exported), request.encrypt)
        return ExportAccountsResponse(
            content=json.dumps(
                export_file.model_dump(exclude_none=True),
                indent=2,
                ensure_ascii=False,
            ),
            suggested_filename=now.strftime(EXPORT_FILENAME_FORMAT),
        )

    async def preview_import(self, content: str, password: str | None = None) -> ImportPreview:
        """
        Describe an export file without importing it.

        Raises
        ------
        UnsupportedFileVersionError
            If the file version is unknown.
        """
        export_file = _parse_file(content)
        accounts = _read_accounts(export_file, password)
        if accounts is None:
            return ImportPreview(encrypted=True)

        existing_names = {a.name for a in await self.account_service.list_accounts()}
        return ImportPreview(
            encrypted=export_file.header.encrypted,
            account_count=len(accounts),
            accounts=[
                ImportPreviewAccount(
                    name=a.name,
                    provider=a.provider,
                    has_conflict=a.name in existing_names,
                )
                for a in accounts
            ],
        )

    async def import_accounts(self, request: ImportAccountsRequest) -> ImportResult:
        """
        Import every account of an export file.

        An account whose name is already taken, whose credentials are
        malformed, or whose credentials the provider rejects is recorded
        as a failure; the others are still imported.

        Raises
        ------
        InvalidInputError
            If the file is encrypted and no password was given.
        UnsupportedFileVersionError
            If the file version is unknown.
        """
        export_file = _parse_file(request.content)
        accounts = _read_accounts(export_file, request.password)
        if accounts is None:
            raise InvalidInputError("A password is required for encrypted files")

        existing_names = {a.name for a in await self.account_service.list_accounts()}
        result = ImportResult()
        for exported in accounts:
            if exported.name in existing_names:
                result.failures.append(ImportFailure(name=exported.name, reason=NAME_CONFLICT))
                continue
            try:
                credentials = credentials_from_map(exported.provider, exported.credentials)
                await self.account_service.create_account_from_import(
                    exported.name,
                    exported.provider,
                    credentials,
                )
            except DnsOrchestratorError as e:
                logger.warning("Failed to import account %s: %s", exported.name, e)
                result.failures.append(ImportFailure(name=exported.name, reason=str(e)))
                continue
            existing_names.add(exported.name)
            result.success_count += 1

        logger.info(
            "Imported %d accounts (%d failed)",
            result.success_count,
            len(result.failures),
        )
        return result
