"""Tests for the error taxonomy."""

from __future__ import annotations

import pytest

from dns_orchestrator.errors import (
    AccountNotFoundError,
    ApiError,
    CredentialValidationError,
    CredentialValidationKind,
    DecryptionError,
    DnsOrchestratorError,
    ErrorContext,
    InvalidCredentialsError,
    InvalidParameterError,
    NetworkError,
    ProviderError,
    RateLimitedError,
    RecordExistsError,
    RequestTimeoutError,
    StorageError,
)


class TestProviderErrors:
    """Tests for provider error messages and fields."""

    def test_message_has_provider_prefix(self):
        err = InvalidCredentialsError("cloudflare")
        assert str(err) == "[cloudflare] Invalid credentials"
        assert err.provider == "cloudflare"

    def test_raw_message_is_appended(self):
        err = InvalidCredentialsError("aliyun", "Specified access key is not found.")
        assert str(err) == "[aliyun] Invalid credentials: Specified access key is not found."
        assert err.raw_message == "Specified access key is not found."

    def test_rate_limited_shows_retry_after(self):
        assert str(RateLimitedError("dnspod", 5)) == "[dnspod] Rate limited (retry after 5s)"
        assert str(RateLimitedError("dnspod")) == "[dnspod] Rate limited"

    def test_to_dict(self):
        err = RecordExistsError("cloudflare", "www", "Record already exists.")
        assert err.to_dict() == {
            "code": "RecordExists",
            "message": "[cloudflare] Record 'www' already exists: Record already exists.",
            "details": {
                "provider": "cloudflare",
                "raw_message": "Record already exists.",
                "record_name": "www",
            },
        }

    def test_invalid_parameter_details(self):
        err = InvalidParameterError("dnspod", "ttl", "too small")
        assert err.details()["param"] == "ttl"
        assert err.details()["detail"] == "too small"

    def test_api_error_keeps_raw_code(self):
        err = ApiError("huaweicloud", "DNS.9999", "Something broke")
        assert err.raw_code == "DNS.9999"
        assert str(err) == "[huaweicloud] API error DNS.9999: Something broke"

    def test_hierarchy(self):
        assert isinstance(NetworkError("aliyun", "boom"), ProviderError)
        assert isinstance(AccountNotFoundError("x"), DnsOrchestratorError)
        assert not isinstance(AccountNotFoundError("x"), ProviderError)


class TestErrorBands:
    """Tests for the expected / transient / fatal classification."""

    @pytest.mark.parametrize(
        "err",
        [
            InvalidCredentialsError("cloudflare"),
            RecordExistsError("cloudflare", "www"),
            AccountNotFoundError("acc"),
        ],
    )
    def test_expected(self, err: DnsOrchestratorError):
        assert err.is_expected is True

    @pytest.mark.parametrize(
        "err",
        [
            NetworkError("aliyun", "reset"),
            RequestTimeoutError("aliyun", "read timeout"),
            RateLimitedError("aliyun"),
        ],
    )
    def test_retryable(self, err: DnsOrchestratorError):
        assert err.retryable is True

    @pytest.mark.parametrize(
        "err",
        [StorageError("disk full"), DecryptionError(), ApiError("aliyun", None, "x")],
    )
    def test_fatal(self, err: DnsOrchestratorError):
        assert err.is_expected is False
        assert err.retryable is False


class TestCoreErrors:
    """Tests for orchestration errors."""

    def test_credential_validation_messages(self):
        missing = CredentialValidationError(
            CredentialValidationKind.MISSING_FIELD, "cloudflare", "apiToken",
        )
        empty = CredentialValidationError(
            CredentialValidationKind.EMPTY_FIELD, "aliyun", "accessKeyId",
        )
        invalid = CredentialValidationError(
            CredentialValidationKind.INVALID_FORMAT, "dnspod", "secretId", "not a string",
        )
        assert str(missing) == "Missing required field 'apiToken' for cloudflare"
        assert str(empty) == "Field 'accessKeyId' cannot be empty for aliyun"
        assert str(invalid) == "Invalid format for field 'secretId' (dnspod): not a string"
        assert missing.details()["kind"] == "MissingField"

    def test_decryption_error_is_opaque(self):
        err = DecryptionError()
        assert err.code == "DecryptionFailed"
        assert "invalid password or corrupted data" in str(err)


class TestErrorContext:
    """Tests for ErrorContext placeholders."""

    def test_unknown_placeholders(self):
        ctx = ErrorContext()
        assert ctx.record_name_or_unknown == "<unknown>"
        assert ctx.record_id_or_unknown == "<unknown>"
        assert ctx.domain_or_unknown == "<unknown>"

    def test_known_values(self):
        ctx = ErrorContext(record_name="www", record_id="r1", domain="example.com")
        assert ctx.record_name_or_unknown == "www"
        assert ctx.record_id_or_unknown == "r1"
        assert ctx.domain_or_unknown == "example.com"
