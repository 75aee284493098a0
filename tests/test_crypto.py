"""Tests for password-based encryption."""

from __future__ import annotations

import base64

import pytest

from dns_orchestrator import crypto
from dns_orchestrator.errors import DecryptionError


class TestVersions:
    """Tests for the version to iteration-count table."""

    def test_known_versions(self):
        assert crypto.get_pbkdf2_iterations(1) == 100_000
        assert crypto.get_pbkdf2_iterations(2) == 600_000

    def test_unknown_version(self):
        assert crypto.get_pbkdf2_iterations(3) is None

    def test_current(self):
        assert crypto.current_version() == 2
        assert crypto.current_iterations() == 600_000


class TestEncryptDecrypt:
    """Tests for encrypt / decrypt."""

    @pytest.fixture(scope="class")
    def encrypted(self) -> tuple[str, str, str]:
        return crypto.encrypt(b"hello", "s3cret")

    def test_lengths(self, encrypted: tuple[str, str, str]):
        salt, nonce, ciphertext = encrypted
        assert len(base64.b64decode(salt)) == crypto.SALT_LENGTH
        assert len(base64.b64decode(nonce)) == crypto.NONCE_LENGTH
        # 5 bytes of plaintext plus the 16-byte GCM tag
        assert len(base64.b64decode(ciphertext)) == 5 + 16

    def test_round_trip(self, encrypted: tuple[str, str, str]):
        salt, nonce, ciphertext = encrypted
        assert crypto.decrypt(ciphertext, "s3cret", salt, nonce, 600_000) == b"hello"

    def test_default_iterations_are_current(self, encrypted: tuple[str, str, str]):
        salt, nonce, ciphertext = encrypted
        assert crypto.decrypt(ciphertext, "s3cret", salt, nonce) == b"hello"

    def test_wrong_iterations(self, encrypted: tuple[str, str, str]):
        salt, nonce, ciphertext = encrypted
        with pytest.raises(DecryptionError):
            crypto.decrypt(ciphertext, "s3cret", salt, nonce, 100_000)

    def test_wrong_password(self, encrypted: tuple[str, str, str]):
        salt, nonce, ciphertext = encrypted
        with pytest.raises(DecryptionError):
            crypto.decrypt(ciphertext, "wrong", salt, nonce)

    def test_tampered_ciphertext(self, encrypted: tuple[str, str, str]):
        salt, nonce, ciphertext = encrypted
        raw = bytearray(base64.b64decode(ciphertext))
        raw[0] ^= 0x01
        tampered = base64.b64encode(bytes(raw)).decode("ascii")
        with pytest.raises(DecryptionError):
            crypto.decrypt(tampered, "s3cret", salt, nonce)

    def test_invalid_base64(self, encrypted: tuple[str, str, str]):
        salt, nonce, _ = encrypted
        with pytest.raises(DecryptionError):
            crypto.decrypt("not base64!!", "s3cret", salt, nonce)

    def test_wrong_nonce_length(self, encrypted: tuple[str, str, str]):
        salt, _, ciphertext = encrypted
        short_nonce = base64.b64encode(b"short").decode("ascii")
        with pytest.raises(DecryptionError):
            crypto.decrypt(ciphertext, "s3cret", salt, short_nonce)

    def test_fresh_salt_and_nonce(self, encrypted: tuple[str, str, str]):
        salt, nonce, _ = encrypted
        other_salt, other_nonce, _ = crypto.encrypt(b"hello", "s3cret")
        assert salt != other_salt
        assert nonce != other_nonce


class TestDeriveKey:
    """Tests for derive_key."""

    def test_deterministic(self):
        salt = b"\x00" * 16
        assert crypto.derive_key("pw", salt, 1000) == crypto.derive_key("pw", salt, 1000)

    def test_iterations_change_key(self):
        salt = b"\x00" * 16
        assert crypto.derive_key("pw", salt, 1000) != crypto.derive_key("pw", salt, 1001)

    def test_length(self):
        assert len(crypto.derive_key("pw", b"salt" * 4, 1000)) == 32
