"""
Password-based encryption for export files and encrypted credential stores.

PBKDF2-HMAC-SHA256 derives a 256-bit key from the password and a random
16-byte salt; AES-256-GCM encrypts with a random 12-byte nonce and no
associated data. Salt, nonce and ciphertext travel as standard base64.

The PBKDF2 iteration count is never stored: it is implied by the file
format version through `PBKDF2_ITERATIONS_BY_VERSION`.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from dns_orchestrator.errors import DecryptionError

if TYPE_CHECKING:
    from typing import Final


SALT_LENGTH: Final[int] = 16
NONCE_LENGTH: Final[int] = 12
KEY_LENGTH: Final[int] = 32

# File format version -> PBKDF2 iteration count
PBKDF2_ITERATIONS_BY_VERSION: Final[dict[int, int]] = {
    1: 100_000,
    2: 600_000,
}

CURRENT_FILE_VERSION: Final[int] = 2


def get_pbkdf2_iterations(version: int) -> int | None:
    """
    Get the PBKDF2 iteration count for a file format version.

    Parameters
    ----------
    version : int
        File format version.

    Returns
    -------
    int | None
        The iteration count, or None for unknown versions.
    """
    return PBKDF2_ITERATIONS_BY_VERSION.get(version)


def current_version() -> int:
    """File format version used for new writes."""
    return CURRENT_FILE_VERSION


def current_iterations() -> int:
    """PBKDF2 iteration count used for new writes."""
    return PBKDF2_ITERATIONS_BY_VERSION[CURRENT_FILE_VERSION]


def derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    """
    Derive a 32-byte AES key with PBKDF2-HMAC-SHA256.

    Parameters
    ----------
    password : str
        Password (UTF-8 encoded before derivation).
    salt : bytes
        Random salt.
    iterations : int
        PBKDF2 iteration count.

    Returns
    -------
    bytes
        The derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: bytes, password: str) -> tuple[str, str, str]:
    """
    Encrypt with a fresh salt and nonce at the current iteration count.

    Parameters
    ----------
    plaintext : bytes
        Data to encrypt.
    password : str
        Encryption password.

    Returns
    -------
    tuple[str, str, str]
        ``(salt_b64, nonce_b64, ciphertext_b64)``.
    """
    salt = os.urandom(SALT_LENGTH)
    nonce = os.urandom(NONCE_LENGTH)
    key = derive_key(password, salt, current_iterations())
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    return (
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(nonce).decode("ascii"),
        base64.b64encode(ciphertext).decode("ascii"),
    )


def decrypt(
    ciphertext_b64: str,
    password: str,
    salt_b64: str,
    nonce_b64: str,
    iterations: int | None = None,
) -> bytes:
    """
    Reverse `encrypt`.

    Parameters
    ----------
    ciphertext_b64 : str
        Base64 ciphertext (with GCM tag).
    password : str
        Password used at encryption time.
    salt_b64 : str
        Base64 salt.
    nonce_b64 : str
        Base64 nonce.
    iterations : int | None, optional
        PBKDF2 iteration count; the current count when omitted.

    Returns
    -------
    bytes
        The plaintext.

    Raises
    ------
    DecryptionError
        For any failure: bad base64, wrong nonce length, wrong password,
        wrong iteration count or tampered ciphertext.
    """
    if iterations is None:
        iterations = current_iterations()
    try:
        salt = base64.b64decode(salt_b64, validate=True)
        nonce = base64.b64decode(nonce_b64, validate=True)
        ciphertext = base64.b64decode(ciphertext_b64, validate=True)
        key = derive_key(password, salt, iterations)
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except (binascii.Error, ValueError, InvalidTag) as e:
        raise DecryptionError from e
