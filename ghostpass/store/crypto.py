"""Core cryptographic primitives for secret stores.

Uses the cryptography library for:
- scrypt key derivation (memory-hard, resists GPU brute force)
- AES-256-GCM authenticated encryption of the serialized field set

Key material is passed around as SecretBuffer objects so it can be wiped
as soon as it is no longer needed.
"""

import os
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .exceptions import AuthenticationFailure, WeakInputError
from .secure import SecretBuffer

KEY_SIZE = 32  # 256 bits for AES-256
SALT_SIZE = 16  # 128 bits
NONCE_SIZE = 12  # 96 bits for AES-GCM
TAG_SIZE = 16  # 128-bit authentication tag

KDF_SCRYPT = 1


@dataclass(frozen=True)
class KdfParams:
    """scrypt cost parameters, persisted alongside each store."""

    n: int = 2**15
    r: int = 8
    p: int = 1
    kdf: int = KDF_SCRYPT


def generate_salt(size: Optional[int] = None) -> bytes:
    """Generate cryptographically secure random salt."""
    return os.urandom(size or SALT_SIZE)


def generate_nonce() -> bytes:
    """Generate a fresh AES-GCM nonce. Never reuse one under the same key."""
    return os.urandom(NONCE_SIZE)


def derive_key(master_key: SecretBuffer, salt: bytes, params: KdfParams) -> SecretBuffer:
    """
    Derive a 256-bit key from the master key using scrypt.

    Args:
        master_key: User's master key
        salt: Per-store random salt (stored in the header, not secret)
        params: scrypt cost parameters

    Returns:
        32-byte derived key in a SecretBuffer

    Raises:
        WeakInputError: If master_key is empty
    """
    if not master_key:
        raise WeakInputError()

    kdf = Scrypt(
        salt=salt,
        length=KEY_SIZE,
        n=params.n,
        r=params.r,
        p=params.p,
    )
    derived = bytearray(kdf.derive(master_key.value))
    return SecretBuffer.take(derived)


def encrypt(
    derived_key: SecretBuffer,
    nonce: bytes,
    plaintext: bytes | bytearray,
    associated_data: Optional[bytes] = None,
) -> tuple[bytes, bytes]:
    """
    Encrypt data with AES-256-GCM.

    Args:
        derived_key: 32-byte key from derive_key()
        nonce: Fresh 12-byte nonce from generate_nonce()
        plaintext: Serialized field set
        associated_data: Authenticated but unencrypted context (store header)

    Returns:
        (ciphertext, tag) tuple
    """
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")

    aesgcm = AESGCM(derived_key.value)
    sealed = aesgcm.encrypt(nonce, bytes(plaintext), associated_data)
    # AESGCM appends the tag to the ciphertext
    return sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]


def decrypt(
    derived_key: SecretBuffer,
    nonce: bytes,
    ciphertext: bytes,
    tag: bytes,
    associated_data: Optional[bytes] = None,
) -> SecretBuffer:
    """
    Decrypt AES-256-GCM ciphertext.

    Args:
        derived_key: Same key used for encryption
        nonce: Nonce from the store header
        ciphertext: Encrypted field set
        tag: 16-byte authentication tag
        associated_data: Must match what was passed to encrypt()

    Returns:
        Plaintext in a SecretBuffer

    Raises:
        AuthenticationFailure: Wrong key or tampered data (not distinguished)
    """
    if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
        raise AuthenticationFailure()

    try:
        aesgcm = AESGCM(derived_key.value)
        plaintext = bytearray(aesgcm.decrypt(nonce, ciphertext + tag, associated_data))
    except (InvalidTag, ValueError):
        raise AuthenticationFailure() from None
    return SecretBuffer.take(plaintext)
