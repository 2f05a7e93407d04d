"""
Symmetric Cipher Unit

AES-256-GCM authenticated encryption over raw bytes.

CRITICAL: Nonces are generated here, per call, from the OS CSPRNG.
No function in this module accepts a nonce for encryption, so a caller
cannot reuse one by mistake.

Text encoding of ciphertext/nonce for the storage boundary is NOT done
here - see datum.crypto.codec.
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from datum.crypto import codec
from datum.crypto.errors import AuthenticationError
from datum.crypto.keys import EncryptionKey, derive_key
from datum.models.transaction import EncryptedField


NONCE_LENGTH = 12  # 96-bit GCM nonce
TAG_LENGTH = 16


def encrypt(plaintext: bytes, key: EncryptionKey) -> tuple[bytes, bytes]:
    """
    Encrypt plaintext under key.

    Returns:
        (ciphertext, nonce). The ciphertext includes the 16-byte GCM tag.
    """
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = AESGCM(key.raw).encrypt(nonce, bytes(plaintext), None)
    return ciphertext, nonce


def decrypt(ciphertext: bytes, nonce: bytes, key: EncryptionKey) -> bytes:
    """
    Decrypt and verify ciphertext.

    Raises:
        AuthenticationError: Tampered ciphertext, wrong key, or a corrupt
            nonce. Not retryable.
    """
    if len(nonce) != NONCE_LENGTH:
        raise AuthenticationError(
            f"Nonce must be {NONCE_LENGTH} bytes, got {len(nonce)}"
        )
    if len(ciphertext) < TAG_LENGTH:
        raise AuthenticationError("Ciphertext is shorter than the authentication tag")
    try:
        return AESGCM(key.raw).decrypt(nonce, bytes(ciphertext), None)
    except InvalidTag:
        raise AuthenticationError("Decryption failed: invalid key or tampered data")


def encrypt_with_password(plaintext: bytes, password: str) -> EncryptedField:
    """
    One-off encryption under a password.

    Derives a key with a fresh salt for this single payload and returns
    the salt inside the EncryptedField. Meant for standalone blobs such as
    exported backups; records always use the stored key instead.
    """
    key, salt = derive_key(password)
    ciphertext, nonce = encrypt(plaintext, key)
    return EncryptedField(
        ciphertext=codec.to_text(ciphertext),
        nonce=codec.to_text(nonce),
        salt=codec.to_text(salt),
    )


def decrypt_with_password(field: EncryptedField, password: str) -> bytes:
    """Inverse of encrypt_with_password."""
    if not field.salt:
        raise AuthenticationError("Field was not encrypted with a password (no salt)")
    key, _ = derive_key(password, codec.from_text(field.salt))
    return decrypt(codec.from_text(field.ciphertext), codec.from_text(field.nonce), key)
