"""
Key Derivation Unit

Turns a master password or fresh entropy into a 256-bit AES-GCM key.

Key Derivation:
    - Algorithm: PBKDF2-HMAC-SHA256
    - Iterations: 100,000 by default (tunable via DATUM_CRYPTO_KDF_ITERATIONS)
    - Salt Length: 16 bytes minimum (cryptographically random)

The same (password, salt, iterations) always yields the same key. That is
what lets a user re-derive their key on a new device from the password
and the persisted salt.
"""

import asyncio
import base64
import binascii
import os
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from datum.config import get_settings
from datum.crypto.errors import InvalidKeyError, KeyDerivationError


KEY_LENGTH = 32  # AES-256
MIN_SALT_LENGTH = 16


class EncryptionKey:
    """
    In-memory handle for a symmetric key.

    Immutable. The raw bytes are only reachable through ``raw`` and
    ``to_material()``; ``repr()`` never shows them.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes):
        if not isinstance(raw, (bytes, bytearray)):
            raise InvalidKeyError("Key must be bytes")
        if len(raw) != KEY_LENGTH:
            raise InvalidKeyError(
                f"Key must be {KEY_LENGTH} bytes, got {len(raw)}"
            )
        object.__setattr__(self, "_raw", bytes(raw))

    def __setattr__(self, name, value):
        raise AttributeError("EncryptionKey is immutable")

    @property
    def raw(self) -> bytes:
        return self._raw

    def to_material(self) -> str:
        """Export as KeyMaterial (standard base64 text)."""
        return base64.b64encode(self._raw).decode("ascii")

    @classmethod
    def from_material(cls, material: str) -> "EncryptionKey":
        """
        Import KeyMaterial.

        Raises:
            InvalidKeyError: If the text is not base64 or does not decode
                to exactly KEY_LENGTH bytes.
        """
        if not isinstance(material, str) or not material:
            raise InvalidKeyError("Key material must be a non-empty string")
        try:
            raw = base64.b64decode(material.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise InvalidKeyError(f"Key material is not valid base64: {e}")
        return cls(raw)

    def __eq__(self, other) -> bool:
        if not isinstance(other, EncryptionKey):
            return NotImplemented
        return self._raw == other._raw

    def __hash__(self) -> int:
        return hash(self._raw)

    def __repr__(self) -> str:
        return "EncryptionKey(<redacted>)"


def is_valid_key_material(material: str) -> bool:
    """Check key material without raising."""
    try:
        EncryptionKey.from_material(material)
        return True
    except InvalidKeyError:
        return False


def generate_salt(length: Optional[int] = None) -> bytes:
    """Generate a random derivation salt (never shorter than MIN_SALT_LENGTH)."""
    if length is None:
        length = get_settings().crypto.salt_length
    if length < MIN_SALT_LENGTH:
        raise KeyDerivationError(
            f"Salt length must be at least {MIN_SALT_LENGTH} bytes"
        )
    return os.urandom(length)


def derive_key(
    password: str,
    salt: Optional[bytes] = None,
    iterations: Optional[int] = None,
) -> tuple[EncryptionKey, bytes]:
    """
    Derive an encryption key from a password using PBKDF2.

    Args:
        password: User master password
        salt: Optional salt. If None, generates a fresh random salt.
        iterations: Optional iteration count. Defaults to the configured value.

    Returns:
        (key, salt) tuple. The salt MUST be persisted with the key.

    Raises:
        KeyDerivationError: Empty password, short salt or bad iteration count.
    """
    if not password:
        raise KeyDerivationError("Password must not be empty")

    if salt is None:
        salt = generate_salt()
    elif len(salt) < MIN_SALT_LENGTH:
        raise KeyDerivationError(
            f"Salt must be at least {MIN_SALT_LENGTH} bytes, got {len(salt)}"
        )

    if iterations is None:
        iterations = get_settings().crypto.kdf_iterations
    if iterations < 1:
        raise KeyDerivationError("Iteration count must be positive")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    derived = kdf.derive(password.encode("utf-8"))
    return EncryptionKey(derived), bytes(salt)


async def derive_key_async(
    password: str,
    salt: Optional[bytes] = None,
    iterations: Optional[int] = None,
) -> tuple[EncryptionKey, bytes]:
    """
    Same as derive_key, but runs in a worker thread.

    PBKDF2 is slow; this keeps it off the event loop.
    """
    return await asyncio.to_thread(derive_key, password, salt, iterations)


def generate_random_key() -> EncryptionKey:
    """Generate a uniformly random 256-bit key (the no-password path)."""
    return EncryptionKey(os.urandom(KEY_LENGTH))
