"""
Encryption core.

Key derivation, AES-GCM cipher, and the field codec. Nothing in this
package performs I/O.
"""

from datum.crypto.errors import (
    AuthenticationError,
    EncryptionError,
    ErrorKind,
    InvalidKeyError,
    KeyDerivationError,
    MappingError,
    NoKeyError,
    ParseError,
)
from datum.crypto.keys import (
    KEY_LENGTH,
    MIN_SALT_LENGTH,
    EncryptionKey,
    derive_key,
    derive_key_async,
    generate_random_key,
    generate_salt,
    is_valid_key_material,
)
from datum.crypto.codec import FieldKind
from datum.crypto.cipher import (
    NONCE_LENGTH,
    decrypt,
    decrypt_with_password,
    encrypt,
    encrypt_with_password,
)

__all__ = [
    # Errors
    "AuthenticationError",
    "EncryptionError",
    "ErrorKind",
    "InvalidKeyError",
    "KeyDerivationError",
    "MappingError",
    "NoKeyError",
    "ParseError",
    # Keys
    "KEY_LENGTH",
    "MIN_SALT_LENGTH",
    "EncryptionKey",
    "derive_key",
    "derive_key_async",
    "generate_random_key",
    "generate_salt",
    "is_valid_key_material",
    # Codec / cipher
    "FieldKind",
    "NONCE_LENGTH",
    "decrypt",
    "decrypt_with_password",
    "encrypt",
    "encrypt_with_password",
]
