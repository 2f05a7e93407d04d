"""
Encryption Error Kinds

Every failure in the encryption core maps to exactly one of these.
Callers decide how to present them; the core never converts a failure
into an empty value.

None of these are retryable: the same key and ciphertext always
produce the same outcome.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification used for per-record outcomes in batch reads."""
    KEY_DERIVATION_FAILURE = "key_derivation_failure"
    AUTHENTICATION_FAILURE = "authentication_failure"
    PARSE_FAILURE = "parse_failure"
    MAPPING_FAILURE = "mapping_failure"


class EncryptionError(Exception):
    """Base exception for the encryption core."""

    user_message = "Something went wrong while handling encrypted data."
    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class KeyDerivationError(EncryptionError):
    """Password or salt unusable for key derivation."""

    user_message = "Could not derive your key. Check your password."
    kind = ErrorKind.KEY_DERIVATION_FAILURE


class InvalidKeyError(EncryptionError):
    """Key material is not a valid key for the cipher."""

    user_message = "The stored encryption key is invalid."


class AuthenticationError(EncryptionError):
    """Ciphertext, nonce and key do not verify together."""

    user_message = "Data could not be decrypted; wrong key or corrupted record."
    kind = ErrorKind.AUTHENTICATION_FAILURE


class ParseError(EncryptionError):
    """Decrypted or decoded bytes don't match the expected value grammar."""

    user_message = "Stored data is corrupted or uses an unknown format."
    kind = ErrorKind.PARSE_FAILURE


class MappingError(EncryptionError):
    """A required encrypted field is missing or malformed."""

    user_message = "A stored record is missing encrypted data."
    kind = ErrorKind.MAPPING_FAILURE


class NoKeyError(EncryptionError):
    """An operation needed a key but none is loaded."""

    user_message = "No encryption key is loaded. Unlock or set up encryption first."
