"""Encrypted record mapping package."""

from datum.records.mapper import (
    SENSITIVE_FIELDS,
    decrypt_field,
    encrypt_field,
    from_storage_shape,
    from_storage_shape_many,
    to_storage_patch,
    to_storage_shape,
)
from datum.records.outcome import DecryptionOutcome

__all__ = [
    "SENSITIVE_FIELDS",
    "DecryptionOutcome",
    "decrypt_field",
    "encrypt_field",
    "from_storage_shape",
    "from_storage_shape_many",
    "to_storage_patch",
    "to_storage_shape",
]
