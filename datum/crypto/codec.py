"""
Field Codec

Canonical byte encoding for encrypted field values, plus the text
representation used at the storage boundary.

DESIGN DECISION: Amounts are encoded as their exact decimal text, never
through binary floating point. "42.50" encrypts as the bytes b"42.50" and
decrypts back to Decimal("42.50") with its scale intact.
"""

import base64
import binascii
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Union

from datum.crypto.errors import ParseError


class FieldKind(str, Enum):
    """Value kinds the codec knows how to encode."""
    DECIMAL = "decimal"
    TEXT = "text"


FieldValue = Union[Decimal, str]


def _canonical_decimal(value: Decimal) -> str:
    # format(..., "f") never produces exponent notation and keeps the scale
    return format(value, "f")


def encode(value: FieldValue, kind: FieldKind) -> bytes:
    """
    Encode a value to bytes for encryption.

    Raises:
        TypeError: If the value does not match the kind. Callers hand the
            core typed values, so a mismatch is a programming error.
        ValueError: If a decimal is NaN or infinite.
    """
    if kind == FieldKind.DECIMAL:
        if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
            raise TypeError(f"Expected Decimal for {kind.value}, got {type(value).__name__}")
        value = Decimal(value)
        if not value.is_finite():
            raise ValueError(f"Cannot encode non-finite decimal: {value}")
        return _canonical_decimal(value).encode("ascii")

    if kind == FieldKind.TEXT:
        if not isinstance(value, str):
            raise TypeError(f"Expected str for {kind.value}, got {type(value).__name__}")
        return value.encode("utf-8")

    raise ValueError(f"Unknown field kind: {kind}")


def decode(data: bytes, kind: FieldKind) -> FieldValue:
    """
    Decode bytes produced by encode().

    Raises:
        ParseError: If the bytes don't match the kind's grammar.
    """
    try:
        text = bytes(data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"Field is not valid UTF-8: {e}")

    if kind == FieldKind.TEXT:
        return text

    if kind == FieldKind.DECIMAL:
        # Decimal() tolerates surrounding whitespace; the canonical form has none
        if text != text.strip() or not text or "_" in text:
            raise ParseError(f"Not a decimal literal: {text!r}")
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise ParseError(f"Not a decimal literal: {text!r}")
        if not value.is_finite():
            raise ParseError(f"Decimal is not finite: {text!r}")
        return value

    raise ParseError(f"Unknown field kind: {kind}")


def to_text(data: bytes) -> str:
    """Standard base64 text for the storage boundary."""
    return base64.b64encode(bytes(data)).decode("ascii")


def from_text(text: str) -> bytes:
    """
    Inverse of to_text.

    Raises:
        ParseError: If the text is not valid base64.
    """
    if not isinstance(text, str):
        raise ParseError(f"Expected base64 text, got {type(text).__name__}")
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ParseError(f"Invalid base64: {e}")
