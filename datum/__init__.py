"""
DATUM - Source Package

A personal finance tracker core that keeps the storage operator blind.
All sensitive values are encrypted on the client before they leave
the process.

DESIGN PRINCIPLES:
1. The remote store only ever sees ciphertext for sensitive fields
2. Fail early, fail visibly (a record that cannot be decrypted is never shown as empty)
3. Keys and stores are passed explicitly, never read from globals
4. Every step must be auditable without leaking plaintext
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "DATUM Team"
