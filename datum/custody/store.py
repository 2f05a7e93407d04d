"""
Key Custody Store

Persists the active key material (and its derivation salt, for
password-derived keys) in local storage that is never synced to the
remote record store.

DESIGN DECISION: Custody sits on a tiny namespaced key-value abstraction.
This allows us to:
1. Keep the key in a local file on a real install
2. Use an in-memory backend in tests
3. Run several isolated instances side by side (one namespace each)

Two slots exist per namespace: ``encryption_key`` and ``key_salt``.
Nothing else in the core persists state locally.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from datum.config import get_settings
from datum.crypto import codec
from datum.crypto.errors import InvalidKeyError, ParseError
from datum.crypto.keys import MIN_SALT_LENGTH, is_valid_key_material


logger = structlog.get_logger(__name__)

KEY_SLOT = "encryption_key"
SALT_SLOT = "key_salt"


class KeyValueBackend(ABC):
    """
    Minimal local key-value storage.

    Implementations must be local-only: nothing written here may be
    transmitted to the remote record store.
    """

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """Return the stored value, or None if absent."""
        pass

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        pass

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove a value. Removing an absent name is not an error."""
        pass


class InMemoryKeyValueBackend(KeyValueBackend):
    """Process-local backend, used in tests and for ephemeral sessions."""

    def __init__(self):
        self._values: dict[str, str] = {}

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)

    def set(self, name: str, value: str) -> None:
        self._values[name] = value

    def delete(self, name: str) -> None:
        self._values.pop(name, None)


class FileKeyValueBackend(KeyValueBackend):
    """
    JSON file backend.

    The file is created with owner-only permissions and rewritten
    atomically (temp file + rename) so a crash never leaves half a key.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = Path(path or get_settings().custody.storage_path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ParseError(f"Key custody file is corrupted: {self._path}: {e}")
        if not isinstance(data, dict):
            raise ParseError(f"Key custody file is corrupted: {self._path}")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".keystore-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def get(self, name: str) -> Optional[str]:
        return self._read_all().get(name)

    def set(self, name: str, value: str) -> None:
        data = self._read_all()
        data[name] = value
        self._write_all(data)

    def delete(self, name: str) -> None:
        data = self._read_all()
        if name in data:
            del data[name]
            self._write_all(data)


class KeyCustodyStore:
    """
    Holds the key material and salt for one local user.

    Reads and writes are serialized by a lock; concurrent writers
    resolve as last-writer-wins.
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        namespace: Optional[str] = None,
    ):
        self._backend = backend or FileKeyValueBackend()
        self._namespace = namespace or get_settings().custody.namespace
        self._lock = threading.RLock()

    @property
    def namespace(self) -> str:
        return self._namespace

    def _slot(self, name: str) -> str:
        return f"{self._namespace}_{name}"

    def save(self, key_material: str, salt: Optional[str] = None) -> None:
        """
        Persist key material and, for password-derived keys, its salt.

        Saving without a salt removes any salt left by a previous key,
        since a salt is only meaningful for the key it derived.

        Raises:
            InvalidKeyError: Material is not a valid key, or the salt is
                not base64 of at least MIN_SALT_LENGTH bytes.
        """
        if not is_valid_key_material(key_material):
            raise InvalidKeyError("Refusing to store invalid key material")
        if salt is not None:
            try:
                salt_bytes = codec.from_text(salt)
            except ParseError:
                raise InvalidKeyError("Derivation salt is not valid base64")
            if len(salt_bytes) < MIN_SALT_LENGTH:
                raise InvalidKeyError(
                    f"Derivation salt must be at least {MIN_SALT_LENGTH} bytes"
                )

        with self._lock:
            self._backend.set(self._slot(KEY_SLOT), key_material)
            if salt is not None:
                self._backend.set(self._slot(SALT_SLOT), salt)
            else:
                self._backend.delete(self._slot(SALT_SLOT))

        logger.info("key_saved", namespace=self._namespace, password_derived=salt is not None)

    def load(self) -> Optional[str]:
        """Return the stored key material, or None."""
        with self._lock:
            return self._backend.get(self._slot(KEY_SLOT))

    def load_salt(self) -> Optional[str]:
        """Return the stored derivation salt, or None."""
        with self._lock:
            return self._backend.get(self._slot(SALT_SLOT))

    def clear(self) -> None:
        """
        Forget the key and salt. Irreversible.

        A random (non-password) key cannot be recovered after this
        unless the user kept a backup of the key material.
        """
        with self._lock:
            self._backend.delete(self._slot(KEY_SLOT))
            self._backend.delete(self._slot(SALT_SLOT))
        logger.warning("key_cleared", namespace=self._namespace)

    def exists(self) -> bool:
        """True when key material is stored."""
        return self.load() is not None
