"""
Key Session

The in-memory key handle and its state machine, plus the onboarding
flows that put a key into custody.

States:
    NO_KEY            -> nothing loaded; any operation needing a key fails
                         with NoKeyError instead of silently showing nothing
    KEY_LOADED        -> key available
    DECRYPTION_ERROR  -> key available, but the last read produced records
                         that failed to decrypt (wrong key or corruption);
                         the UI shows the error until acknowledged

Transitions:
    NO_KEY --set_key/load_from--> KEY_LOADED
    KEY_LOADED --record_decryption_error--> DECRYPTION_ERROR
    DECRYPTION_ERROR --acknowledge_error--> KEY_LOADED
    any --forget--> NO_KEY
"""

import hmac
import threading
from enum import Enum
from typing import Iterable, Optional

import structlog

from datum.audit.logger import AuditLogger
from datum.config import get_settings
from datum.crypto import codec
from datum.crypto.errors import (
    InvalidKeyError,
    KeyDerivationError,
    NoKeyError,
    ParseError,
)
from datum.crypto.keys import (
    EncryptionKey,
    derive_key_async,
    generate_random_key,
)
from datum.custody.store import KeyCustodyStore
from datum.records.outcome import DecryptionOutcome


logger = structlog.get_logger(__name__)


class KeyState(str, Enum):
    NO_KEY = "no_key"
    KEY_LOADED = "key_loaded"
    DECRYPTION_ERROR = "decryption_error"


class KeySession:
    """
    Holds at most one key in process memory.

    Instances are independent; nothing here is module-global, so tests
    and multiple local profiles can each have their own session.
    """

    def __init__(self):
        self._key: Optional[EncryptionKey] = None
        self._state = KeyState.NO_KEY
        self._last_error: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> KeyState:
        return self._state

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def has_key(self) -> bool:
        return self._key is not None

    def set_key(self, key: EncryptionKey) -> None:
        with self._lock:
            self._key = key
            self._state = KeyState.KEY_LOADED
            self._last_error = None

    def load_from(self, store: KeyCustodyStore) -> KeyState:
        """
        Load the key from custody (done once at process start).

        Raises:
            InvalidKeyError: Stored material is corrupt. Any previously
                loaded key is dropped and the session is left in NO_KEY.
        """
        material = store.load()
        if material is None:
            self.forget()
            return self._state
        try:
            key = EncryptionKey.from_material(material)
        except InvalidKeyError:
            self.forget()
            logger.warning("stored_key_corrupt", namespace=store.namespace)
            raise
        self.set_key(key)
        return self._state

    def require_key(self) -> EncryptionKey:
        """
        The loaded key.

        Raises:
            NoKeyError: In NO_KEY state.
        """
        key = self._key
        if key is None:
            raise NoKeyError("No encryption key loaded")
        return key

    def record_decryption_error(self, message: str) -> None:
        with self._lock:
            if self._key is None:
                raise NoKeyError("Cannot record a decryption error without a key")
            self._state = KeyState.DECRYPTION_ERROR
            self._last_error = message

    def record_outcomes(self, outcomes: Iterable[DecryptionOutcome]) -> int:
        """Move to DECRYPTION_ERROR if any outcome failed. Returns the failure count."""
        failures = [o for o in outcomes if not o.ok]
        if failures:
            self.record_decryption_error(
                f"{len(failures)} record(s) could not be decrypted: "
                f"{failures[0].user_message}"
            )
        return len(failures)

    def acknowledge_error(self) -> None:
        with self._lock:
            if self._state == KeyState.DECRYPTION_ERROR:
                self._state = KeyState.KEY_LOADED
                self._last_error = None

    def forget(self, store: Optional[KeyCustodyStore] = None) -> None:
        """Drop the in-memory key; with a store, also clear custody (logout)."""
        with self._lock:
            self._key = None
            self._state = KeyState.NO_KEY
            self._last_error = None
        if store is not None:
            store.clear()


# =============================================================================
# ONBOARDING
# =============================================================================

def _check_password(password: str) -> None:
    min_length = get_settings().app.min_password_length
    if not password:
        raise KeyDerivationError("Please enter a master password")
    if len(password) < min_length:
        raise KeyDerivationError(
            f"Master password must be at least {min_length} characters"
        )


async def onboard_with_password(
    store: KeyCustodyStore,
    password: str,
    session: Optional[KeySession] = None,
    audit_logger: Optional[AuditLogger] = None,
    iterations: Optional[int] = None,
) -> EncryptionKey:
    """
    Derive a new key from a master password with a fresh salt and
    persist both. The salt is required to re-derive the key later.
    """
    _check_password(password)

    key, salt = await derive_key_async(password, iterations=iterations)
    store.save(key.to_material(), codec.to_text(salt))

    if session is not None:
        session.set_key(key)
    if audit_logger:
        await audit_logger.log_key_derived(new_salt=True)

    return key


async def onboard_with_random_key(
    store: KeyCustodyStore,
    session: Optional[KeySession] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> str:
    """
    Generate and persist a random key (no password).

    Returns:
        The key material, so the user can back it up. Without that
        backup the data is unrecoverable once custody is cleared.
    """
    key = generate_random_key()
    material = key.to_material()
    store.save(material)

    if session is not None:
        session.set_key(key)
    if audit_logger:
        await audit_logger.log_key_generated(method="random")

    return material


async def unlock_with_password(
    store: KeyCustodyStore,
    password: str,
    salt: Optional[str] = None,
    session: Optional[KeySession] = None,
    audit_logger: Optional[AuditLogger] = None,
    iterations: Optional[int] = None,
) -> EncryptionKey:
    """
    Re-derive a password key, e.g. on a new device.

    Uses ``salt`` if given, otherwise the persisted salt. When custody
    already holds a key, the derived key must match it.

    Raises:
        KeyDerivationError: No salt available, or the password does not
            reproduce the stored key.
    """
    if not password:
        raise KeyDerivationError("Please enter a master password")

    salt_text = salt or store.load_salt()
    if salt_text is None:
        raise KeyDerivationError("No derivation salt available for this key")
    try:
        salt_bytes = codec.from_text(salt_text)
    except ParseError:
        raise KeyDerivationError("Derivation salt is corrupted")

    key, _ = await derive_key_async(password, salt_bytes, iterations)

    existing = store.load()
    if existing is not None:
        if not hmac.compare_digest(existing, key.to_material()):
            logger.warning("password_unlock_mismatch", namespace=store.namespace)
            raise KeyDerivationError("Password does not match the stored key")
    else:
        store.save(key.to_material(), salt_text)

    if session is not None:
        session.set_key(key)
    if audit_logger:
        await audit_logger.log_key_derived(new_salt=False)

    return key


async def restore_session(
    store: KeyCustodyStore,
    session: KeySession,
    audit_logger: Optional[AuditLogger] = None,
) -> KeyState:
    """Load the persisted key at process start, if there is one."""
    state = session.load_from(store)
    if state == KeyState.KEY_LOADED and audit_logger:
        await audit_logger.log_key_loaded(
            password_derived=store.load_salt() is not None,
        )
    return state


async def logout(
    store: KeyCustodyStore,
    session: KeySession,
    audit_logger: Optional[AuditLogger] = None,
) -> None:
    """Forget the key in memory and in custody."""
    session.forget(store)
    if audit_logger:
        await audit_logger.log_key_cleared()
