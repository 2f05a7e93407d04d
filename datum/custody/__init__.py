"""Local key custody package."""

from datum.custody.store import (
    KEY_SLOT,
    SALT_SLOT,
    FileKeyValueBackend,
    InMemoryKeyValueBackend,
    KeyCustodyStore,
    KeyValueBackend,
)
from datum.custody.session import (
    KeySession,
    KeyState,
    logout,
    onboard_with_password,
    onboard_with_random_key,
    restore_session,
    unlock_with_password,
)

__all__ = [
    "KEY_SLOT",
    "SALT_SLOT",
    "FileKeyValueBackend",
    "InMemoryKeyValueBackend",
    "KeyCustodyStore",
    "KeyValueBackend",
    "KeySession",
    "KeyState",
    "logout",
    "onboard_with_password",
    "onboard_with_random_key",
    "restore_session",
    "unlock_with_password",
]
