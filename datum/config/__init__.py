"""Configuration package."""

from datum.config.settings import (
    AppSettings,
    CryptoSettings,
    CustodySettings,
    GoogleSheetsSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CryptoSettings",
    "CustodySettings",
    "GoogleSheetsSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
