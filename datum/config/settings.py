"""
Configuration Management for DATUM

Every tunable is read from the environment through pydantic-settings.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which security parameters are tunable and
ensures they are validated before any key is derived.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CryptoSettings(BaseSettings):
    """Key derivation and cipher parameters."""

    model_config = SettingsConfigDict(
        env_prefix="DATUM_CRYPTO_",
        extra="ignore"
    )

    kdf_iterations: int = Field(
        default=100_000,
        ge=10_000,
        description="PBKDF2-HMAC-SHA256 iteration count for password-derived keys"
    )
    salt_length: int = Field(
        default=16,
        ge=16,
        le=64,
        description="Length in bytes of freshly generated derivation salts"
    )
    batch_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Worker threads used for batch decryption"
    )


class CustodySettings(BaseSettings):
    """Local key custody configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATUM_CUSTODY_",
        extra="ignore"
    )

    storage_path: str = Field(
        default=str(Path.home() / ".datum" / "keystore.json"),
        description="Local, non-synced file holding the key custody slots"
    )
    namespace: str = Field(
        default="datum",
        min_length=1,
        max_length=50,
        description="Namespace prefix for the custody slots"
    )

    @field_validator('namespace')
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Namespaces are joined with slot names, so keep them simple."""
        if not v.replace("_", "").replace("-", "").isalnum():
            raise ValueError(
                f"Custody namespace must be alphanumeric (with - or _): {v!r}"
            )
        return v


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote record store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="transactions",
        description="Name of the sheet holding storage-shaped transactions"
    )
    categories_sheet_name: str = Field(
        default="categories",
        description="Name of the sheet holding spending categories"
    )
    tags_sheet_name: str = Field(
        default="tags",
        description="Name of the sheet holding known tag names"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing credentials file only warns; it may be mounted at deploy time."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Application-wide settings (no prefix; also read from .env).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Onboarding
    min_password_length: int = Field(
        default=8,
        ge=8,
        le=128,
        description="Minimum master password length accepted during onboarding"
    )


class Settings(BaseSettings):
    """
    Root settings object; each concern is built on access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Built lazily so a missing Google Sheets config does not block local use

    @property
    def crypto(self) -> CryptoSettings:
        return CryptoSettings()

    @property
    def custody(self) -> CustodySettings:
        return CustodySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Shared Settings instance.

    Tests call get_settings.cache_clear() between environments.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Startup check: which settings sections load.

    Failures are reported under "<name>_error" instead of raised.
    """
    results = {}

    settings = get_settings()

    for name in ("crypto", "custody", "google_sheets", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
