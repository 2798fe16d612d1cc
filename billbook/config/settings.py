"""
Configuration Management for Billbook

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _warn_if_missing(path: Optional[str]) -> Optional[str]:
    """Warn if a credentials file doesn't exist (but don't fail - might be mounted later)."""
    if path and not Path(path).exists():
        import warnings
        warnings.warn(
            f"Google credentials file not found at {path}. "
            "Make sure it exists before running the application."
        )
    return path


class FirestoreSettings(BaseSettings):
    """Firestore document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    project_id: str = Field(
        ...,
        description="Google Cloud project hosting the Firestore database"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to service account JSON (application default credentials if unset)"
    )
    database: str = Field(
        default="(default)",
        description="Firestore database ID"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        return _warn_if_missing(v)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets audit log configuration."""

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
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        return _warn_if_missing(v)


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=4096,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
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

    # Invoice numbering
    invoice_number_prefix: str = Field(
        default="INV-",
        min_length=1,
        description="Prefix for generated invoice numbers"
    )
    first_invoice_number: int = Field(
        default=1001,
        ge=1,
        description="Number used when an owner has no invoices yet"
    )
    default_payment_terms_days: int = Field(
        default=15,
        ge=0,
        description="Days between issue date and due date for new invoices"
    )

    # Inventory
    low_stock_threshold: int = Field(
        default=5,
        ge=0,
        description="Variants at or below this quantity are reported as low stock"
    )

    # Tax policy
    tax_interstate_igst: bool = Field(
        default=False,
        description=(
            "Charge IGST instead of CGST+SGST when buyer and seller states differ. "
            "Off by default: all GST is split into CGST and SGST."
        )
    )

    # Store
    store_transaction_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Attempts before a conflicting transaction is given up"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("firestore", "google_sheets", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
