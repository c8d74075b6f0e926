"""
Configuration Management for SmartLedger

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here. The ledger core only needs
LedgerSettings, which has a default for every field, so the engine runs
without any environment set up. The external collaborators (Google Sheets,
Gemini) have required credentials and are only loaded when those
adapters are constructed.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Settings for the ledger engine and local snapshot storage."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    timezone: str = Field(
        default="Asia/Taipei",
        description="Timezone used to decide what 'today' is for recurring catch-up"
    )
    max_catch_up_iterations: int = Field(
        default=12,
        ge=1,
        le=366,
        description="Maximum instances one template may emit per catch-up pass"
    )
    recurring_description_suffix: str = Field(
        default=" (自動)",
        description="Marker appended to descriptions of generated instances"
    )

    # Snapshot storage
    snapshot_path: str = Field(
        default="./data/smartledger_storage_v1.json",
        description="Where the JSON snapshot is written"
    )
    storage_quota_bytes: Optional[int] = Field(
        default=5 * 1024 * 1024,
        ge=1024,
        description="Maximum serialized snapshot size; None disables the quota"
    )
    receipt_images_margin: int = Field(
        default=10,
        ge=0,
        description="How many receipt images the first trimming attempt drops"
    )
    receipt_images_trim_step: int = Field(
        default=5,
        ge=1,
        description="How many more images each further trimming attempt drops"
    )

    @property
    def snapshot_file(self) -> Path:
        return Path(self.snapshot_path)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets sync configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_name: str = Field(
        default="SmartLedger_AutoBackup",
        description="Title of the backup spreadsheet"
    )
    spreadsheet_id: Optional[str] = Field(
        default=None,
        description="Spreadsheet ID; looked up by name when not set"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before syncing."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini configuration for receipt and voice extraction."""

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
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Model temperature (0 for deterministic extraction)"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Sub-settings are loaded lazily so a missing Gemini key does not stop
    the ledger from working.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an extra
    "<name>_error" entry for each failure. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("ledger", "google_sheets", "gemini"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
