"""
Configuration Management for Club Dues

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary attachment storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    folder: str = Field(
        default="club_dues/attachments",
        description="Folder that receives uploaded receipts and invoices"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets row storage configuration."""

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

    # One worksheet per table
    members_sheet_name: str = Field(default="Members")
    leaves_sheet_name: str = Field(default="Leaves")
    payments_sheet_name: str = Field(default="Payments")
    transactions_sheet_name: str = Field(default="Transactions")
    bills_sheet_name: str = Field(default="PayableBills")
    accounts_sheet_name: str = Field(default="Accounts")
    categories_sheet_name: str = Field(default="Categories")
    payees_sheet_name: str = Field(default="Payees")
    tags_sheet_name: str = Field(default="Tags")
    projects_sheet_name: str = Field(default="Projects")
    logs_sheet_name: str = Field(default="Logs")

    auto_create_optional_sheets: bool = Field(
        default=False,
        description=(
            "Create optional worksheets (leaves) on first use. When False a "
            "missing optional sheet is reported as unavailable"
        )
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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

    # Payable bills
    recurring_horizon_months: int = Field(
        default=12,
        ge=1,
        le=60,
        description="How many occurrences a monthly recurring bill generates"
    )
    legacy_estimate_marker: str = Field(
        default="[ESTIMATE]",
        description="Token older rows carry at the start of notes to flag an estimated amount"
    )
    unlinked_expenses_limit: int = Field(
        default=50,
        ge=1,
        description="Maximum expenses offered when linking a bill to an existing transaction"
    )

    # Dues
    dues_category_name: str = Field(
        default="Membership Fees",
        description="Income category used for member dues transactions"
    )

    # Audit log
    log_page_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Number of log entries returned by the log listing"
    )
    undone_prefix: str = Field(
        default="[UNDONE]",
        description="Prefix added to a log entry description once it has been undone"
    )

    # Attachments
    max_attachment_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum attachment size in MB"
    )

    @property
    def max_attachment_size_bytes(self) -> int:
        """Get max attachment size in bytes."""
        return self.max_attachment_size_mb * 1024 * 1024


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    for name in ("cloudinary", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
