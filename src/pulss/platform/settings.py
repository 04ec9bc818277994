"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
For nested settings, use double underscore: BILLING__SUPPLIER_STATE=Karnataka
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use double underscore: DATABASE__POOL_SIZE=20
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field("pulss-billing", description="Application name")
    app_version: str = Field("1.0.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str | None = Field(None, description="Full SQLAlchemy database URL")
        host: str = Field("localhost", description="Database host")
        port: int = Field(5432, description="Database port")
        database: str = Field("pulss", description="Database name")
        username: str = Field("pulss", description="Database username")
        password: str = Field("", description="Database password")

        # Connection pool
        pool_size: int = Field(10, description="Connection pool size")
        max_overflow: int = Field(20, description="Max overflow connections")
        pool_timeout: int = Field(30, description="Pool timeout in seconds")
        pool_recycle: int = Field(3600, description="Recycle connections after seconds")
        pool_pre_ping: bool = Field(True, description="Test connections before use")

        echo: bool = Field(False, description="Echo SQL statements")

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability Configuration
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Observability configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or text)")
        enable_correlation_ids: bool = Field(True, description="Enable correlation IDs")

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Billing Configuration
    # ============================================================

    class BillingSettings(BaseModel):
        """Billing and GST configuration."""

        # Supplier (the platform issuing invoices)
        supplier_name: str = Field("Pulss Technologies Pvt Ltd", description="Supplier legal name")
        supplier_gstin: str | None = Field(None, description="Supplier GSTIN")
        supplier_state: str = Field("Karnataka", description="Supplier state for GST jurisdiction")
        supplier_address: str = Field("", description="Supplier registered address")
        supplier_email: str | None = Field(None, description="Supplier billing email")

        # Tax
        gst_rate: Decimal = Field(Decimal("18"), description="Default GST rate percentage")
        default_hsn_sac: str = Field("998314", description="Default SAC for SaaS services")

        # Currency
        currency: str = Field("INR", description="Billing currency")
        locale: str = Field("en_IN", description="Locale for amount formatting")

        # Invoicing
        invoice_due_days: int = Field(7, description="Days between invoice date and due date")
        invoice_prefix: str = Field("INV", description="Invoice number prefix")
        receipt_prefix: str = Field("RCP", description="GST receipt number prefix")
        renewal_includes_usage: bool = Field(
            True, description="Bill unbilled usage on renewal invoices"
        )

        # Commissions
        commission_lookback_days: int = Field(
            7, description="Days of successful payments scanned for commissions"
        )

        # Reminders
        renewal_reminder_days: int = Field(3, description="Days before renewal to send reminder")
        trial_reminder_days: int = Field(3, description="Days before trial end to send reminder")

        @field_validator("invoice_due_days")
        @classmethod
        def validate_due_days(cls, v: int) -> int:
            if v < 0:
                raise ValueError("invoice_due_days cannot be negative")
            return v

    billing: BillingSettings = BillingSettings()  # type: ignore[call-arg]

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


# Convenience export
settings = get_settings()
