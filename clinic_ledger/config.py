"""Configuration management for the clinic ledger."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LEDGER_",
        case_sensitive=False,
        extra="ignore",
    )

    # Relational store
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/clinic_ledger.db",
        description="SQLAlchemy async DSN for the ledger store",
    )
    database_timeout_seconds: float = Field(
        default=15.0,
        description="Lock/connect timeout handed to the database driver",
    )
    database_echo: bool = Field(default=False, description="Log emitted SQL")

    # Billing policy
    default_tax_rate: Decimal = Field(
        default=Decimal("0.15"),
        ge=0,
        le=1,
        description="Tax rate for manual lines and new billing codes",
    )
    tax_policy: Literal["per_line", "flat"] = Field(
        default="per_line",
        description="per_line honours each line's rate; flat applies default_tax_rate to the subtotal",
    )
    invoice_due_days: int = Field(
        default=30,
        ge=0,
        description="Days until an invoice generated from an appointment is due",
    )
    invoice_number_prefix: str = Field(default="INV")
    clinic_name: str = Field(default="Clinic", description="Header text for printed invoices")

    # Audit
    audit_fallback_dir: Path = Field(
        default=Path("data/logs"),
        description="Directory receiving audit entries that could not be stored",
    )

    # API Settings
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8080)
    api_key: str = Field(
        default="",
        description="API key for authenticating requests",
    )

    # Debug
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode (exposes error details in responses)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
