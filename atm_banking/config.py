"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .currency import currency_from_code


class DemoAccount(BaseModel):
    """Account seeded into the bank at startup"""
    user_id: str
    pin: str
    opening_balance: Decimal = Decimal("0.00")

    @field_validator("opening_balance")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("opening_balance must not be negative")
        return value


def _default_demo_accounts() -> List[DemoAccount]:
    return [
        DemoAccount(user_id="1001", pin="1234", opening_balance=Decimal("5000.00")),
        DemoAccount(user_id="1002", pin="4321", opening_balance=Decimal("3500.00")),
        DemoAccount(user_id="1003", pin="0000", opening_balance=Decimal("1000.00")),
    ]


class AtmConfig(BaseSettings):
    """ATM banking simulator configuration"""

    model_config = SettingsConfigDict(
        env_prefix="ATM_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Ledger configuration
    currency: str = "USD"

    # Session configuration
    max_login_attempts: int = Field(default=3, ge=1)
    history_time_format: str = "%Y-%m-%d %H:%M"

    # Seed data
    seed_demo_accounts: bool = True
    demo_accounts: List[DemoAccount] = Field(default_factory=_default_demo_accounts)

    # Logging configuration
    log_level: str = "WARNING"  # console sessions stay quiet by default
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    @field_validator("currency")
    @classmethod
    def _supported_currency(cls, value: str) -> str:
        return currency_from_code(value).code


# Global configuration instance
config = AtmConfig()


def get_config() -> AtmConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> AtmConfig:
    """Reload configuration from environment"""
    global config
    config = AtmConfig()
    return config
