"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class EngineConfig(BaseSettings):
    """Loan calculation engine configuration"""

    # Tax configuration
    gst_rate: Decimal = Decimal("0.18")  # Applied to fees and penalties

    # Plan defaults
    default_repayment_days: int = 15
    post_service_fee_marker: str = "post service fee"

    # Lifecycle: statuses whose due dates are authoritative from storage
    frozen_statuses: List[str] = ["account_manager", "overdue"]

    # Extension rules
    extension_fee_rate: Decimal = Decimal("0.21")  # Of principal
    max_extensions: int = 4
    extension_window_before_days: int = 5
    extension_window_after_days: int = 15
    fixed_extension_days: int = 15

    # Persistence
    write_back_enabled: bool = True
    database_path: str = ":memory:"  # SQLite path, ":memory:" for in-memory

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    class Config:
        env_prefix = "LOAN_ENGINE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = EngineConfig()


def get_config() -> EngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EngineConfig:
    """Reload configuration from environment"""
    global config
    config = EngineConfig()
    return config
