"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class CustodyConfig(BaseSettings):
    """Custody ledger configuration"""

    # Storage configuration
    database_url: str = "sqlite:///custody.db"  # memory:// for in-memory

    # Ledger construction
    ledger_address: str = "custody-ledger"
    bank_cap: str = "1000"  # Whole units
    initial_value: str = "0"  # Whole units moved in at construction
    deployer: Optional[str] = None  # Source of initial_value

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    class Config:
        env_prefix = "CUSTODY_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = CustodyConfig()


def get_config() -> CustodyConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CustodyConfig:
    """Reload configuration from environment"""
    global config
    config = CustodyConfig()
    return config
