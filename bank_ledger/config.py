"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Ledger engine configuration"""

    # Storage configuration
    database_url: str = "sqlite:///ledger.db"  # or memory://
    error_journal_url: Optional[str] = None  # None = second connection to database_url

    # Sequence base values
    account_id_start: int = 1001
    transaction_id_start: int = 5001
    error_log_id_start: int = 1

    # Account locking
    lock_timeout_seconds: float = 10.0
    lock_retry_attempts: int = 3

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Backups
    backup_directory: str = "backups"

    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
