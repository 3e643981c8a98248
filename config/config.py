"""Configuration management for the application."""

import os
import yaml
from enum import Enum
from pathlib import Path
from typing import Optional, Any, List
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


class StorageBackend(str, Enum):
    """Available reminder store backends."""
    SQLITE = "sqlite"
    MEMORY = "memory"


class CatchUpPolicy(str, Enum):
    """What a recurring reminder does when it wakes up several periods late."""
    SKIP_MISSED = "skip_missed"
    CATCH_UP = "catch_up"


class EnvSettings(BaseSettings):
    """Process-level overrides read from the environment."""
    model_config = SettingsConfigDict(env_prefix="REMINDLY_", env_file=".env", extra="ignore")

    config_path: Optional[Path] = Field(default=None, description="Path to the YAML config file")
    log_level: Optional[str] = Field(default=None, description="Overrides logging.level")


class StorageConfig(BaseModel):
    """Reminder store configuration."""
    backend: StorageBackend = Field(default=StorageBackend.SQLITE, description="Store backend")
    path: str = Field(default=".data/reminders.db", description="SQLite database file")


class SchedulerConfig(BaseModel):
    """Scheduler lifecycle policies."""
    delivery_attempts: int = Field(default=3, ge=1, description="Delivery tries before giving up on a fire")
    persist_attempts: int = Field(default=3, ge=1, description="Store tries when rescheduling after a fire")
    retry_delay_seconds: float = Field(default=1.0, ge=0, description="Pause between retries")
    catch_up_policy: CatchUpPolicy = Field(
        default=CatchUpPolicy.SKIP_MISSED,
        description="How recurring reminders handle missed periods"
    )
    recover_on_start: bool = Field(default=True, description="Re-arm stored reminders at startup")


class ApiConfig(BaseModel):
    """HTTP front-end configuration."""
    notification_buffer: int = Field(default=100, ge=1, description="Notifications kept for polling")


class TerminalConfig(BaseModel):
    """Terminal UI configuration."""
    prompt: str = Field(default="You: ", description="User input prompt")
    assistant_prefix: str = Field(default="Assistant: ", description="Assistant message prefix")
    user_id: str = Field(default="terminal", description="User id for the local terminal session")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")
    date_format: str = Field(default="%Y-%m-%d %H:%M:%S", description="Date format for logs")


class AppConfig(BaseModel):
    """Application configuration."""
    storage: StorageConfig = Field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data.

    Supports ${VAR} and ${VAR:default} syntax.
    """
    if isinstance(data, dict):
        return {key: expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_part = data[2:-1]
            if ":" in var_part:
                var_name, default_value = var_part.split(":", 1)
                return os.getenv(var_name, default_value)
            else:
                var_name = var_part
                return os.getenv(var_name, data)
        return data
    else:
        return data


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to config YAML file. Defaults to REMINDLY_CONFIG_PATH,
            then config/config.yaml

    Returns:
        AppConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If configuration is invalid
    """
    env = EnvSettings()
    if config_path is None:
        config_path = env.config_path or Path(__file__).parent / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}

    config_data = expand_env_vars(config_data)

    try:
        config = AppConfig(**config_data)
    except Exception as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    if env.log_level:
        config.logging.level = env.log_level.upper()
    return config


def validate_config(config: AppConfig) -> List[str]:
    """Validate that configuration values are usable.

    Args:
        config: Application configuration

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if config.storage.backend == StorageBackend.SQLITE:
        if not config.storage.path:
            errors.append("storage.path must be set for the sqlite backend")
        else:
            parent = Path(config.storage.path).parent
            if parent.exists() and not os.access(parent, os.W_OK):
                errors.append(f"storage.path directory is not writable: {parent}")

    if config.logging.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        errors.append(f"Unknown logging level: {config.logging.level}")

    return errors


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance.

    Returns:
        AppConfig: Global configuration

    Raises:
        RuntimeError: If configuration hasn't been loaded
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not loaded. Call load_config() first.")
    return _config


def init_config(config_path: Optional[Path] = None) -> AppConfig:
    """Initialize the global configuration.

    Args:
        config_path: Path to config file (optional)

    Returns:
        AppConfig: Loaded configuration
    """
    global _config
    _config = load_config(config_path)
    return _config
