"""Configuration management for the workflow simulator."""

import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from .core.exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Workflow Simulator", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Simulation settings
    default_step_delay_ms: int = Field(
        default=700,
        description="Simulated processing time per step when a request does not set one"
    )
    automation_catalog_url: Optional[str] = Field(
        default=None,
        description="URL of the automation catalog; the built-in catalog is used when unset"
    )
    automation_request_timeout: Optional[float] = Field(
        default=None,
        description="Timeout in seconds for catalog and automation calls; none by default"
    )

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: Optional[str] = Field(default=None, description="Log message format")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_structured: bool = Field(default=False, description="Emit JSON log lines")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")

    # Security settings
    cors_origins: list = Field(
        default=["*"],
        description="CORS allowed origins"
    )

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('default_step_delay_ms')
    @classmethod
    def validate_step_delay(cls, v):
        """Validate the default step delay."""
        if v < 0:
            raise ValueError("Step delay cannot be negative")
        return v

    @field_validator('automation_request_timeout')
    @classmethod
    def validate_timeout(cls, v):
        """Validate timeout values."""
        if v is not None and v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator('automation_catalog_url')
    @classmethod
    def validate_catalog_url(cls, v):
        """Validate the catalog URL scheme."""
        if v is None or not v.strip():
            return None
        scheme = v.split('://')[0].lower()
        if scheme not in ('http', 'https'):
            raise ValueError(f"Unsupported catalog URL scheme: {scheme}")
        return v.strip()

    @property
    def default_step_delay(self) -> float:
        """Default step delay in seconds."""
        return self.default_step_delay_ms / 1000.0

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"FLOWSIM_{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            elif type_func == list:
                return value.split(',') if value else default
            try:
                return type_func(value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for FLOWSIM_{key}: {value!r}", config_key=key
                ) from e

        return cls(
            app_name=get_env("APP_NAME", "Workflow Simulator"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", "0.0.0.0"),
            port=get_env("PORT", 8000, int),
            reload=get_env("RELOAD", False, bool),
            default_step_delay_ms=get_env("DEFAULT_STEP_DELAY_MS", 700, int),
            automation_catalog_url=get_env("AUTOMATION_CATALOG_URL", None),
            automation_request_timeout=get_env("AUTOMATION_REQUEST_TIMEOUT", None, float),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", None),
            log_file=get_env("LOG_FILE", None),
            log_structured=get_env("LOG_STRUCTURED", False, bool),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            cors_origins=get_env("CORS_ORIGINS", ["*"], list)
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file and environment variables."""
    global _config

    from dotenv import load_dotenv
    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = AppConfig.from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        log_level=LogLevel.WARNING,
        default_step_delay_ms=0
    )
