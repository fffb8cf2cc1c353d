"""Configuration management for the diagnostic workflow engine.

Every ``AppConfig`` field can be set through an environment variable named
``DIAGFLOW_<FIELD>`` (for example ``DIAGFLOW_HISTORY_CAPACITY=25``). List
fields take comma separated values. ``load_config`` additionally reads a
``.env`` file through python-dotenv.
"""

import os
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from dotenv import load_dotenv

from .core.exceptions import ConfigurationError


ENV_PREFIX = "DIAGFLOW_"

TRUTHY = ('true', '1', 'yes', 'on')

# Upper bounds checked by validate_config; the field validators only enforce >= 1
MAX_HISTORY_CAPACITY = 1000
MAX_ACTIVE_SESSIONS = 10000


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


def database_scheme(url: str) -> str:
    """Backend name of a SQLAlchemy URL, without any ``+driver`` suffix."""
    return url.split('://')[0].split('+')[0].lower()


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Diagnostic Workflow Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Database settings
    database_url: str = Field(
        default="sqlite:///./diagflow.db",
        description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    # Authoring and execution settings
    history_capacity: int = Field(
        default=50,
        description="Maximum number of undo snapshots kept per authoring session"
    )
    max_active_sessions: int = Field(
        default=100,
        description="Maximum number of live execution sessions"
    )

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    log_structured: bool = Field(default=False, description="Emit JSON log lines")

    # Security settings
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    cors_methods: List[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE"],
        description="CORS allowed methods"
    )

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("Database URL cannot be empty")
        scheme = database_scheme(v)
        supported = [db_type.value for db_type in DatabaseType]
        if scheme not in supported:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {supported}")
        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('history_capacity', 'max_active_sessions')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("Capacity limits must be at least 1")
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @property
    def database_type(self) -> DatabaseType:
        return DatabaseType(database_scheme(self.database_url))

    @property
    def is_sqlite(self) -> bool:
        return self.database_type == DatabaseType.SQLITE

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and not self.reload

    def get_database_connect_args(self) -> Dict[str, Any]:
        """SQLite connections are shared with the API thread pool."""
        if self.is_sqlite:
            return {"check_same_thread": False}
        return {}

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
        """
        Build a configuration from ``DIAGFLOW_*`` environment variables.

        Unset variables keep the field default; values are coerced by the
        field validators, so a bad value raises pydantic's ValidationError.
        """
        values: Dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if field.annotation is bool:
                values[name] = raw.strip().lower() in TRUTHY
            elif field.annotation == List[str]:
                values[name] = [item.strip() for item in raw.split(',') if item.strip()]
            else:
                values[name] = raw
        return cls(**values)


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


def _ensure_directory(path: str, label: str, problems: List[str]) -> None:
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            problems.append(f"Cannot create {label} directory {directory}: {e}")


def validate_config(config: AppConfig) -> None:
    """
    Check settings that depend on the environment or exceed safe limits.

    Creates missing SQLite and log directories as a side effect.

    Raises:
        ConfigurationError: Listing every failed check in ``problems``
    """
    problems: List[str] = []

    if config.is_sqlite:
        db_path = config.database_url.split(':///', 1)[-1]
        if db_path != ":memory:":
            _ensure_directory(db_path, "database", problems)

    if config.log_file:
        _ensure_directory(config.log_file, "log", problems)

    if config.history_capacity > MAX_HISTORY_CAPACITY:
        problems.append(f"History capacity above {MAX_HISTORY_CAPACITY} snapshots may exhaust memory")

    if config.max_active_sessions > MAX_ACTIVE_SESSIONS:
        problems.append(f"More than {MAX_ACTIVE_SESSIONS} active sessions is not supported")

    if problems:
        raise ConfigurationError(
            f"Configuration validation failed: {'; '.join(problems)}",
            problems=problems
        )


# Environment-specific configurations
def get_development_config() -> AppConfig:
    """Get development configuration."""
    return AppConfig(
        debug=True,
        reload=True,
        log_level=LogLevel.DEBUG,
        database_echo=True
    )


def get_production_config() -> AppConfig:
    """Get production configuration."""
    return AppConfig(
        debug=False,
        reload=False,
        log_level=LogLevel.INFO,
        database_echo=False,
        log_structured=True,
        cors_origins=[]  # Restrict CORS in production
    )


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        history_capacity=10,
        max_active_sessions=5
    )
