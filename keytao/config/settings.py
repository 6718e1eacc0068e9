"""
Configuration management system using Pydantic Settings.
Supports environment-based configuration for different deployment environments.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any, List
from enum import Enum


class Environment(str, Enum):
    """Supported deployment environments"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseSettings(BaseSettings):
    """Relational store configuration"""

    url: str = Field(default="sqlite:///./keytao.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False)
    pool_pre_ping: bool = Field(default=True)
    auto_create: bool = Field(default=True, description="Create missing tables on startup")

    model_config = {"env_prefix": "DATABASE_"}


class SecuritySettings(BaseSettings):
    """Security and authentication configuration"""

    jwt_secret: str = Field(default="please-change-me")
    jwt_refresh_secret: Optional[str] = Field(default=None)
    access_token_minutes: int = Field(default=60, ge=1, le=60 * 24)
    refresh_token_minutes: int = Field(default=60 * 24 * 7, ge=60)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "PATCH", "DELETE"]
    )
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from environment variable or list"""
        if isinstance(v, str):
            origin_list = v.split(",")
            return [origin.strip() for origin in origin_list if origin.strip()]
        return v or ["*"]

    @property
    def refresh_secret(self) -> str:
        return self.jwt_refresh_secret or self.jwt_secret

    model_config = {"env_prefix": "SECURITY_"}


class GithubSettings(BaseSettings):
    """Upstream dictionary repository configuration"""

    api_url: str = Field(default="https://api.github.com")
    owner: str = Field(default="xkinput")
    repo: str = Field(default="KeyTao")
    base_branch: str = Field(default="master")
    dict_dir: str = Field(default="rime", description="Directory holding *.dict.yaml files")

    # Personal access token (legacy)
    token: Optional[str] = Field(default=None)

    # GitHub App (preferred)
    app_id: Optional[int] = Field(default=None)
    app_private_key: Optional[str] = Field(default=None)
    app_installation_id: Optional[int] = Field(default=None)

    timeout_seconds: int = Field(default=15, ge=1, le=120)

    @field_validator('app_private_key', mode='before')
    @classmethod
    def normalize_private_key(cls, v):
        """Accept keys with literal \\n escapes as well as real newlines"""
        if isinstance(v, str) and "\\n" in v:
            return v.replace("\\n", "\n")
        return v

    @property
    def has_app_credentials(self) -> bool:
        return bool(self.app_id and self.app_private_key and self.app_installation_id)

    model_config = {"env_prefix": "GITHUB_"}


class SyncSettings(BaseSettings):
    """Dictionary synchronisation job configuration"""

    files_per_step: int = Field(default=5, ge=1, le=50)
    steps_per_invocation: int = Field(default=3, ge=1, le=100)
    time_budget_seconds: float = Field(default=8.0, gt=0, le=900)
    cleanup_warning_progress: int = Field(default=70, ge=0, le=100)
    continuation_url: Optional[str] = Field(
        default=None,
        description="Absolute URL of /internal/sync/continue; unset leaves continuation to cron"
    )
    continuation_secret: Optional[str] = Field(default=None)
    secret_header: str = Field(default="X-Sync-Secret")

    model_config = {"env_prefix": "SYNC_"}


class ImportSettings(BaseSettings):
    """Bulk phrase import limits"""

    max_lines_per_request: int = Field(default=1000, ge=1, le=10000)

    model_config = {"env_prefix": "IMPORT_"}


class Settings(BaseSettings):
    """Main application settings"""

    # Application Configuration
    app_name: str = Field(default="KeyTao Dictionary Platform")
    app_version: str = Field(default="0.3.0")
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    reload: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=16)

    # Logging Configuration
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(default="json", description="json or text")

    # Nested Settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    github: GithubSettings = Field(default_factory=GithubSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)

    @field_validator('environment', mode='before')
    @classmethod
    def validate_environment(cls, v):
        """Validate and normalize environment setting"""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment == Environment.PRODUCTION

    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment == Environment.DEVELOPMENT

    def get_cors_config(self) -> Dict[str, Any]:
        """Get CORS configuration for FastAPI"""
        return {
            "allow_origins": self.security.cors_origins,
            "allow_credentials": self.security.cors_allow_credentials,
            "allow_methods": self.security.cors_allow_methods,
            "allow_headers": self.security.cors_allow_headers,
        }

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance"""
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment and files"""
    global settings
    settings = Settings()
    return settings
