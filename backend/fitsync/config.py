"""
Application Configuration

Uses Pydantic Settings for type-safe configuration.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, ConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    # === Core ===
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # === Database ===
    database_url: str = Field(
        default="sqlite:///./fitsync.db",
        description="Database connection URL (persisted sync state)"
    )

    # === CORS ===
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # === Fitness provider ===
    fit_client_id: Optional[str] = Field(default=None)
    fit_api_key: Optional[str] = Field(default=None)
    fit_authorize_url: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="Provider consent endpoint (implicit grant)"
    )
    fit_api_url: str = Field(
        default="https://www.googleapis.com/fitness/v1",
        description="Provider data API base URL"
    )
    fit_discovery_url: str = Field(
        default="https://www.googleapis.com/discovery/v1/apis/fitness/v1/rest",
        description="Provider API discovery document"
    )
    fit_provider_name: str = Field(default="Google Fit")
    fit_request_timeout_seconds: float = Field(default=30.0)

    # === Authorization surface (loopback listener) ===
    fit_auth_host: str = Field(default="127.0.0.1")
    fit_auth_port: int = Field(default=8765)
    fit_auth_timeout_seconds: float = Field(default=300.0)
    fit_default_token_lifetime_seconds: int = Field(default=3600)

    # === Activity ledger (tracker REST backend) ===
    ledger_api_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the activity ledger REST API"
    )
    ledger_api_token: Optional[str] = Field(default=None)
    ledger_timeout_seconds: float = Field(default=15.0)

    # === Sync behaviour ===
    sync_user_id: str = Field(default="me", description="Ledger user the engine syncs for")
    sync_interval_minutes: float = Field(default=30.0)
    sync_debounce_seconds: float = Field(default=60.0)
    sync_backfill_days: int = Field(default=7)

    # === Calorie decomposition ===
    resting_baseline_kcal: float = Field(
        default=1800.0,
        description="Assumed daily resting metabolism"
    )
    steps_baseline: int = Field(
        default=10000,
        description="Steps per day the resting baseline is spread over"
    )

    @field_validator('database_url')
    @classmethod
    def fix_postgres_url(cls, v: str) -> str:
        """Fix Render/Railway postgres:// URL to postgresql://"""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('steps_baseline')
    @classmethod
    def positive_steps_baseline(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("steps_baseline must be positive")
        return v

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
