"""
AiNote Backend — Application Configuration
============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads environment variables (or a .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by main.py; handles receive the Settings instance explicitly
       through DependencyHandle.configure().

Required vs optional:
    Nothing here is required for the process to start. The store and the AI
    provider each declare which of these fields they need (see
    DependencyHandle.required_settings); a missing value degrades that one
    dependency to UNCONFIGURED instead of failing startup.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Field names map case-insensitively to environment variables, so
    ``db_host`` is read from ``DB_HOST``.
    """

    # ── Relational store ──────────────────────────────────────────────────
    # Required by StoreHandle: host, user, password, database name.
    db_host: str = Field(default="", description="Database server host")
    db_user: str = Field(default="", description="Database user")
    db_password: str = Field(default="", description="Database password")
    db_name: str = Field(default="", description="Database (schema) name")

    # Optional: the driver's default port is used when unset
    db_port: Optional[int] = Field(default=None, ge=1, le=65535)

    # Any SQLAlchemy async driver: postgresql+asyncpg, mysql+aiomysql, ...
    db_driver: str = Field(default="postgresql+asyncpg")

    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=10, ge=0, le=50)
    db_pool_pre_ping: bool = Field(default=True)

    # ── Google Gemini ─────────────────────────────────────────────────────
    # Required by GeminiService.
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key used for note suggestions",
    )
    gemini_model: str = Field(default="gemini-1.5-flash")

    # Upper bound for a single completion attempt (seconds)
    ai_timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    ai_max_output_tokens: int = Field(default=1000, ge=16, le=8192)

    # Parameters of the fixed system instruction
    ai_subject: str = Field(default="cloud computing")
    ai_language: str = Field(default="English")
    ai_min_sentences: int = Field(default=3, ge=1, le=20)

    # List models at startup to verify the key and the configured model
    ai_verify_on_startup: bool = Field(default=True)

    # ── AI call retries (tenacity) ────────────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=1.0, ge=0, le=30)
    retry_max_wait: float = Field(default=8.0, ge=0, le=120)

    # ── Dependency lifecycle ──────────────────────────────────────────────
    # Upper bound for one connection attempt of any dependency (seconds)
    dependency_connect_timeout: float = Field(default=10.0, gt=0, le=120)

    # Total connection attempts per dependency during startup. Only
    # ENDPOINT_UNREACHABLE and OTHER failures are retried; 1 disables retries.
    startup_connect_attempts: int = Field(default=3, ge=1, le=10)
    startup_retry_min_wait: float = Field(default=1.0, ge=0, le=60)
    startup_retry_max_wait: float = Field(default=8.0, ge=0, le=300)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Comma-separated list of allowed origins
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1, le=65535)

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("db_port", mode="before")
    @classmethod
    def empty_port_is_unset(cls, v):
        """An empty DB_PORT in .env means "driver default"."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Loaded once at import; tests build their own Settings instances
settings = Settings()
