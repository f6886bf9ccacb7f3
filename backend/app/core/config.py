import os
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, validator
from typing import Optional, Union


class Settings(BaseSettings):
    """
    Application settings with Pydantic validation.
    Loads from environment variables with type checking and validation.
    """
    app_name: str = Field(default="Finance Admin", env="APP_NAME")
    environment: str = Field(default="development", env="ENVIRONMENT")

    backend_cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        env="BACKEND_CORS_ORIGINS"
    )
    # Optional regex to allow multiple origins (e.g., all vercel.app subdomains)
    backend_cors_origins_regex: Optional[str] = Field(
        default=None, env="BACKEND_CORS_ORIGINS_REGEX"
    )

    database_url: str = Field(
        default="sqlite:///./finance_admin.db",
        env="DATABASE_URL"
    )

    # JWT Authentication - validate non-default
    jwt_secret_key: str = Field(default="dev-secret-key-change-in-production-5b1f9c0e7a3d2c4f6e8a", env="JWT_SECRET_KEY", min_length=32)
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=12 * 60, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Cookie settings
    cookie_domain: Optional[str] = Field(default=None, env="COOKIE_DOMAIN")
    cookie_secure: bool = Field(default=False, env="COOKIE_SECURE")
    cookie_samesite: str = Field(default="lax", env="COOKIE_SAMESITE")
    cookie_access_name: str = Field(default="access_token", env="COOKIE_ACCESS_NAME")

    # Auth & signup. The very first account is always allowed (bootstrap admin).
    signup_mode: str = Field(default="closed", env="SIGNUP_MODE")  # closed | open
    default_role: str = Field(default="editor", env="DEFAULT_ROLE")

    # Sentry
    sentry_dsn: Union[str, None] = Field(default=None, env="SENTRY_DSN")
    sentry_env: str = Field(default="development", env="SENTRY_ENV")

    # Prometheus scrape token (required in production)
    metrics_token: Optional[str] = Field(default=None, env="METRICS_TOKEN")

    debug: bool = Field(default=True, env="DEBUG")

    # File storage
    # Comma-separated adapter order for uploads: github | local | inline
    storage_backends: str = Field(default="github,local", env="STORAGE_BACKENDS")
    storage_remote_enabled: bool = Field(default=True, env="STORAGE_REMOTE_ENABLED")
    # Static web root; local files land in <root>/uploads/<bucket-dir>/
    storage_local_root: str = Field(default="./public", env="STORAGE_LOCAL_ROOT")
    upload_max_bytes: int = Field(default=20 * 1024 * 1024, env="UPLOAD_MAX_BYTES")

    # GitHub contents API (remote storage)
    github_token: Optional[str] = Field(default=None, env="GITHUB_TOKEN")
    github_owner: str = Field(default="finance-office", env="GITHUB_OWNER")
    github_repo: str = Field(default="finance-files", env="GITHUB_REPO")
    github_branch: str = Field(default="main", env="GITHUB_BRANCH")
    github_api_url: str = Field(default="https://api.github.com", env="GITHUB_API_URL")
    github_raw_url: str = Field(default="https://raw.githubusercontent.com", env="GITHUB_RAW_URL")
    github_path_prefix: str = Field(default="public/uploads", env="GITHUB_PATH_PREFIX")
    github_timeout_seconds: float = Field(default=30.0, env="GITHUB_TIMEOUT_SECONDS")

    @validator("jwt_secret_key")
    def validate_jwt_secret(cls, v: str, values: dict) -> str:
        """Ensure JWT secret is strong in production"""
        env = values.get("environment")
        if env == "production":
            if len(v) < 32 or "dev-secret" in v or "change" in v.lower():
                raise ValueError(
                    "JWT_SECRET_KEY must be a strong, unique secret (min 32 chars) in production. "
                    "Generate with: python3 -c \"import secrets; print(secrets.token_urlsafe(64))\""
                )
        return v

    @validator("database_url")
    def validate_database_url(cls, v: str, values: dict) -> str:
        """Validate database URL; disallow SQLite in production."""
        env = values.get("environment")
        if env == "production" and v.startswith("sqlite"):
            raise ValueError("SQLite is not allowed for DATABASE_URL in production. Use PostgreSQL.")
        return v

    @validator("debug")
    def validate_debug(cls, v: bool, values: dict) -> bool:
        """Never allow DEBUG=true in production."""
        if values.get("environment") == "production" and v:
            raise ValueError("DEBUG must be false in production.")
        return v

    @validator("storage_backends")
    def validate_storage_backends(cls, v: str) -> str:
        names = [n.strip().lower() for n in (v or "").split(",") if n.strip()]
        if not names:
            raise ValueError("STORAGE_BACKENDS must name at least one backend.")
        unknown = [n for n in names if n not in {"github", "local", "inline"}]
        if unknown:
            raise ValueError(f"Unknown storage backend(s): {', '.join(unknown)}")
        return ",".join(names)

    class Config:
        # Load env file based on ENVIRONMENT; default to development
        env_file = ".env.production" if os.getenv("ENVIRONMENT") == "production" else ".env.development"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Validates all environment variables on first access.
    Raises ValidationError if configuration is invalid.
    """
    return Settings()
