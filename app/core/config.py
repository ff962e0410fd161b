import logging
import os
import tomllib
from datetime import timedelta
from enum import StrEnum
from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from yarl import URL

PROJECT_DIR = Path(__file__).parent.parent.parent
PROJECT_TOML_PATH = PROJECT_DIR / "pyproject.toml"

with open(PROJECT_TOML_PATH, "rb") as f:
    PYPROJECT_CONTENT = tomllib.load(f)["project"]


class Environment(StrEnum):
    LOCAL = "local"
    DEV = "dev"
    STG = "stg"
    PRD = "prd"


def convert_app_name(s: str) -> str:
    return " ".join(word.capitalize() for word in s.split("-"))


class Settings(BaseSettings):
    """
    Application settings.

    These parameters can be configured
    with environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=False,
        extra="ignore",
    )

    # App variables
    app_name: str = PYPROJECT_CONTENT["name"]
    app_title: str = os.getenv("APP_TITLE", convert_app_name(app_name))
    app_version: str = PYPROJECT_CONTENT["version"]
    app_description: str = PYPROJECT_CONTENT["description"]

    backend_host: str = "0.0.0.0"
    backend_port: int = 8000

    cors_origins: str = "http://localhost:3000"

    # Number of workers for uvicorn
    workers_count: int = 1

    # Enable uvicorn reloading
    reload_uvicorn: bool = False

    # Current working environment
    current_environment: Environment = Environment.LOCAL
    log_level: int = logging.INFO
    log_dir: Path = Path("logs")
    debug: bool = False

    # Variables for the database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "sistema_auth"
    postgres_db_schema: str | None = None

    # Variables for Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_user: str | None = None
    redis_pass: str | None = None
    redis_base: int | None = None
    redis_max_pool_connections: int = 50  # Maximum number of connections in the Redis pool
    redis_socket_connect_timeout: int = 5  # Socket connect timeout in seconds
    redis_socket_timeout: int = 5  # Socket timeout in seconds

    # Cache settings
    cache_enabled: bool = True
    cache_ttl_default: int = 600  # Default cache TTL in seconds

    # Rate limiting settings (requests per window)
    rate_limit_enabled: bool = True
    rate_limit_window: int = 60  # Default window in seconds (1 minute)
    rate_limit_strict: int = 10  # Per-IP limit for the auth router

    # Signing keys
    keys_dir: Path = Path("keys")
    private_key_filename: str = "jwt_key.pem"
    public_key_filename: str = "jwt_key.pub.pem"

    # Token lifetimes
    jwt_issuer: str = PYPROJECT_CONTENT["name"]
    access_token_expire_seconds: int = int(timedelta(hours=1).total_seconds())
    refresh_token_expire_seconds: int = int(timedelta(days=30).total_seconds())
    email_verification_expire_seconds: int = int(timedelta(hours=24).total_seconds())
    password_reset_expire_seconds: int = int(timedelta(hours=2).total_seconds())
    csrf_token_expire_seconds: int = int(timedelta(minutes=30).total_seconds())

    # Attempt control
    attempt_max_before_captcha: int = 5
    attempt_window_seconds: int = int(timedelta(minutes=30).total_seconds())
    login_cooldown_seconds: int = 0
    password_reset_cooldown_seconds: int = 60
    email_send_cooldown_seconds: int = 60

    # Deny security checks when Redis is unreachable unless explicitly relaxed
    security_store_fail_open: bool = False

    # CSRF
    csrf_enabled: bool = True
    csrf_header_name: str = "X-CSRF-TOKEN"
    csrf_parameter_name: str = "_csrf"

    # Captcha (reCAPTCHA / hCaptcha compatible siteverify)
    captcha_secret: str | None = None
    captcha_verify_url: str = "https://www.google.com/recaptcha/api/siteverify"
    captcha_timeout_seconds: float = 5.0

    # SMTP
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_from_email: str | None = None
    smtp_from_name: str = "Sistema"
    frontend_base_url: str = "http://localhost:3000"

    @computed_field
    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS origins from a comma-separated string.
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @computed_field
    @property
    def db_url(self) -> URL:
        """
        Assemble database URL from settings.
        """
        return URL.build(
            scheme="postgresql+asyncpg",
            host=self.postgres_host,
            port=self.postgres_port,
            user=self.postgres_user,
            password=self.postgres_password,
            path=f"/{self.postgres_db}",
        )

    @computed_field
    @property
    def redis_url(self) -> URL:
        """
        Assemble REDIS URL from settings.
        """
        path = ""

        if self.redis_base is not None:
            path = f"/{self.redis_base}"

        return URL.build(
            scheme="redis",
            host=self.redis_host,
            port=self.redis_port,
            user=self.redis_user,
            password=self.redis_pass,
            path=path,
        )


settings = Settings()
