from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    EmailStr,
    computed_field,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from forum.core.ratelimit import RateLimitConfig


def _clean_origin(value: str) -> str:
    # .env files sometimes carry stray quotes or trailing slashes
    return value.strip().strip("'\"").rstrip("/")


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [_clean_origin(i) for i in v.split(",") if _clean_origin(i)]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "Prompt Forum"
    API_V1_STR: str = "/api"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    # Signing secret for access tokens. Left unset on purpose: token issuance
    # fails with a 500 until it is configured.
    JWT_SECRET: str | None = None
    # 60 minutes * 24 hours * 7 days = 7 days
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    FRONTEND_HOST: str = "http://localhost:5173"
    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [_clean_origin(str(origin)) for origin in self.BACKEND_CORS_ORIGINS] + [
            _clean_origin(self.FRONTEND_HOST)
        ]

    DATABASE_URL: str | None = None
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "forum"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    INSTITUTIONAL_EMAIL_DOMAIN: str = "pc.sc.gov.br"
    GOOGLE_CLIENT_ID: str | None = None
    DIRECTORY_LOOKUP_URL: str | None = None

    # None means "enabled only in production"
    RATE_LIMIT_ENABLED: bool | None = None
    RATE_LIMIT_WINDOW_SECONDS: float = 15.0
    RATE_LIMIT_MAX_REQUESTS: int = 100

    UPLOAD_DIR: str = "uploads"
    MAX_BODY_BYTES: int = 10 * 1024 * 1024

    FIRST_SUPERUSER: EmailStr = "admin@pc.sc.gov.br"
    FIRST_SUPERUSER_PASSWORD: str = "changethis"

    @property
    def rate_limit_config(self) -> RateLimitConfig:
        enabled = self.RATE_LIMIT_ENABLED
        if enabled is None:
            enabled = self.ENVIRONMENT == "production"
        return RateLimitConfig(
            enabled=enabled,
            window_seconds=self.RATE_LIMIT_WINDOW_SECONDS,
            max_requests=self.RATE_LIMIT_MAX_REQUESTS,
            prefix=self.API_V1_STR,
            exempt_paths=(
                f"{self.API_V1_STR}/auth/me",
                f"{self.API_V1_STR}/stats/dashboard",
            ),
        )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()  # type: ignore
