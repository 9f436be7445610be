from dataclasses import dataclass, field
import os


def _as_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    db_host: str = os.getenv("DB_HOST", "")
    db_port: int = int(os.getenv("DB_PORT", "5432"))
    db_name: str = os.getenv("DB_NAME", "")
    db_user: str = os.getenv("DB_USER", "")
    db_password: str = os.getenv("DB_PASSWORD", "")
    auto_migrate: bool = _as_bool(os.getenv("AUTO_MIGRATE", "false"))
    store_backend: str = os.getenv("STORE_BACKEND", "postgres").lower()
    cors_allow_origins: list[str] = field(
        default_factory=lambda: _split_csv(os.getenv("CORS_ALLOW_ORIGINS", "*"))
    )
    cors_allow_methods: list[str] = field(
        default_factory=lambda: _split_csv(os.getenv("CORS_ALLOW_METHODS", "*"))
    )
    cors_allow_headers: list[str] = field(
        default_factory=lambda: _split_csv(os.getenv("CORS_ALLOW_HEADERS", "*"))
    )
    expose_errors: bool = _as_bool(os.getenv("EXPOSE_ERRORS", "true"))
    auth_secret: str = os.getenv("AUTH_SECRET", "change-me")
    auth_token_ttl_seconds: int = int(os.getenv("AUTH_TOKEN_TTL_SECONDS", str(8 * 3600)))
    max_active_raffles: int = int(os.getenv("MAX_ACTIVE_RAFFLES", "2"))
    raffle_timezone: str = os.getenv("RAFFLE_TIMEZONE", "UTC")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    content_text_model: str = os.getenv("CONTENT_TEXT_MODEL", "gpt-4o-mini")
    content_image_model: str = os.getenv("CONTENT_IMAGE_MODEL", "dall-e-3")
    content_timeout_seconds: float = float(os.getenv("CONTENT_TIMEOUT_SECONDS", "60"))


settings = Settings()


def db_configured() -> bool:
    return all([settings.db_host, settings.db_name, settings.db_user, settings.db_password])


def content_configured() -> bool:
    return bool(settings.openai_api_key)
