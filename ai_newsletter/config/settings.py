from dotenv import load_dotenv
from pydantic import BaseModel, Field
import os

from ai_newsletter.models.errors import ConfigurationError

load_dotenv()

def _to_bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}

def _to_int(v: str | None, default: int) -> int:
    if v is None or not v.strip():
        return default
    return int(v.strip())

def _to_str(v: str | None, default: str = "") -> str:
    if v is None:
        return default
    return v.strip()


class Settings(BaseModel):
    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    llm_timeout_seconds: int = Field(default=600)

    plunk_api_key: str = Field(default="")
    plunk_base_url: str = Field(default="https://api.useplunk.com/v1")
    plunk_timeout_seconds: int = Field(default=30)

    recipient_email: str = Field(default="")
    broadcast_mode: bool = Field(default=False)

    cron_secret: str = Field(default="")
    trigger_secret: str = Field(default="")

    newsletter_name: str = Field(default="AI News Daily")
    site_url: str = Field(default="/")
    api_base_url: str = Field(default="http://localhost:8000")
    environment: str = Field(default="production")

    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/run.log")

    database_url: str = Field(default="sqlite:///data/newsletter.db")

    lock_path: str = Field(default="data/run.lock")
    lock_timeout_seconds: int = Field(default=60 * 60)

    @property
    def trigger_secrets(self) -> list[str]:
        # empty secrets never authorize anything
        return [s for s in (self.cron_secret, self.trigger_secret) if s]

    def missing(self, *fields: str) -> list[str]:
        return [f for f in fields if not getattr(self, f)]

    def require(self, *fields: str) -> None:
        """Raise ConfigurationError naming every empty field in ``fields``."""
        missing = self.missing(*fields)
        if missing:
            raise ConfigurationError(missing)


_settings: Settings | None = None

def load_settings() -> Settings:
    return Settings(
        openai_api_key=_to_str(os.getenv("OPENAI_API_KEY")),
        openai_model=_to_str(os.getenv("OPENAI_MODEL"), "gpt-4o-mini") or "gpt-4o-mini",
        llm_timeout_seconds=_to_int(os.getenv("LLM_TIMEOUT_SECONDS"), 600),
        plunk_api_key=_to_str(os.getenv("PLUNK_API_KEY")),
        plunk_base_url=_to_str(os.getenv("PLUNK_BASE_URL"), "https://api.useplunk.com/v1"),
        plunk_timeout_seconds=_to_int(os.getenv("PLUNK_TIMEOUT_SECONDS"), 30),
        recipient_email=_to_str(os.getenv("RECIPIENT_EMAIL")),
        broadcast_mode=_to_bool(os.getenv("PLUNK_BROADCAST_MODE"), False),
        cron_secret=_to_str(os.getenv("CRON_SECRET")),
        trigger_secret=_to_str(os.getenv("TRIGGER_SECRET")),
        newsletter_name=_to_str(os.getenv("NEWSLETTER_NAME"), "AI News Daily"),
        site_url=_to_str(os.getenv("SITE_URL"), "/") or "/",
        api_base_url=_to_str(os.getenv("API_BASE_URL"), "http://localhost:8000"),
        environment=_to_str(os.getenv("APP_ENV"), "production"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE", "logs/run.log"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/newsletter.db"),
        lock_path=os.getenv("RUN_LOCK_PATH", "data/run.lock"),
        lock_timeout_seconds=_to_int(os.getenv("RUN_LOCK_TIMEOUT_SECONDS"), 60 * 60),
    )


def get_settings() -> Settings:
    global _settings
    if _settings is not None:
        return _settings

    _settings = load_settings()
    return _settings
