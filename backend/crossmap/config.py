from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "CrossMap"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite+aiosqlite:///./crossmap.db"

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # ── Mapping policy ──
    EQUIVALENCE_HOP_LIMIT: int = 6
    FINDING_RELEVANCE_THRESHOLD: float = 0.2
    FINDING_MAX_LINKS: int = 10
    MAX_REPORT_DELTA: float = 0.25
    RESOLUTION_CACHE_SIZE: int = 64

    # ── AI augmentation (optional) ──
    AI_PROVIDER: str = "none"  # none | anthropic | openai_compatible
    AI_ENDPOINT: str = "https://api.anthropic.com"
    AI_API_KEY: str = ""
    AI_MODEL: str = "claude-3-5-haiku-latest"
    AI_MAX_TOKENS: int = 1500
    AI_TEMPERATURE: float = 0.2
    AI_TIMEOUT_SECONDS: float = 30.0

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def ai_enabled(self) -> bool:
        return self.AI_PROVIDER != "none" and bool(self.AI_ENDPOINT)


settings = Settings()
