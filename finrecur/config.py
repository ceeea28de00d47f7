from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_URL: str = Field("sqlite+aiosqlite:///./finrecur.db", description="SQLAlchemy database URL")
    TIMEZONE: str = Field("UTC", description="Timezone used to decide 'today' and for the cron trigger")
    BACKFILL_WRITE_DELAY_MS: int = Field(30, description="Pause between occurrence writes during a backfill")
    OCCURRENCE_SAFETY_LIMIT: int = Field(2000, description="Max stepping iterations per generation call")
    BACKFILL_CRON_HOUR: int = Field(3, description="Hour of the daily backfill job")
    BACKFILL_CRON_MINUTE: int = Field(0, description="Minute of the daily backfill job")
    LOG_LEVEL: str = Field("INFO", description="Root logging level")


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
