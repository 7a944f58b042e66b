from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from pathlib import Path
from typing import List

from cortex.models.errors import ConfigurationError

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # System
    LOG_LEVEL: str = "INFO"
    DATA_DIR: Path = Path("./data")
    TIMEZONE: str = "Asia/Seoul"

    # Trigger surface
    CRON_SECRET: str | None = None
    API_PORT: int = 8001

    # LLM
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1"
    LLM_TIMEOUT: float = 120.0
    LLM_RETRY_DELAY: float = 2.0
    LLM_RATE_LIMIT_DELAY: float = 10.0  # Longer wait when the model server throttles
    SUMMARY_BATCH_SIZE: int = 10

    # Outbound HTTP
    HTTP_TIMEOUT: float = 10.0
    HTTP_MAX_ATTEMPTS: int = 3
    HTTP_BACKOFF: float = 1.0
    HTTP_MAX_BACKOFF: float = 30.0
    USER_AGENT: str = "Cortex-Bot/1.0 (Personal AI Briefing)"

    # Optional source credentials
    YOUTUBE_DATA_API_KEY: str | None = None
    NAVER_CLIENT_ID: str | None = None
    NAVER_CLIENT_SECRET: str | None = None
    OPENWEATHER_API_KEY: str | None = None

    # Telegram
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_CHAT_ID: str | None = None
    TELEGRAM_POLLING_ENABLED: bool = False

    # Presentation
    WEB_BASE_URL: str = "http://localhost:3000"

    # Keywords describing the user's current context (projects, goals)
    CONTEXT_KEYWORDS: List[str] = Field(default_factory=list)

    def ensure_dirs(self):
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)

    def require(self, *names: str):
        """Raise a mandatory ConfigurationError if any named setting is empty."""
        missing = [name for name in names if not getattr(self, name, None)]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}", mandatory=True)

settings = Settings()
