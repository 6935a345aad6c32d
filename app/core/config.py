import os
from typing import List, Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    app_name: str = "AI Health Analyzer Bot"
    debug: bool = os.getenv("DEBUG", "False").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    port: int = int(os.getenv("PORT", 8001))
    api_prefix: str = os.getenv("API_PREFIX", "/api/v1")

    # Telegram
    telegram_bot_token: Optional[str] = os.getenv("TELEGRAM_BOT_TOKEN")
    telegram_api_url: str = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")
    telegram_mode: str = os.getenv("TELEGRAM_MODE", "polling")  # polling | webhook
    polling_timeout: int = int(os.getenv("POLLING_TIMEOUT", 10))
    polling_interval: float = float(os.getenv("POLLING_INTERVAL", 1.0))
    webhook_url: Optional[str] = os.getenv("WEBHOOK_URL")
    webhook_secret: Optional[str] = os.getenv("WEBHOOK_SECRET")

    # OpenAI
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o")
    analysis_timeout: float = float(os.getenv("ANALYSIS_TIMEOUT", 60))
    analysis_max_retries: int = int(os.getenv("ANALYSIS_MAX_RETRIES", 2))

    # Supabase storage + database
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
    supabase_key: Optional[str] = os.getenv("SUPABASE_KEY")
    storage_bucket: str = os.getenv("STORAGE_BUCKET", "analyses_files")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./health_bot.db")

    # Limits
    max_file_size: int = int(os.getenv("MAX_FILE_SIZE", 20 * 1024 * 1024))
    max_text_length: int = int(os.getenv("MAX_TEXT_LENGTH", 10000))
    history_limit: int = int(os.getenv("HISTORY_LIMIT", 5))

    default_locale: str = os.getenv("DEFAULT_LOCALE", "ru")

    class Config:
        env_file = ".env"
        extra = "allow"

    def missing_credentials(self) -> List[str]:
        """Names of mandatory environment variables that are not set."""
        required = {
            "TELEGRAM_BOT_TOKEN": self.telegram_bot_token,
            "OPENAI_API_KEY": self.openai_api_key,
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_KEY": self.supabase_key,
        }
        return [name for name, value in required.items() if not value]

settings = Settings()
