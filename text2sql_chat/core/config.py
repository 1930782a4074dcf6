from pydantic_settings import BaseSettings
from pathlib import Path
from dotenv import load_dotenv
from typing import List, Optional
import os

ROOT_DIR = Path(__file__).parent.parent.parent
load_dotenv(ROOT_DIR / '.env')

class Settings(BaseSettings):
    # Text2SQL API
    TEXT2SQL_API_BASE_URL: str = os.getenv('TEXT2SQL_API_BASE_URL', 'https://api.text2sql.ai')
    TEXT2SQL_API_KEY: str = os.getenv('TEXT2SQL_API_KEY', '')
    TEXT2SQL_CONNECTION_ID: Optional[str] = os.getenv('TEXT2SQL_CONNECTION_ID') or None

    # Chat client: talk to a proxy instead of the upstream API when set
    TEXT2SQL_PROXY_URL: Optional[str] = os.getenv('TEXT2SQL_PROXY_URL') or None
    REQUEST_TIMEOUT_SECONDS: float = float(os.getenv('REQUEST_TIMEOUT_SECONDS', '60'))

    # Conversation persistence
    CHAT_STORAGE_DIR: str = os.getenv('CHAT_STORAGE_DIR', '.chat_storage')

    # CORS
    CORS_ORIGINS: str = os.getenv('CORS_ORIGINS', '*')

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_DIR: str = os.getenv('LOG_DIR', 'logs')

    class Config:
        env_file = '.env'
        case_sensitive = True
        extra = 'ignore'

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(',') if origin.strip()]

settings = Settings()


def get_settings() -> Settings:
    """Dependency returning the process settings (overridden in tests)."""
    return settings
