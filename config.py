"""
Configuration Management for Venture Canvas AI Assist
"""
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    FORM_PAGES_PATH: Path = DATA_DIR / "form-pages.json"
    PROMPTS_PATH: Path = DATA_DIR / "prompts.json"

    # Perplexity API Configuration (chat completions)
    PERPLEXITY_API_KEY: Optional[str] = None
    PERPLEXITY_API_URL: str = "https://api.perplexity.ai/chat/completions"
    PERPLEXITY_MODEL: str = "sonar-pro"
    PERPLEXITY_TEMPERATURE: float = 0.1
    PERPLEXITY_TIMEOUT: int = 60  # seconds; research prompts with citations are slow

    # Retry Configuration (transport errors only)
    MAX_RETRIES: int = 3
    RETRY_MIN_WAIT: int = 2  # seconds
    RETRY_MAX_WAIT: int = 10  # seconds
    RETRY_MULTIPLIER: int = 2

    # Export / Import
    EXPORT_VERSION: int = 1
    EXPORT_FILENAME: str = "busup-canvas.json"

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_RELOAD: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text (file handler only)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._create_directories()

    def _create_directories(self) -> None:
        """Create necessary directories if they don't exist"""
        self.LOGS_DIR.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
