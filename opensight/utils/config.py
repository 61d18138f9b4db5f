"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import List, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # AI engines (each engine needs its own key)
    OPENAI_API_KEY: Optional[str] = None
    PERPLEXITY_API_KEY: Optional[str] = None
    SERPER_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    CLAUDE_MODEL: str = "claude-sonnet-4-20250514"

    # Content extraction
    FIRECRAWL_API_KEY: Optional[str] = None

    # Resend (Optional - for email delivery)
    RESEND_API_KEY: Optional[str] = None
    FROM_EMAIL: str = "reports@opensight.dev"

    # Storage
    DATABASE_URL: Optional[str] = None
    RUNS_PATH: Optional[str] = None

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Analysis fan-out
    ENGINES: str = "chatgpt,perplexity"
    ENGINE_CONCURRENCY: int = 4
    MENTION_POLICY: str = "alias"

    # Timeouts (seconds)
    ENGINE_TIMEOUT: float = 60.0
    EXTRACTION_TIMEOUT: float = 60.0
    NOTIFY_TIMEOUT: float = 30.0

    # Retry budgets per workflow step
    ANALYSIS_MAX_ATTEMPTS: int = 3
    PERSIST_MAX_ATTEMPTS: int = 5
    NOTIFY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0

    # History & comparison
    TREND_WINDOW: int = 1
    HISTORY_DEFAULT_LIMIT: int = 10
    HISTORY_MAX_LIMIT: int = 50

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase

    @property
    def engine_list(self) -> List[str]:
        """Configured engine identifiers, in order, without duplicates."""
        engines = []
        for name in self.ENGINES.split(","):
            name = name.strip().lower()
            if name and name not in engines:
                engines.append(name)
        return engines


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
