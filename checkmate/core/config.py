import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()  # Load environment variables from a .env file if present


class Config(BaseSettings):
    """
    Application configuration settings.
    Reads from environment variables by default.
    """
    PROJECT_NAME: str = "Checkmate Backend"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # LLM provider
    GEMINI_API_KEY: Optional[str] = None
    LLM_MODEL_NAME: str = "gemini-2.5-pro"
    AVAILABLE_MODELS: List[str] = ["gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite"]
    LLM_TEMPERATURE: float = 0
    LLM_MAX_TOKEN: int = 8192

    # Transcription (TikTok audio)
    OPENAI_API_KEY: Optional[str] = None
    TRANSCRIPTION_MODEL: str = "whisper-1"

    # Collaborators
    TAVILY_API_KEY: Optional[str] = None
    FIRECRAWL_API_KEY: Optional[str] = None
    X_BEARER_TOKEN: Optional[str] = None
    OPENCORPORATES_API_KEY: Optional[str] = None

    # Time budgets (seconds)
    MAX_DURATION_SECONDS: float = 60
    EXTRACTION_TIMEOUT_SECONDS: float = 25
    SEARCH_TIMEOUT_SECONDS: float = 15

    # Pipeline limits
    MAX_AGENT_STEPS: int = 5
    CLASSIFIER_MAX_CHARS: int = 2000
    SPAN_MAX_TEXT_LENGTH: int = 12000
    VERIFY_CONTEXT_MAX_CHARS: int = 5000
    DEFAULT_INVESTIGATION_TYPE: str = "claim-verification"

    # Redis: result cache, LLM cache and investigation history
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CACHE_ENABLED: bool = True
    CACHE_TTL: int = 86400  # 24 hours in seconds
    LLM_CACHE_ENABLED: bool = False
    LLM_CACHE_SEMANTIC: bool = False
    REDIS_SEMANTIC_INDEX: str = "checkmate_semantic_cache"
    HISTORY_LIMIT: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def resolve_model(self, requested: Optional[str] = None) -> str:
        """Return the requested model if it is allowed, otherwise the default."""
        if requested and requested in self.AVAILABLE_MODELS:
            return requested
        return self.LLM_MODEL_NAME


config = Config()
