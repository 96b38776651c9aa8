"""Application configuration settings."""
from pydantic import field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache

from medsafe.constants import CacheTTL


class Settings(BaseSettings):
    """Application settings."""

    APP_NAME: str = "Medication Safety Analysis Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis (per-client HTTP rate limit only)
    REDIS_URL: str = "redis://localhost:6379/0"

    # External registries
    OPENFDA_BASE_URL: str = "https://api.fda.gov/drug"
    OPENFDA_API_KEY: str = ""
    RXNAV_BASE_URL: str = "https://rxnav.nlm.nih.gov/REST"

    # Generative completion
    LLM_PROVIDER: str = "gemini"  # gemini | ollama
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    OLLAMA_HOST: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_OUTPUT_TOKENS: int = 2048

    # Timeouts (seconds)
    UPSTREAM_TIMEOUT_SECONDS: float = 5.0
    COMPLETION_TIMEOUT_SECONDS: float = 25.0
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Cache / idempotency
    # Defaults live in constants.CacheTTL
    MEDICATION_CACHE_TTL_SECONDS: int = CacheTTL.MEDICATION
    INTERACTION_CACHE_TTL_SECONDS: int = CacheTTL.INTERACTION_PAIR
    LABEL_CACHE_TTL_SECONDS: int = CacheTTL.LABEL_TEXT
    IDEMPOTENCY_TTL_SECONDS: int = CacheTTL.IDEMPOTENCY
    CACHE_SWEEP_INTERVAL_SECONDS: float = 300.0

    # Rate limiting
    SOURCE_MIN_INTERVAL_SECONDS: float = 1.0
    RATE_LIMIT_REQUESTS_PER_MIN: int = 60

    # Audit sink
    AUDIT_LOG_PATH: str = "./logs/audit.jsonl"

    MAX_MEDICATIONS: int = 10

    @field_validator("LLM_TEMPERATURE")
    @classmethod
    def low_variance_only(cls, v: float) -> float:
        if not 0.0 <= v <= 0.4:
            raise ValueError("LLM_TEMPERATURE must be between 0.0 and 0.4")
        return v

    @field_validator("LLM_PROVIDER")
    @classmethod
    def known_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("gemini", "ollama"):
            raise ValueError("LLM_PROVIDER must be 'gemini' or 'ollama'")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
