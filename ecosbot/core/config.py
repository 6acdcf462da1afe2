"""
Application configuration

Every tunable of the service lives in ``AppConfig``. The instance is built
once at startup (``AppConfig.from_env()``) and handed to ``create_app``;
routers read it through the ``get_config`` dependency instead of module
globals.

Environment variables:
    DATABASE_URL                  SQLAlchemy URL (default: sqlite:///./ecosbot.db)
    MAX_DAILY_QUESTIONS           Questions per user per day (default: 20)
    QUOTA_TIMEZONE                Timezone defining the calendar day (default: Europe/Paris)
    ECOS_SESSION_MINUTES          Exam duration in minutes (default: 8)
    REQUIRE_TRAINING_SESSION      Restrict students to enrolled, open training sessions (default: true)
    ADMIN_EMAILS / TEACHER_EMAILS Comma separated allowlists
    WEBHOOK_SECRET                Enables signature check on /api/webhook
    LLM_PROVIDER                  openai | ollama | mock (default: openai)
    OPENAI_API_KEY, OPENAI_MODEL, EVALUATION_MODEL
    OLLAMA_BASE_URL, OLLAMA_MODEL
    PINECONE_API_KEY, PINECONE_INDEX_NAME, PINECONE_NAMESPACE, RETRIEVAL_TOP_K
    REDIS_URL, CACHE_TTL_SECONDS
    SESSION_SWEEP_ENABLED, SESSION_SWEEP_INTERVAL_SECONDS
    ALLOWED_ORIGINS, LOG_LEVEL, HISTORY_LIMIT
"""
import os
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_MAX_DAILY_QUESTIONS,
    DEFAULT_QUOTA_TIMEZONE,
    DEFAULT_ECOS_SESSION_MINUTES,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_HISTORY_LIMIT,
)


def _split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class AppConfig(BaseModel):
    """Runtime configuration injected at startup"""

    database_url: str = "sqlite:///./ecosbot.db"

    # Quota
    max_daily_questions: int = Field(default=DEFAULT_MAX_DAILY_QUESTIONS, gt=0)
    quota_timezone: str = DEFAULT_QUOTA_TIMEZONE
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, gt=0)

    # ECOS
    ecos_session_minutes: int = Field(default=DEFAULT_ECOS_SESSION_MINUTES, gt=0)
    require_training_session: bool = True
    session_sweep_enabled: bool = True
    session_sweep_interval_seconds: int = Field(default=60, gt=0)

    # Identities
    admin_emails: List[str] = Field(default_factory=list)
    teacher_emails: List[str] = Field(default_factory=list)
    webhook_secret: Optional[str] = None

    # LLM
    llm_provider: str = "openai"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    evaluation_model: str = "gpt-4o"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    llm_timeout_seconds: float = 60.0

    # Retrieval
    pinecone_api_key: Optional[str] = None
    pinecone_index_name: str = "learnworlds-courses"
    pinecone_namespace: str = "default"
    embedding_model: str = "text-embedding-3-small"
    retrieval_top_k: int = Field(default=3, gt=0)

    # Cache
    redis_url: Optional[str] = None
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS

    # HTTP
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @field_validator("admin_emails", "teacher_emails")
    @classmethod
    def _normalize_emails(cls, value: List[str]) -> List[str]:
        return [email.strip().lower() for email in value if email and email.strip()]

    @field_validator("llm_provider")
    @classmethod
    def _normalize_provider(cls, value: str) -> str:
        return value.strip().lower()

    def is_teacher(self, email: Optional[str]) -> bool:
        """Admins are implicitly teachers."""
        if not email:
            return False
        return email.strip().lower() in self.teacher_emails + self.admin_emails

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build configuration from environment variables."""
        values = {
            "database_url": os.getenv("DATABASE_URL", "sqlite:///./ecosbot.db"),
            "max_daily_questions": int(os.getenv("MAX_DAILY_QUESTIONS", DEFAULT_MAX_DAILY_QUESTIONS)),
            "quota_timezone": os.getenv("QUOTA_TIMEZONE", DEFAULT_QUOTA_TIMEZONE),
            "history_limit": int(os.getenv("HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT)),
            "ecos_session_minutes": int(os.getenv("ECOS_SESSION_MINUTES", DEFAULT_ECOS_SESSION_MINUTES)),
            "require_training_session": _env_bool("REQUIRE_TRAINING_SESSION", True),
            "session_sweep_enabled": _env_bool("SESSION_SWEEP_ENABLED", True),
            "session_sweep_interval_seconds": int(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "60")),
            "admin_emails": _split_list(os.getenv("ADMIN_EMAILS")),
            "teacher_emails": _split_list(os.getenv("TEACHER_EMAILS")),
            "webhook_secret": os.getenv("WEBHOOK_SECRET") or None,
            "llm_provider": os.getenv("LLM_PROVIDER", "openai"),
            "openai_api_key": os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_KEY") or None,
            "openai_model": os.getenv("OPENAI_MODEL", "gpt-4o"),
            "evaluation_model": os.getenv("EVALUATION_MODEL", os.getenv("OPENAI_MODEL", "gpt-4o")),
            "ollama_base_url": os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            "ollama_model": os.getenv("OLLAMA_MODEL", "llama3"),
            "llm_timeout_seconds": float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
            "pinecone_api_key": os.getenv("PINECONE_API_KEY") or None,
            "pinecone_index_name": os.getenv("PINECONE_INDEX_NAME", "learnworlds-courses"),
            "pinecone_namespace": os.getenv("PINECONE_NAMESPACE", "default"),
            "embedding_model": os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            "retrieval_top_k": int(os.getenv("RETRIEVAL_TOP_K", "3")),
            "redis_url": os.getenv("REDIS_URL") or None,
            "cache_ttl_seconds": int(os.getenv("CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS)),
            "allowed_origins": _split_list(os.getenv("ALLOWED_ORIGINS")) or ["*"],
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }
        return cls(**values)
