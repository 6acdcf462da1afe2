"""
Shared constants and time helpers.

All timestamps persisted by the service are timezone-aware UTC. SQLite drops
tzinfo on read, so values coming back from the database go through
``ensure_utc`` before any comparison.
"""
from datetime import datetime, timezone, date
from typing import Optional
from zoneinfo import ZoneInfo

# Quota
DEFAULT_MAX_DAILY_QUESTIONS = 20
DEFAULT_QUOTA_TIMEZONE = "Europe/Paris"

# ECOS
DEFAULT_ECOS_SESSION_MINUTES = 8
SESSION_STATUS_IN_PROGRESS = "in_progress"
SESSION_STATUS_COMPLETED = "completed"
SESSION_STATUSES = (SESSION_STATUS_IN_PROGRESS, SESSION_STATUS_COMPLETED)

COMPLETION_MANUAL = "manual"
COMPLETION_EVALUATION = "evaluation"
COMPLETION_EXPIRED = "expired"

MESSAGE_ROLE_USER = "user"
MESSAGE_ROLE_ASSISTANT = "assistant"

# Rubric used when a scenario has no evaluation criteria
DEFAULT_EVALUATION_CRITERIA = {
    "communication": {"name": "Communication", "maxScore": 4},
    "anamnese": {"name": "Anamnèse", "maxScore": 4},
    "examen": {"name": "Examen clinique", "maxScore": 4},
    "raisonnement": {"name": "Raisonnement clinique", "maxScore": 4},
    "prise_en_charge": {"name": "Prise en charge", "maxScore": 4},
}

# Cache
DEFAULT_CACHE_MAX_SIZE = 500
DEFAULT_CACHE_TTL_SECONDS = 3600

# Chat history
DEFAULT_HISTORY_LIMIT = 50


def utc_now() -> datetime:
    """Timezone-aware current UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_day(now: datetime, tz_name: str) -> date:
    """Calendar day of ``now`` in the given IANA timezone."""
    return ensure_utc(now).astimezone(ZoneInfo(tz_name)).date()
