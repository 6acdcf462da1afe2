"""
Daily question quota

Each user may ask ``max_daily_questions`` questions per calendar day (the day
is taken in ``quota_timezone``). Counters are scoped by date, so the first
question of a new day simply lands on a new row.

The increment is atomic (see ``DailyCounterRepository.try_increment``); a
request that loses the race for the last slot is refused instead of pushing
the counter past the limit.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import AppConfig
from ..core.constants import local_day, utc_now
from ..database.repositories import DailyCounterRepository

logger = logging.getLogger(__name__)


@dataclass
class QuotaStatus:
    email: str
    questions_used: int
    max_daily_questions: int

    @property
    def questions_remaining(self) -> int:
        return max(self.max_daily_questions - self.questions_used, 0)

    @property
    def limit_reached(self) -> bool:
        return self.questions_used >= self.max_daily_questions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "questionsUsed": self.questions_used,
            "questionsRemaining": self.questions_remaining,
            "maxDailyQuestions": self.max_daily_questions,
            "limitReached": self.limit_reached,
        }


class QuotaTracker:
    def __init__(self, db: Session, config: AppConfig):
        self.db = db
        self.limit = config.max_daily_questions
        self.timezone = config.quota_timezone
        self.counters = DailyCounterRepository(db)

    def day_for(self, now: Optional[datetime] = None) -> date:
        return local_day(now or utc_now(), self.timezone)

    def status(self, email: str, now: Optional[datetime] = None) -> QuotaStatus:
        used = self.counters.get_count(email, self.day_for(now))
        return QuotaStatus(email=email, questions_used=min(used, self.limit), max_daily_questions=self.limit)

    def try_consume(self, email: str, now: Optional[datetime] = None) -> Optional[QuotaStatus]:
        """
        Count one question for today. The increment itself is not committed:
        the caller commits it together with the exchange it pays for. Call it
        before staging other writes, since creating the day's row commits.

        Returns:
            The status after the increment, or None if the limit was reached.
        """
        day = self.day_for(now)
        self.counters.ensure_row(email, day)
        new_count = self.counters.try_increment(email, day, self.limit)
        if new_count is None:
            logger.info("Daily quota reached", extra={"email": email, "day": day.isoformat()})
            return None
        return QuotaStatus(email=email, questions_used=new_count, max_daily_questions=self.limit)
