"""
LMS handoff: user registration through the webhook

The embedding LMS posts the user's email when the chatbot is opened. The user
row is created or its ``last_access`` refreshed. A student enrolled in no
training session at all is auto-enrolled in the earliest-created training
session that is open now, so a first visit lands on available scenarios.
"""
import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import AppConfig
from ..core.constants import utc_now
from ..database.repositories import TrainingSessionRepository, UserRepository

logger = logging.getLogger(__name__)


def webhook_signature(payload: Any, secret: str) -> str:
    """sha256 hex of the compact JSON payload followed by the secret"""
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256((body + secret).encode("utf-8")).hexdigest()


def verify_webhook_signature(payload: Any, signature: Optional[str], secret: str) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(webhook_signature(payload, secret), signature.strip().lower())


class RegistrationService:
    def __init__(self, db: Session, config: AppConfig):
        self.config = config
        self.users = UserRepository(db)
        self.training_sessions = TrainingSessionRepository(db)

    def register(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or utc_now()
        user, is_new = self.users.upsert_access(email, first_name, last_name)

        enrolled_in = None
        if not self.config.is_teacher(email) and not self.training_sessions.is_student_enrolled_anywhere(email):
            training = self.training_sessions.get_first_active(now)
            if training is not None:
                self.training_sessions.add_student(training.id, email)
                enrolled_in = training.id
                logger.info(
                    "Student auto-enrolled in open training session",
                    extra={"email": email, "training_session_id": training.id}
                )

        return {
            "status": "success",
            "email": user.email,
            "isNewUser": is_new,
            "lastAccess": user.last_access,
            "autoEnrolledTrainingSessionId": enrolled_in,
        }
