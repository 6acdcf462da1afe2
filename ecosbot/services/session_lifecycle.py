"""
ECOS Session Lifecycle Manager

States: ``in_progress -> completed``. A session completes exactly once, for
one of three reasons:

- manual: the student (or a teacher) ends it
- evaluation: an evaluation is requested while it is still running
- expired: the time limit elapsed (``ecos_session_minutes``, 8 by default)

The server is authoritative on time. Every access checks the deadline
(``check_expiry``) and a periodic sweep (``services.sweeper``) closes
abandoned sessions. An expired session gets ``end_time = start_time + limit``,
not the time at which the expiry was noticed.

Completion triggers evaluation. Evaluation failures are logged and never undo
the completion; the report can be requested again later.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..api.exceptions import (
    AuthorizationError,
    EvaluationFailedError,
    ScenarioAccessDeniedError,
    ScenarioNotFoundError,
    SessionNotFoundError,
)
from ..core import metrics
from ..core.config import AppConfig
from ..core.constants import (
    COMPLETION_EXPIRED,
    SESSION_STATUS_IN_PROGRESS,
    ensure_utc,
    utc_now,
)
from ..database.models import EcosSessionDB
from ..database.repositories import EcosSessionRepository, ScenarioRepository
from .access import ScenarioAccessPolicy

logger = logging.getLogger(__name__)


class SessionLifecycleManager:
    def __init__(self, db: Session, config: AppConfig, evaluation_engine=None):
        self.db = db
        self.config = config
        self.evaluation_engine = evaluation_engine
        self.sessions = EcosSessionRepository(db)
        self.scenarios = ScenarioRepository(db)
        self.access = ScenarioAccessPolicy(db, config)

    @property
    def time_limit(self) -> timedelta:
        return timedelta(minutes=self.config.ecos_session_minutes)

    def deadline(self, session: EcosSessionDB) -> datetime:
        return ensure_utc(session.start_time) + self.time_limit

    def is_overdue(self, session: EcosSessionDB, now: Optional[datetime] = None) -> bool:
        return (
            session.status == SESSION_STATUS_IN_PROGRESS
            and ensure_utc(now or utc_now()) >= self.deadline(session)
        )

    def seconds_remaining(self, session: EcosSessionDB, now: Optional[datetime] = None) -> int:
        if session.status != SESSION_STATUS_IN_PROGRESS:
            return 0
        remaining = (self.deadline(session) - ensure_utc(now or utc_now())).total_seconds()
        return max(int(remaining), 0)

    def get(self, session_id: str, email: Optional[str] = None) -> EcosSessionDB:
        """
        Load a session; when ``email`` is given it must be the session's
        student or a teacher.

        Raises:
            SessionNotFoundError, AuthorizationError
        """
        session = self.sessions.get_by_id(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if email is not None and session.student_email != email and not self.config.is_teacher(email):
            raise AuthorizationError("Session belongs to another student")
        return session

    def start(self, scenario_id: str, student_email: str, now: Optional[datetime] = None) -> EcosSessionDB:
        """
        Open a session for a scenario the student may access.

        Raises:
            ScenarioNotFoundError, ScenarioAccessDeniedError
        """
        now = now or utc_now()
        if self.scenarios.get_by_id(scenario_id) is None:
            raise ScenarioNotFoundError(scenario_id)

        if not self.access.can_start(student_email, scenario_id, now):
            logger.info(
                "Session start refused: scenario not in an open training session",
                extra={"student_email": student_email, "scenario_id": scenario_id}
            )
            raise ScenarioAccessDeniedError(scenario_id)

        training = self.access.training_session_for(student_email, scenario_id, now)
        session = self.sessions.create(
            scenario_id=scenario_id,
            student_email=student_email,
            training_session_id=training.id if training else None,
            start_time=now,
        )
        metrics.ecos_sessions_started_total.inc()
        logger.info(
            "ECOS session started",
            extra={"session_id": session.id, "scenario_id": scenario_id, "student_email": student_email}
        )
        return session

    async def complete(
        self,
        session: EcosSessionDB,
        reason: str,
        now: Optional[datetime] = None,
        evaluate: bool = True,
    ) -> Tuple[EcosSessionDB, bool]:
        """
        Complete ``session`` unless it already is.

        Returns:
            (refreshed session, True if this call performed the transition)
        """
        end_time = ensure_utc(now or utc_now())
        if reason == COMPLETION_EXPIRED:
            end_time = self.deadline(session)

        transitioned = self.sessions.complete_if_in_progress(session.id, end_time, reason)
        session = self.sessions.get_by_id(session.id, refresh=True)

        if not transitioned:
            return session, False

        metrics.ecos_sessions_completed_total.labels(reason=reason).inc()
        logger.info(f"ECOS session completed ({reason})", extra={"session_id": session.id})

        if evaluate and self.evaluation_engine is not None:
            try:
                await self.evaluation_engine.evaluate(session)
            except EvaluationFailedError as e:
                logger.warning(
                    f"Evaluation after completion failed, report can be requested later: {e.detail}",
                    extra={"session_id": session.id}
                )
        return session, True

    async def check_expiry(self, session: EcosSessionDB, now: Optional[datetime] = None) -> EcosSessionDB:
        """Complete the session first if its time is up."""
        if self.is_overdue(session, now):
            session, _ = await self.complete(session, COMPLETION_EXPIRED, now)
        return session

    async def expire_overdue(self, now: Optional[datetime] = None) -> List[str]:
        """
        Complete every in-progress session past its deadline.

        Returns:
            Ids of the sessions this call completed.
        """
        now = ensure_utc(now or utc_now())
        expired = []
        for session in self.sessions.get_in_progress_started_before(now - self.time_limit):
            session, transitioned = await self.complete(session, COMPLETION_EXPIRED, now)
            if transitioned:
                expired.append(session.id)

        metrics.ecos_sessions_active.set(self.sessions.count_by_status().get(SESSION_STATUS_IN_PROGRESS, 0))
        if expired:
            logger.info(f"Expired {len(expired)} overdue ECOS sessions")
        return expired
