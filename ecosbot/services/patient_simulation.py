"""
Patient turns of an ECOS session

A turn is accepted only while the session is in progress and before its
deadline. The student's message and the patient's answer are stored together
or not at all.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..agents.simulators import PatientSimulatorAgent
from ..api.exceptions import DatabaseOperationError, LLMServiceError, SessionNotActiveError
from ..core.constants import SESSION_STATUS_IN_PROGRESS, utc_now
from ..database.repositories import EcosMessageRepository
from ..database.transaction import transaction
from .session_lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)


class PatientSimulationService:
    def __init__(self, db: Session, lifecycle: SessionLifecycleManager, llm_provider, retriever=None):
        self.db = db
        self.lifecycle = lifecycle
        self.messages = EcosMessageRepository(db)
        self.agent = PatientSimulatorAgent(llm_provider, message_repo=self.messages, retriever=retriever)

    async def reply(
        self,
        session_id: str,
        email: str,
        query: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Raises:
            SessionNotFoundError, AuthorizationError
            SessionNotActiveError: session completed or expired
            LLMServiceError: the patient answer could not be generated
        """
        now = now or utc_now()
        session = self.lifecycle.get(session_id, email)
        session = await self.lifecycle.check_expiry(session, now)
        if session.status != SESSION_STATUS_IN_PROGRESS:
            raise SessionNotActiveError(session.id, session.completion_reason)

        try:
            result = await self.agent.interact(session.scenario, query, session_id=session.id)
        except Exception as e:
            logger.error(f"Patient simulation failed: {e}", exc_info=True, extra={"session_id": session.id})
            raise LLMServiceError("patient simulation", str(e))

        logger.info("Patient answer generated", extra={"session_id": session.id, **result["metadata"]})

        # The session may have been ended while the answer was generated
        session = self.lifecycle.sessions.get_by_id(session.id, refresh=True)
        if session.status != SESSION_STATUS_IN_PROGRESS:
            raise SessionNotActiveError(session.id, session.completion_reason)

        try:
            with transaction(self.db, "save patient turn"):
                _, answer = self.messages.add_turn(session.id, query, result["message"])
        except SQLAlchemyError as e:
            raise DatabaseOperationError("save patient turn", str(e))

        return {
            "status": "success",
            "sessionId": session.id,
            "response": answer.content,
            "timestamp": answer.timestamp,
            "secondsRemaining": self.lifecycle.seconds_remaining(session, now),
        }
