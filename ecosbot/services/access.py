"""
Scenario visibility for students

A scenario is visible to a student iff the student's email is on the roster
of a training session that contains the scenario and now lies within
[start_date, end_date]. With ``require_training_session`` disabled every
scenario is visible. Teachers and admins are never scoped.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import AppConfig
from ..core.constants import utc_now
from ..database.models import EcosScenarioDB, TrainingSessionDB
from ..database.repositories import ScenarioRepository, TrainingSessionRepository

logger = logging.getLogger(__name__)


class ScenarioAccessPolicy:
    def __init__(self, db: Session, config: AppConfig):
        self.config = config
        self.scenarios = ScenarioRepository(db)
        self.training_sessions = TrainingSessionRepository(db)

    def is_privileged(self, email: str) -> bool:
        return self.config.is_teacher(email)

    def open_training_sessions(self, email: str, now: Optional[datetime] = None) -> List[TrainingSessionDB]:
        return self.training_sessions.get_active_for_student(email, now or utc_now())

    def available_scenarios(
        self, email: str, now: Optional[datetime] = None
    ) -> Tuple[List[EcosScenarioDB], List[TrainingSessionDB]]:
        """
        Returns:
            (visible scenarios, open training sessions of the student)
        """
        now = now or utc_now()
        open_sessions = self.open_training_sessions(email, now)

        if self.is_privileged(email) or not self.config.require_training_session:
            return self.scenarios.get_all(), open_sessions

        scenario_ids: Dict[str, None] = {}
        for training in open_sessions:
            for link in training.scenario_links:
                scenario_ids[link.scenario_id] = None

        scenarios = self.scenarios.get_by_ids(scenario_ids)
        scenarios.sort(key=lambda s: s.created_at, reverse=True)
        return scenarios, open_sessions

    def training_session_for(
        self, email: str, scenario_id: str, now: Optional[datetime] = None
    ) -> Optional[TrainingSessionDB]:
        """Open training session through which the student reaches the scenario."""
        for training in self.open_training_sessions(email, now):
            if any(link.scenario_id == scenario_id for link in training.scenario_links):
                return training
        return None

    def can_start(self, email: str, scenario_id: str, now: Optional[datetime] = None) -> bool:
        if self.is_privileged(email) or not self.config.require_training_session:
            return True
        return self.training_session_for(email, scenario_id, now) is not None
