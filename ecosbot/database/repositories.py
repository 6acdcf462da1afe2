"""
Repository pattern for database operations

Provides:
- UserRepository: LMS users (upsert on webhook)
- DailyCounterRepository: per-day question counters with atomic increment
- ExchangeRepository: course assistant Q&A history
- ScenarioRepository: ECOS scenarios
- TrainingSessionRepository: training windows, their scenarios and rosters
- EcosSessionRepository: exam sessions and their single state transition
- EcosMessageRepository: exam transcripts
- EcosEvaluationRepository: per-criterion scores and reports

TRANSACTION MANAGEMENT:
Single-row writes commit inside the repository. Methods documented as
"does not commit" are meant to be combined inside
``database.transaction.transaction`` by the calling service.
"""
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func, select, update, delete, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..core.constants import (
    utc_now,
    ensure_utc,
    SESSION_STATUS_IN_PROGRESS,
    SESSION_STATUS_COMPLETED,
    MESSAGE_ROLE_USER,
    MESSAGE_ROLE_ASSISTANT,
)
from .models import (
    UserDB,
    DailyCounterDB,
    ExchangeDB,
    EcosScenarioDB,
    TrainingSessionDB,
    TrainingSessionScenarioDB,
    TrainingSessionStudentDB,
    EcosSessionDB,
    EcosMessageDB,
    EcosEvaluationDB,
    EcosReportDB,
)
from .transaction import transactional

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for LMS users"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_by_email(self, email: str) -> Optional[UserDB]:
        return self.db.execute(select(UserDB).where(UserDB.email == email)).scalar_one_or_none()

    def upsert_access(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Tuple[UserDB, bool]:
        """
        Create the user or refresh ``last_access`` (and names when given).

        Returns:
            (user, is_new_user)
        """
        user = self.get_by_email(email)
        if user is None:
            try:
                user = UserDB(email=email, first_name=first_name, last_name=last_name, last_access=utc_now())
                self.db.add(user)
                self.db.commit()
                return user, True
            except IntegrityError:
                # Concurrent webhook for the same email created it first
                self.db.rollback()
                user = self.get_by_email(email)

        user.last_access = utc_now()
        if first_name:
            user.first_name = first_name
        if last_name:
            user.last_name = last_name
        self.db.commit()
        return user, False

    def count(self) -> int:
        return self.db.execute(select(func.count(UserDB.id))).scalar_one()


class DailyCounterRepository:
    """
    Repository for daily question counters.

    The increment is a single conditional UPDATE:
        UPDATE daily_counters SET count = count + 1
        WHERE email = :email AND day = :day AND count < :limit
        RETURNING count
    so concurrent requests can neither lose an update nor push the counter
    past the limit.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get(self, email: str, day: date) -> Optional[DailyCounterDB]:
        stmt = select(DailyCounterDB).where(DailyCounterDB.email == email, DailyCounterDB.day == day)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_count(self, email: str, day: date) -> int:
        stmt = select(DailyCounterDB.count).where(DailyCounterDB.email == email, DailyCounterDB.day == day)
        return self.db.execute(stmt).scalar_one_or_none() or 0

    def ensure_row(self, email: str, day: date) -> None:
        """Create today's row with count=0 if it does not exist yet (commits)."""
        if self.get(email, day) is not None:
            return
        try:
            self.db.add(DailyCounterDB(email=email, day=day, count=0))
            self.db.commit()
        except IntegrityError:
            # Another request inserted the row first; that row is what we want
            self.db.rollback()

    def try_increment(self, email: str, day: date, limit: int) -> Optional[int]:
        """
        Atomically add one question if the counter is below ``limit``.

        Does not commit. The row must exist (``ensure_row``).

        Returns:
            The new count, or None when the limit is already reached.
        """
        stmt = (
            update(DailyCounterDB)
            .where(
                DailyCounterDB.email == email,
                DailyCounterDB.day == day,
                DailyCounterDB.count < limit,
            )
            .values(count=DailyCounterDB.count + 1, updated_at=utc_now())
            .returning(DailyCounterDB.count)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).scalar_one_or_none()


class ExchangeRepository:
    """Repository for course assistant exchanges (append-only)"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def add(self, email: str, question: str, response: str) -> ExchangeDB:
        """Stage a new exchange. Does not commit."""
        exchange = ExchangeDB(email=email, question=question, response=response, timestamp=utc_now())
        self.db.add(exchange)
        self.db.flush()
        return exchange

    def get_by_email(self, email: str, limit: int = 50) -> List[ExchangeDB]:
        """Most recent exchanges first"""
        stmt = (
            select(ExchangeDB)
            .where(ExchangeDB.email == email)
            .order_by(ExchangeDB.timestamp.desc(), ExchangeDB.created_at.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_by_email(self, email: str) -> int:
        return self.db.execute(
            select(func.count(ExchangeDB.id)).where(ExchangeDB.email == email)
        ).scalar_one()


class ScenarioRepository:
    """Repository for ECOS scenarios"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        title: str,
        description: str,
        patient_prompt: str,
        evaluation_criteria: Dict,
        created_by: str,
        pinecone_index: Optional[str] = None,
    ) -> EcosScenarioDB:
        try:
            scenario = EcosScenarioDB(
                title=title,
                description=description,
                patient_prompt=patient_prompt,
                evaluation_criteria=evaluation_criteria or {},
                created_by=created_by,
                pinecone_index=pinecone_index,
            )
            self.db.add(scenario)
            self.db.commit()
            self.db.refresh(scenario)
            return scenario
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create scenario: {e}", extra={"created_by": created_by})
            raise

    def get_by_id(self, scenario_id: str) -> Optional[EcosScenarioDB]:
        return self.db.get(EcosScenarioDB, scenario_id)

    def get_all(self, created_by: Optional[str] = None) -> List[EcosScenarioDB]:
        stmt = select(EcosScenarioDB)
        if created_by:
            stmt = stmt.where(EcosScenarioDB.created_by == created_by)
        return list(self.db.execute(stmt.order_by(EcosScenarioDB.created_at.desc())).scalars().all())

    def get_by_ids(self, scenario_ids: Iterable[str]) -> List[EcosScenarioDB]:
        ids = list(scenario_ids)
        if not ids:
            return []
        stmt = select(EcosScenarioDB).where(EcosScenarioDB.id.in_(ids))
        return list(self.db.execute(stmt).scalars().all())

    def update(self, scenario_id: str, **fields) -> Optional[EcosScenarioDB]:
        scenario = self.get_by_id(scenario_id)
        if scenario is None:
            return None
        try:
            for key, value in fields.items():
                if value is not None:
                    setattr(scenario, key, value)
            self.db.commit()
            self.db.refresh(scenario)
            return scenario
        except Exception:
            self.db.rollback()
            raise

    def is_referenced(self, scenario_id: str) -> bool:
        """True if any exam session was run on this scenario"""
        return self.db.query(
            exists().where(EcosSessionDB.scenario_id == scenario_id)
        ).scalar()

    def delete(self, scenario_id: str) -> bool:
        scenario = self.get_by_id(scenario_id)
        if scenario is None:
            return False
        try:
            self.db.delete(scenario)
            self.db.commit()
            return True
        except Exception:
            self.db.rollback()
            raise

    def count(self) -> int:
        return self.db.execute(select(func.count(EcosScenarioDB.id))).scalar_one()


class TrainingSessionRepository:
    """Repository for training sessions, their scenario links and rosters"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _query(self):
        return select(TrainingSessionDB).options(
            selectinload(TrainingSessionDB.scenario_links),
            selectinload(TrainingSessionDB.students),
        )

    @transactional("create training session")
    def create(
        self,
        title: str,
        start_date: datetime,
        end_date: datetime,
        created_by: str,
        description: Optional[str] = None,
        scenario_ids: Iterable[str] = (),
        student_emails: Iterable[str] = (),
    ) -> TrainingSessionDB:
        training = TrainingSessionDB(
            title=title,
            description=description,
            start_date=start_date,
            end_date=end_date,
            created_by=created_by,
        )
        self.db.add(training)
        self.db.flush()
        self._replace_scenarios(training, scenario_ids)
        self._replace_students(training, student_emails)
        return training

    def get_by_id(self, training_session_id: str) -> Optional[TrainingSessionDB]:
        stmt = self._query().where(TrainingSessionDB.id == training_session_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_all(self, created_by: Optional[str] = None) -> List[TrainingSessionDB]:
        stmt = self._query()
        if created_by:
            stmt = stmt.where(TrainingSessionDB.created_by == created_by)
        return list(self.db.execute(stmt.order_by(TrainingSessionDB.start_date.desc())).scalars().all())

    @transactional("update training session")
    def update(
        self,
        training: TrainingSessionDB,
        scenario_ids: Optional[Iterable[str]] = None,
        student_emails: Optional[Iterable[str]] = None,
        **fields,
    ) -> TrainingSessionDB:
        for key, value in fields.items():
            if value is not None:
                setattr(training, key, value)
        if scenario_ids is not None:
            self._replace_scenarios(training, scenario_ids)
        if student_emails is not None:
            self._replace_students(training, student_emails)
        self.db.flush()
        return training

    def delete(self, training_session_id: str) -> bool:
        training = self.get_by_id(training_session_id)
        if training is None:
            return False
        try:
            self.db.delete(training)
            self.db.commit()
            return True
        except Exception:
            self.db.rollback()
            raise

    def _replace_scenarios(self, training: TrainingSessionDB, scenario_ids: Iterable[str]) -> None:
        training.scenario_links.clear()
        self.db.flush()
        for scenario_id in dict.fromkeys(scenario_ids):
            training.scenario_links.append(TrainingSessionScenarioDB(scenario_id=scenario_id))

    def _replace_students(self, training: TrainingSessionDB, student_emails: Iterable[str]) -> None:
        training.students.clear()
        self.db.flush()
        for email in dict.fromkeys(student_emails):
            training.students.append(TrainingSessionStudentDB(student_email=email))

    def get_for_student(self, student_email: str) -> List[TrainingSessionDB]:
        """Every training session whose roster contains the student"""
        stmt = (
            self._query()
            .join(TrainingSessionStudentDB, TrainingSessionStudentDB.training_session_id == TrainingSessionDB.id)
            .where(TrainingSessionStudentDB.student_email == student_email)
        )
        return list(self.db.execute(stmt).scalars().unique().all())

    def get_active_for_student(self, student_email: str, now: datetime) -> List[TrainingSessionDB]:
        """Enrolled training sessions whose window contains ``now``"""
        now = ensure_utc(now)
        return [
            training
            for training in self.get_for_student(student_email)
            if ensure_utc(training.start_date) <= now <= ensure_utc(training.end_date)
        ]

    def get_first_active(self, now: datetime) -> Optional[TrainingSessionDB]:
        """Earliest-created training session open at ``now``"""
        now = ensure_utc(now)
        stmt = self._query().order_by(TrainingSessionDB.created_at.asc())
        for training in self.db.execute(stmt).scalars().all():
            if ensure_utc(training.start_date) <= now <= ensure_utc(training.end_date):
                return training
        return None

    def is_student_enrolled_anywhere(self, student_email: str) -> bool:
        return self.db.query(
            exists().where(TrainingSessionStudentDB.student_email == student_email)
        ).scalar()

    def add_student(self, training_session_id: str, student_email: str) -> None:
        try:
            self.db.add(TrainingSessionStudentDB(training_session_id=training_session_id, student_email=student_email))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()

    def count(self) -> int:
        return self.db.execute(select(func.count(TrainingSessionDB.id))).scalar_one()


class EcosSessionRepository:
    """Repository for ECOS exam sessions"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        scenario_id: str,
        student_email: str,
        training_session_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
    ) -> EcosSessionDB:
        try:
            session = EcosSessionDB(
                scenario_id=scenario_id,
                student_email=student_email,
                training_session_id=training_session_id,
                start_time=start_time or utc_now(),
                status=SESSION_STATUS_IN_PROGRESS,
            )
            self.db.add(session)
            self.db.commit()
            self.db.refresh(session)
            return session
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create ECOS session: {e}", extra={
                "scenario_id": scenario_id,
                "student_email": student_email,
            })
            raise

    def get_by_id(self, session_id: str, refresh: bool = False) -> Optional[EcosSessionDB]:
        return self.db.get(EcosSessionDB, session_id, populate_existing=refresh)

    def get_by_student(self, student_email: str) -> List[EcosSessionDB]:
        stmt = (
            select(EcosSessionDB)
            .options(selectinload(EcosSessionDB.scenario))
            .where(EcosSessionDB.student_email == student_email)
            .order_by(EcosSessionDB.start_time.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_all(self, limit: int = 200) -> List[EcosSessionDB]:
        stmt = (
            select(EcosSessionDB)
            .options(selectinload(EcosSessionDB.scenario))
            .order_by(EcosSessionDB.start_time.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def complete_if_in_progress(self, session_id: str, end_time: datetime, reason: str) -> bool:
        """
        Move the session to ``completed`` unless another request already did.

        The status check and the write are the same UPDATE statement, so the
        transition happens exactly once however many requests race for it.

        Returns:
            True if this call performed the transition.
        """
        try:
            stmt = (
                update(EcosSessionDB)
                .where(
                    EcosSessionDB.id == session_id,
                    EcosSessionDB.status == SESSION_STATUS_IN_PROGRESS,
                )
                .values(
                    status=SESSION_STATUS_COMPLETED,
                    end_time=end_time,
                    completion_reason=reason,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            self.db.commit()
            return result.rowcount == 1
        except Exception:
            self.db.rollback()
            raise

    def get_in_progress_started_before(self, cutoff: datetime) -> List[EcosSessionDB]:
        """In-progress sessions started at or before ``cutoff`` (i.e. over time)"""
        cutoff = ensure_utc(cutoff)
        stmt = select(EcosSessionDB).where(EcosSessionDB.status == SESSION_STATUS_IN_PROGRESS)
        return [
            session
            for session in self.db.execute(stmt).scalars().all()
            if ensure_utc(session.start_time) <= cutoff
        ]

    def count_by_status(self) -> Dict[str, int]:
        stmt = select(EcosSessionDB.status, func.count(EcosSessionDB.id)).group_by(EcosSessionDB.status)
        counts = {SESSION_STATUS_IN_PROGRESS: 0, SESSION_STATUS_COMPLETED: 0}
        for status, count in self.db.execute(stmt).all():
            counts[status] = count
        return counts


class EcosMessageRepository:
    """Repository for exam transcripts"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_by_session(self, session_id: str) -> List[EcosMessageDB]:
        stmt = (
            select(EcosMessageDB)
            .where(EcosMessageDB.session_id == session_id)
            .order_by(EcosMessageDB.sequence.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_turn(self, session_id: str, student_message: str, patient_message: str) -> Tuple[EcosMessageDB, EcosMessageDB]:
        """
        Stage the student's message and the patient's answer. Does not commit.
        """
        last = self.db.execute(
            select(func.max(EcosMessageDB.sequence)).where(EcosMessageDB.session_id == session_id)
        ).scalar_one_or_none()
        next_sequence = (last or 0) + 1
        now = utc_now()

        question = EcosMessageDB(
            session_id=session_id,
            sequence=next_sequence,
            role=MESSAGE_ROLE_USER,
            content=student_message,
            timestamp=now,
        )
        answer = EcosMessageDB(
            session_id=session_id,
            sequence=next_sequence + 1,
            role=MESSAGE_ROLE_ASSISTANT,
            content=patient_message,
            timestamp=now,
        )
        self.db.add_all([question, answer])
        self.db.flush()
        return question, answer


class EcosEvaluationRepository:
    """Repository for per-criterion evaluations and reports"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_by_session(self, session_id: str) -> List[EcosEvaluationDB]:
        stmt = (
            select(EcosEvaluationDB)
            .where(EcosEvaluationDB.session_id == session_id)
            .order_by(EcosEvaluationDB.criterion_id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_report(self, session_id: str) -> Optional[EcosReportDB]:
        stmt = select(EcosReportDB).where(EcosReportDB.session_id == session_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_results(
        self,
        session_id: str,
        criteria_results: List[Dict],
        report_fields: Dict,
    ) -> EcosReportDB:
        """
        Stage one row per criterion plus the report. Does not commit.

        Args:
            criteria_results: dicts with criterion_id, score, max_score, feedback
            report_fields: summary, strengths, weaknesses, recommendations,
                total_score, max_score, percentage
        """
        self.db.execute(
            delete(EcosEvaluationDB)
            .where(EcosEvaluationDB.session_id == session_id)
            .execution_options(synchronize_session=False)
        )
        for result in criteria_results:
            self.db.add(EcosEvaluationDB(session_id=session_id, **result))

        report = EcosReportDB(session_id=session_id, **report_fields)
        self.db.add(report)
        self.db.flush()
        return report
