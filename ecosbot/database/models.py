"""
SQLAlchemy ORM models

Models:
- UserDB: LMS user known by email (identity is delegated to the LMS)
- DailyCounterDB: questions asked per user per calendar day
- ExchangeDB: one question/answer turn of the course assistant
- EcosScenarioDB: teacher-authored clinical case with its rubric
- TrainingSessionDB (+ scenario links, student roster): enrollment window
- EcosSessionDB: one simulated exam of a student on a scenario
- EcosMessageDB: exam transcript
- EcosEvaluationDB: score per rubric criterion
- EcosReportDB: summary generated once per completed session
"""
from sqlalchemy import (
    Column,
    String,
    Text,
    Float,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .base import Base, BaseModel, _utc_now


class JSONBCompatible(TypeDecorator):
    """
    JSONB on PostgreSQL, JSON elsewhere (SQLite in tests).
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


class UserDB(Base, BaseModel):
    """
    User registered through the LMS webhook.

    There is no password: the embedding LMS authenticates the user and hands
    over the email.
    """

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    last_access = Column(DateTime(timezone=True), default=_utc_now, nullable=False)


class DailyCounterDB(Base, BaseModel):
    """
    Questions asked by one user on one calendar day.

    A new day gets a new row; yesterday's row is never reused, so no rollover
    job exists. ``count`` only grows within a day.
    """

    __tablename__ = "daily_counters"

    email = Column(String(255), nullable=False, index=True)
    day = Column(Date, nullable=False)
    count = Column(Integer, nullable=False, default=0, server_default='0')

    __table_args__ = (
        UniqueConstraint('email', 'day', name='uq_daily_counter_email_day'),
        CheckConstraint('count >= 0', name='ck_daily_counter_non_negative'),
    )


class ExchangeDB(Base, BaseModel):
    """Append-only Q&A turn"""

    __tablename__ = "exchanges"

    email = Column(String(255), nullable=False, index=True)
    question = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    __table_args__ = (
        Index('idx_exchange_email_timestamp', 'email', 'timestamp'),
    )


class EcosScenarioDB(Base, BaseModel):
    """
    Clinical case authored by a teacher.

    evaluation_criteria maps a criterion id to its weight (maximum score):
        {"anamnese": 20, "examen_physique": 30}
    or to an object: {"anamnese": {"name": "Anamnèse", "maxScore": 4}}
    """

    __tablename__ = "ecos_scenarios"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    patient_prompt = Column(Text, nullable=False)
    evaluation_criteria = Column(JSONBCompatible, default=dict, nullable=False)
    # Optional dedicated vector index with reference material for the patient
    pinecone_index = Column(String(255), nullable=True)
    created_by = Column(String(255), nullable=False, index=True)

    sessions = relationship("EcosSessionDB", back_populates="scenario")
    training_links = relationship(
        "TrainingSessionScenarioDB", back_populates="scenario", cascade="all, delete-orphan"
    )


class TrainingSessionDB(Base, BaseModel):
    """
    Enrollment window grouping scenarios and students.

    A scenario is visible to a student iff the student is on the roster of a
    training session that contains it and now is within [start_date, end_date].
    """

    __tablename__ = "training_sessions"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(String(255), nullable=False, index=True)

    scenario_links = relationship(
        "TrainingSessionScenarioDB", back_populates="training_session", cascade="all, delete-orphan"
    )
    students = relationship(
        "TrainingSessionStudentDB", back_populates="training_session", cascade="all, delete-orphan"
    )
    ecos_sessions = relationship("EcosSessionDB", back_populates="training_session")

    __table_args__ = (
        Index('idx_training_sessions_dates', 'start_date', 'end_date'),
        CheckConstraint('end_date > start_date', name='ck_training_session_window'),
    )


class TrainingSessionScenarioDB(Base, BaseModel):
    __tablename__ = "training_session_scenarios"

    training_session_id = Column(
        String(36), ForeignKey("training_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scenario_id = Column(
        String(36), ForeignKey("ecos_scenarios.id", ondelete="CASCADE"), nullable=False, index=True
    )

    training_session = relationship("TrainingSessionDB", back_populates="scenario_links")
    scenario = relationship("EcosScenarioDB", back_populates="training_links")

    __table_args__ = (
        UniqueConstraint('training_session_id', 'scenario_id', name='uq_training_session_scenario'),
    )


class TrainingSessionStudentDB(Base, BaseModel):
    __tablename__ = "training_session_students"

    training_session_id = Column(
        String(36), ForeignKey("training_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_email = Column(String(255), nullable=False, index=True)

    training_session = relationship("TrainingSessionDB", back_populates="students")

    __table_args__ = (
        UniqueConstraint('training_session_id', 'student_email', name='uq_training_session_student'),
    )


class EcosSessionDB(Base, BaseModel):
    """
    One simulated exam.

    Lifecycle: in_progress -> completed (manual end, evaluation, or time limit).
    The transition happens exactly once; see SessionLifecycleManager.
    """

    __tablename__ = "ecos_sessions"

    scenario_id = Column(String(36), ForeignKey("ecos_scenarios.id"), nullable=False, index=True)
    student_email = Column(String(255), nullable=False, index=True)
    training_session_id = Column(
        String(36), ForeignKey("training_sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    start_time = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), default="in_progress", nullable=False)
    completion_reason = Column(String(20), nullable=True)  # manual, evaluation, expired

    scenario = relationship("EcosScenarioDB", back_populates="sessions")
    training_session = relationship("TrainingSessionDB", back_populates="ecos_sessions")
    messages = relationship(
        "EcosMessageDB",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="EcosMessageDB.sequence",
    )
    evaluations = relationship("EcosEvaluationDB", back_populates="session", cascade="all, delete-orphan")
    report = relationship("EcosReportDB", back_populates="session", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_ecos_session_student_status', 'student_email', 'status'),
        Index('idx_ecos_session_status_start', 'status', 'start_time'),
        CheckConstraint(
            "status IN ('in_progress', 'completed')",
            name='ck_ecos_session_status_valid'
        ),
    )


class EcosMessageDB(Base, BaseModel):
    """Transcript entry; ``sequence`` gives a total order within a session"""

    __tablename__ = "ecos_messages"

    session_id = Column(String(36), ForeignKey("ecos_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    role = Column(String(20), nullable=False)  # user | assistant
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    session = relationship("EcosSessionDB", back_populates="messages")

    __table_args__ = (
        UniqueConstraint('session_id', 'sequence', name='uq_ecos_message_sequence'),
        CheckConstraint("role IN ('user', 'assistant')", name='ck_ecos_message_role'),
    )


class EcosEvaluationDB(Base, BaseModel):
    """Score for one rubric criterion"""

    __tablename__ = "ecos_evaluations"

    session_id = Column(String(36), ForeignKey("ecos_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    criterion_id = Column(String(100), nullable=False)
    score = Column(Float, nullable=False)
    max_score = Column(Float, nullable=False)
    feedback = Column(Text, nullable=True)

    session = relationship("EcosSessionDB", back_populates="evaluations")

    __table_args__ = (
        UniqueConstraint('session_id', 'criterion_id', name='uq_ecos_evaluation_criterion'),
        CheckConstraint('score >= 0 AND score <= max_score', name='ck_ecos_evaluation_score_range'),
    )


class EcosReportDB(Base, BaseModel):
    """Report derived from the evaluation, one per completed session"""

    __tablename__ = "ecos_reports"

    session_id = Column(
        String(36), ForeignKey("ecos_sessions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    summary = Column(Text, nullable=False)
    strengths = Column(JSONBCompatible, default=list, nullable=False)
    weaknesses = Column(JSONBCompatible, default=list, nullable=False)
    recommendations = Column(JSONBCompatible, default=list, nullable=False)
    total_score = Column(Float, nullable=False, default=0.0)
    max_score = Column(Float, nullable=False, default=0.0)
    percentage = Column(Float, nullable=False, default=0.0)

    session = relationship("EcosSessionDB", back_populates="report")
