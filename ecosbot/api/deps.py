"""
FastAPI dependencies

Application-wide objects (configuration, database, LLM provider, retriever)
are created once in ``create_app`` and kept on ``app.state``; the functions
below hand them to the routers. Identity comes from the embedding LMS as an
email, passed as ``?email=`` or in the JSON body.
"""
from datetime import datetime
from typing import Generator, Optional
from urllib.parse import unquote

from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session

from ..core.config import AppConfig
from ..core.constants import utc_now
from ..database.repositories import (
    ScenarioRepository,
    TrainingSessionRepository,
)
from ..llm.base import LLMProvider
from ..services.access import ScenarioAccessPolicy
from ..services.chat_service import ChatService
from ..services.evaluation import EvaluationEngine
from ..services.patient_simulation import PatientSimulationService
from ..services.prompt_assistant import PromptAssistant
from ..services.registration import RegistrationService
from ..services.retrieval import VectorRetriever
from ..services.session_lifecycle import SessionLifecycleManager
from .exceptions import AuthorizationError, MissingEmailError


# =============================================================================
# Application state
# =============================================================================

def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_db(request: Request) -> Generator[Session, None, None]:
    """Database session per request, always closed."""
    db = request.app.state.db_config.session()
    try:
        yield db
    finally:
        db.close()


def get_llm_provider(request: Request) -> LLMProvider:
    return request.app.state.llm_provider


def get_retriever(request: Request) -> Optional[VectorRetriever]:
    return request.app.state.retriever


def get_now() -> datetime:
    """Request time; tests override it to move the clock."""
    return utc_now()


# =============================================================================
# Identity
# =============================================================================

def normalize_email(raw: Optional[str]) -> Optional[str]:
    """Decode (the LMS sometimes double-encodes), trim and lowercase."""
    if raw is None:
        return None
    email = unquote(raw).strip().lower()
    return email or None


def require_email(raw: Optional[str]) -> str:
    email = normalize_email(raw)
    if not email:
        raise MissingEmailError()
    return email


def get_query_email(email: Optional[str] = Query(None, description="User email from the LMS")) -> str:
    return require_email(email)


def get_optional_query_email(email: Optional[str] = Query(None, description="User email from the LMS")) -> Optional[str]:
    return normalize_email(email)


def resolve_email(body_email: Optional[str], query_email: Optional[str]) -> str:
    """POST endpoints accept the email in the body or as ``?email=``."""
    return require_email(body_email or query_email)


def require_teacher(email: str, config: AppConfig) -> str:
    if not config.is_teacher(email):
        raise AuthorizationError("Teacher access required")
    return email


def get_teacher_email(
    email: str = Depends(get_query_email),
    config: AppConfig = Depends(get_config),
) -> str:
    return require_teacher(email, config)


# =============================================================================
# Repositories
# =============================================================================

def get_scenario_repository(db: Session = Depends(get_db)) -> ScenarioRepository:
    return ScenarioRepository(db)


def get_training_session_repository(db: Session = Depends(get_db)) -> TrainingSessionRepository:
    return TrainingSessionRepository(db)


# =============================================================================
# Services
# =============================================================================

def get_chat_service(
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
    llm_provider: LLMProvider = Depends(get_llm_provider),
    retriever: Optional[VectorRetriever] = Depends(get_retriever),
) -> ChatService:
    return ChatService(db, config, llm_provider, retriever)


def get_registration_service(
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> RegistrationService:
    return RegistrationService(db, config)


def get_access_policy(
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> ScenarioAccessPolicy:
    return ScenarioAccessPolicy(db, config)


def get_evaluation_engine(
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
    llm_provider: LLMProvider = Depends(get_llm_provider),
) -> EvaluationEngine:
    return EvaluationEngine(db, llm_provider, config)


def get_lifecycle_manager(
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
    engine: EvaluationEngine = Depends(get_evaluation_engine),
) -> SessionLifecycleManager:
    return SessionLifecycleManager(db, config, evaluation_engine=engine)


def get_patient_service(
    db: Session = Depends(get_db),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    llm_provider: LLMProvider = Depends(get_llm_provider),
    retriever: Optional[VectorRetriever] = Depends(get_retriever),
) -> PatientSimulationService:
    return PatientSimulationService(db, lifecycle, llm_provider, retriever)


def get_prompt_assistant(
    llm_provider: LLMProvider = Depends(get_llm_provider),
    retriever: Optional[VectorRetriever] = Depends(get_retriever),
) -> PromptAssistant:
    return PromptAssistant(llm_provider, retriever)
