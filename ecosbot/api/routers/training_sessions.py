"""
Training sessions (teacher)

A training session is an enrollment window: a set of scenarios, a roster of
student emails and a [startDate, endDate] interval with endDate > startDate.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from fastapi import APIRouter, Depends, status

from ...core.config import AppConfig
from ...core.constants import ensure_utc
from ...database.repositories import ScenarioRepository, TrainingSessionRepository
from ..deps import (
    get_config,
    get_now,
    get_optional_query_email,
    get_scenario_repository,
    get_teacher_email,
    get_training_session_repository,
    require_teacher,
    resolve_email,
)
from ..exceptions import (
    InvalidTrainingWindowError,
    ScenarioNotFoundError,
    TrainingSessionNotFoundError,
)
from ..schemas import (
    StatusResponse,
    TrainingSessionCreateRequest,
    TrainingSessionEnvelope,
    TrainingSessionListResponse,
    TrainingSessionResponse,
    TrainingSessionUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/training-sessions", tags=["Training Sessions"])


def _check_window(start_date: datetime, end_date: datetime) -> None:
    if ensure_utc(end_date) <= ensure_utc(start_date):
        raise InvalidTrainingWindowError()


def _check_scenarios(scenarios: ScenarioRepository, scenario_ids: Iterable[str]) -> None:
    ids = set(scenario_ids)
    found = {s.id for s in scenarios.get_by_ids(ids)}
    missing = sorted(ids - found)
    if missing:
        raise ScenarioNotFoundError(missing[0])


@router.get(
    "",
    response_model=TrainingSessionListResponse,
    summary="List training sessions (teacher)",
)
async def list_training_sessions(
    email: str = Depends(get_teacher_email),
    repo: TrainingSessionRepository = Depends(get_training_session_repository),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    return {"trainingSessions": [TrainingSessionResponse.from_db(t, now) for t in repo.get_all()]}


@router.post(
    "",
    response_model=TrainingSessionEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create a training session (teacher)",
)
async def create_training_session(
    request: TrainingSessionCreateRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    config: AppConfig = Depends(get_config),
    repo: TrainingSessionRepository = Depends(get_training_session_repository),
    scenarios: ScenarioRepository = Depends(get_scenario_repository),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    email = require_teacher(resolve_email(request.email, query_email), config)
    _check_window(request.start_date, request.end_date)
    _check_scenarios(scenarios, request.scenario_ids)

    training = repo.create(
        title=request.title.strip(),
        description=request.description,
        start_date=ensure_utc(request.start_date),
        end_date=ensure_utc(request.end_date),
        created_by=email,
        scenario_ids=request.scenario_ids,
        student_emails=request.student_emails,
    )
    logger.info(
        "Training session created",
        extra={"training_session_id": training.id, "students": len(request.student_emails)}
    )
    return {"status": "success", "trainingSession": TrainingSessionResponse.from_db(training, now)}


@router.get(
    "/{training_session_id}",
    response_model=TrainingSessionEnvelope,
    summary="Training session detail (teacher)",
)
async def get_training_session(
    training_session_id: str,
    email: str = Depends(get_teacher_email),
    repo: TrainingSessionRepository = Depends(get_training_session_repository),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    training = repo.get_by_id(training_session_id)
    if training is None:
        raise TrainingSessionNotFoundError(training_session_id)
    return {"status": "success", "trainingSession": TrainingSessionResponse.from_db(training, now)}


@router.put(
    "/{training_session_id}",
    response_model=TrainingSessionEnvelope,
    summary="Update a training session (teacher)",
    description="Omitted fields are kept; ``scenarioIds`` and ``studentEmails`` replace the current lists.",
)
async def update_training_session(
    training_session_id: str,
    request: TrainingSessionUpdateRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    config: AppConfig = Depends(get_config),
    repo: TrainingSessionRepository = Depends(get_training_session_repository),
    scenarios: ScenarioRepository = Depends(get_scenario_repository),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    require_teacher(resolve_email(request.email, query_email), config)
    training = repo.get_by_id(training_session_id)
    if training is None:
        raise TrainingSessionNotFoundError(training_session_id)

    start_date = ensure_utc(request.start_date) if request.start_date else None
    end_date = ensure_utc(request.end_date) if request.end_date else None
    _check_window(start_date or training.start_date, end_date or training.end_date)
    if request.scenario_ids is not None:
        _check_scenarios(scenarios, request.scenario_ids)

    training = repo.update(
        training,
        scenario_ids=request.scenario_ids,
        student_emails=request.student_emails,
        title=request.title.strip() if request.title else None,
        description=request.description,
        start_date=start_date,
        end_date=end_date,
    )
    return {"status": "success", "trainingSession": TrainingSessionResponse.from_db(training, now)}


@router.delete(
    "/{training_session_id}",
    response_model=StatusResponse,
    summary="Delete a training session (teacher)",
    description="Exam sessions already run keep their transcript and report; they lose the link.",
)
async def delete_training_session(
    training_session_id: str,
    email: str = Depends(get_teacher_email),
    repo: TrainingSessionRepository = Depends(get_training_session_repository),
) -> Dict[str, Any]:
    if not repo.delete(training_session_id):
        raise TrainingSessionNotFoundError(training_session_id)
    logger.info("Training session deleted", extra={"training_session_id": training_session_id, "deleted_by": email})
    return {"status": "success", "message": "Training session deleted"}
