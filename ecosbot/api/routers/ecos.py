"""
ECOS endpoints: scenarios, exam sessions, simulated patient, evaluation

Every access to a session first applies the server-side time limit
(``SessionLifecycleManager.check_expiry``), so a session past its deadline is
seen as completed whatever the client timer shows.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from ...core.config import AppConfig
from ...core.constants import (
    COMPLETION_EVALUATION,
    COMPLETION_MANUAL,
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_IN_PROGRESS,
)
from ...database.repositories import EcosMessageRepository, ScenarioRepository
from ...services.access import ScenarioAccessPolicy
from ...services.evaluation import EvaluationEngine
from ...services.patient_simulation import PatientSimulationService
from ...services.prompt_assistant import PromptAssistant
from ...services.session_lifecycle import SessionLifecycleManager
from ..deps import (
    get_access_policy,
    get_config,
    get_evaluation_engine,
    get_lifecycle_manager,
    get_now,
    get_optional_query_email,
    get_patient_service,
    get_prompt_assistant,
    get_query_email,
    get_scenario_repository,
    get_teacher_email,
    require_teacher,
    resolve_email,
)
from ..exceptions import (
    EmptyMessageError,
    InvalidSessionTransitionError,
    ReportNotFoundError,
    ScenarioInUseError,
    ScenarioNotFoundError,
)
from ..schemas import (
    EcosSessionResponse,
    EvaluateRequest,
    GenerateCriteriaRequest,
    GenerateCriteriaResponse,
    MessageResponse,
    PatientMessageRequest,
    PatientMessageResponse,
    PromptAssistantRequest,
    PromptAssistantResponse,
    ReportEnvelope,
    ReportResponse,
    ScenarioCreateRequest,
    ScenarioListResponse,
    ScenarioResponse,
    ScenarioUpdateRequest,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionListResponse,
    SessionStartResponse,
    SessionUpdateRequest,
    SessionUpdateResponse,
    StatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ecos", tags=["ECOS"])


def _session_response(session, lifecycle: SessionLifecycleManager, now: datetime) -> EcosSessionResponse:
    return EcosSessionResponse.from_db(session, lifecycle.seconds_remaining(session, now))


# =============================================================================
# SCENARIOS
# =============================================================================

@router.get(
    "/scenarios",
    response_model=ScenarioListResponse,
    summary="List scenarios",
    description="Teachers see every scenario; students only those of their open training sessions.",
)
async def list_scenarios(
    email: str = Depends(get_query_email),
    policy: ScenarioAccessPolicy = Depends(get_access_policy),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    scenarios, _ = policy.available_scenarios(email, now)
    return {"scenarios": scenarios}


@router.post(
    "/scenarios",
    response_model=ScenarioResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a scenario (teacher)",
)
async def create_scenario(
    request: ScenarioCreateRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    config: AppConfig = Depends(get_config),
    scenarios: ScenarioRepository = Depends(get_scenario_repository),
):
    email = require_teacher(resolve_email(request.email, query_email), config)
    scenario = scenarios.create(
        title=request.title.strip(),
        description=request.description.strip(),
        patient_prompt=request.patient_prompt,
        evaluation_criteria=request.evaluation_criteria,
        created_by=email,
        pinecone_index=request.pinecone_index,
    )
    logger.info("Scenario created", extra={"scenario_id": scenario.id, "created_by": email})
    return scenario


@router.put(
    "/scenarios/{scenario_id}",
    response_model=ScenarioResponse,
    summary="Edit a scenario (teacher)",
)
async def update_scenario(
    scenario_id: str,
    request: ScenarioUpdateRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    config: AppConfig = Depends(get_config),
    scenarios: ScenarioRepository = Depends(get_scenario_repository),
):
    require_teacher(resolve_email(request.email, query_email), config)
    scenario = scenarios.update(
        scenario_id,
        title=request.title,
        description=request.description,
        patient_prompt=request.patient_prompt,
        evaluation_criteria=request.evaluation_criteria,
        pinecone_index=request.pinecone_index,
    )
    if scenario is None:
        raise ScenarioNotFoundError(scenario_id)
    return scenario


@router.delete(
    "/scenarios/{scenario_id}",
    response_model=StatusResponse,
    summary="Delete a scenario (teacher)",
    description="Refused with 409 once any exam session was run on the scenario.",
)
async def delete_scenario(
    scenario_id: str,
    email: str = Depends(get_teacher_email),
    scenarios: ScenarioRepository = Depends(get_scenario_repository),
) -> Dict[str, Any]:
    if scenarios.get_by_id(scenario_id) is None:
        raise ScenarioNotFoundError(scenario_id)
    if scenarios.is_referenced(scenario_id):
        raise ScenarioInUseError(scenario_id)

    scenarios.delete(scenario_id)
    logger.info("Scenario deleted", extra={"scenario_id": scenario_id, "deleted_by": email})
    return {"status": "success", "message": "Scenario deleted"}


# =============================================================================
# EXAM SESSIONS
# =============================================================================

@router.get(
    "/sessions",
    response_model=SessionListResponse,
    summary="List exam sessions",
    description="Students get their own sessions; teachers get the most recent sessions of everyone.",
)
async def list_sessions(
    email: str = Depends(get_query_email),
    config: AppConfig = Depends(get_config),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    if config.is_teacher(email):
        sessions = lifecycle.sessions.get_all()
    else:
        sessions = lifecycle.sessions.get_by_student(email)

    items = []
    for session in sessions:
        session = await lifecycle.check_expiry(session, now)
        items.append(_session_response(session, lifecycle, now))
    return {"sessions": items}


@router.post(
    "/sessions",
    response_model=SessionStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start an exam session on a scenario",
)
async def start_session(
    request: SessionCreateRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    email = resolve_email(request.email, query_email)
    session = lifecycle.start(request.scenario_id, email, now)
    return {
        "status": "success",
        "sessionId": session.id,
        "session": _session_response(session, lifecycle, now),
    }


@router.get(
    "/sessions/{session_id}",
    response_model=SessionDetailResponse,
    summary="Session detail with scenario and transcript",
)
async def get_session(
    session_id: str,
    email: str = Depends(get_query_email),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    session = lifecycle.get(session_id, email)
    session = await lifecycle.check_expiry(session, now)
    messages = EcosMessageRepository(lifecycle.db).get_by_session(session.id)
    return {
        "session": _session_response(session, lifecycle, now),
        "scenario": session.scenario,
        "messages": [MessageResponse.model_validate(m) for m in messages],
    }


@router.put(
    "/sessions/{session_id}",
    response_model=SessionUpdateResponse,
    summary="End a session",
    description="""
    Only ``status="completed"`` is accepted. Ending a session that is already
    completed returns it unchanged with ``alreadyCompleted=true``.
    """,
)
async def update_session(
    session_id: str,
    request: SessionUpdateRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    email = resolve_email(request.email, query_email)
    if request.status != SESSION_STATUS_COMPLETED:
        raise InvalidSessionTransitionError(request.status)

    session = lifecycle.get(session_id, email)
    session = await lifecycle.check_expiry(session, now)
    already_completed = session.status != SESSION_STATUS_IN_PROGRESS
    if not already_completed:
        session, transitioned = await lifecycle.complete(session, COMPLETION_MANUAL, now)
        already_completed = not transitioned

    return {
        "status": "success",
        "session": _session_response(session, lifecycle, now),
        "alreadyCompleted": already_completed,
    }


# =============================================================================
# SIMULATED PATIENT
# =============================================================================

@router.post(
    "/patient-simulator",
    response_model=PatientMessageResponse,
    summary="Send a message to the simulated patient",
    description="Rejected with 409 once the session is completed or its time is up.",
)
async def patient_simulator(
    request: PatientMessageRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    service: PatientSimulationService = Depends(get_patient_service),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    email = resolve_email(request.email, query_email)
    text = request.text
    if not text:
        raise EmptyMessageError()
    return await service.reply(request.session_id, email, text, now)


# =============================================================================
# EVALUATION
# =============================================================================

@router.post(
    "/evaluate",
    response_model=ReportResponse,
    summary="Evaluate a session",
    description="""
    Completes the session (reason ``evaluation``) if it is still running, then
    returns its report. The report is generated once; later calls return the
    stored one.
    """,
)
async def evaluate_session(
    request: EvaluateRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    engine: EvaluationEngine = Depends(get_evaluation_engine),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    email = resolve_email(request.email or request.student_email, query_email)
    session = lifecycle.get(request.session_id, email)
    session = await lifecycle.check_expiry(session, now)
    if session.status == SESSION_STATUS_IN_PROGRESS:
        session, _ = await lifecycle.complete(session, COMPLETION_EVALUATION, now, evaluate=False)
    return await engine.evaluate(session)


@router.get(
    "/reports/{session_id}",
    response_model=ReportEnvelope,
    summary="Stored report of a session",
)
async def get_report(
    session_id: str,
    email: str = Depends(get_query_email),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    engine: EvaluationEngine = Depends(get_evaluation_engine),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    session = lifecycle.get(session_id, email)
    session = await lifecycle.check_expiry(session, now)
    report = engine.get_report(session)
    if report is None:
        raise ReportNotFoundError(session_id)
    return {"report": report}


# =============================================================================
# TEACHER ASSISTANCE
# =============================================================================

@router.post(
    "/prompt-assistant",
    response_model=PromptAssistantResponse,
    summary="Draft a patient prompt from a case description (teacher)",
)
async def prompt_assistant(
    request: PromptAssistantRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    config: AppConfig = Depends(get_config),
    assistant: PromptAssistant = Depends(get_prompt_assistant),
) -> Dict[str, Any]:
    require_teacher(resolve_email(request.email, query_email), config)
    prompt = await assistant.generate_patient_prompt(request.input, request.context_docs)
    return {"prompt": prompt}


@router.post(
    "/generate-criteria",
    response_model=GenerateCriteriaResponse,
    summary="Propose evaluation criteria for a scenario (teacher)",
)
async def generate_criteria(
    request: GenerateCriteriaRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    config: AppConfig = Depends(get_config),
    assistant: PromptAssistant = Depends(get_prompt_assistant),
) -> Dict[str, Any]:
    require_teacher(resolve_email(request.email, query_email), config)
    criteria = await assistant.generate_criteria(request.description)
    return {"criteria": criteria}
