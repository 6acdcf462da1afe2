"""
Teacher dashboard
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from ...core.constants import SESSION_STATUSES
from ...database.repositories import ScenarioRepository, TrainingSessionRepository
from ...services.session_lifecycle import SessionLifecycleManager
from ..deps import (
    get_lifecycle_manager,
    get_now,
    get_scenario_repository,
    get_teacher_email,
    get_training_session_repository,
)
from ..schemas import DashboardResponse, EcosSessionResponse

router = APIRouter(prefix="/api/teacher", tags=["Teacher"])


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Overview of scenarios, training sessions and exam activity",
)
async def dashboard(
    email: str = Depends(get_teacher_email),
    recent: int = Query(20, ge=1, le=100, description="Number of recent sessions to include"),
    scenarios: ScenarioRepository = Depends(get_scenario_repository),
    training_sessions: TrainingSessionRepository = Depends(get_training_session_repository),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    # Expire overdue sessions first so the counts reflect the server clock
    await lifecycle.expire_overdue(now)

    counts = {status: 0 for status in SESSION_STATUSES}
    counts.update(lifecycle.sessions.count_by_status())
    recent_sessions = [
        EcosSessionResponse.from_db(s, lifecycle.seconds_remaining(s, now))
        for s in lifecycle.sessions.get_all(limit=recent)
    ]
    return {
        "email": email,
        "scenarioCount": scenarios.count(),
        "trainingSessionCount": training_sessions.count(),
        "sessionsByStatus": counts,
        "recentSessions": recent_sessions,
    }
