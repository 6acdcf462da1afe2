"""
Student endpoints
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...services.access import ScenarioAccessPolicy
from ..deps import get_access_policy, get_now, get_query_email
from ..schemas import AvailableScenariosResponse, TrainingSessionResponse

router = APIRouter(prefix="/api/student", tags=["Student"])


@router.get(
    "/available-scenarios",
    response_model=AvailableScenariosResponse,
    summary="Scenarios the student may start now",
    description="""
    A scenario is listed iff the student is on the roster of a training
    session that contains it and the current time lies within the session's
    window. The open training sessions are returned alongside.
    """,
)
async def available_scenarios(
    email: str = Depends(get_query_email),
    policy: ScenarioAccessPolicy = Depends(get_access_policy),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    scenarios, open_sessions = policy.available_scenarios(email, now)
    return {
        "email": email,
        "scenarios": scenarios,
        "trainingSessions": [TrainingSessionResponse.from_db(t, now) for t in open_sessions],
    }
