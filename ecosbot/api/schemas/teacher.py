"""
Schemas for the teacher dashboard
"""
from typing import Dict, List

from .common import CamelModel
from .ecos import EcosSessionResponse


class DashboardResponse(CamelModel):
    email: str
    scenario_count: int
    training_session_count: int
    sessions_by_status: Dict[str, int]
    recent_sessions: List[EcosSessionResponse]
