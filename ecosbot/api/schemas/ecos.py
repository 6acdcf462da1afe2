"""
Schemas for ECOS scenarios, exam sessions and teacher assistance
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, Field

from .common import CamelModel


def _validate_criteria(value: Dict[str, Any]) -> Dict[str, Any]:
    """Each criterion is a positive number or an object with a positive maxScore/weight."""
    for criterion_id, entry in value.items():
        weight = entry.get("maxScore", entry.get("weight")) if isinstance(entry, dict) else entry
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0:
            raise ValueError(f"Criterion '{criterion_id}' needs a positive weight")
    return value


CriteriaMap = Annotated[Dict[str, Any], AfterValidator(_validate_criteria)]


# =============================================================================
# SCENARIOS
# =============================================================================

class ScenarioCreateRequest(CamelModel):
    email: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    patient_prompt: str = Field(..., min_length=1)
    evaluation_criteria: CriteriaMap = Field(default_factory=dict)
    pinecone_index: Optional[str] = None


class ScenarioUpdateRequest(CamelModel):
    email: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    patient_prompt: Optional[str] = Field(None, min_length=1)
    evaluation_criteria: Optional[CriteriaMap] = None
    pinecone_index: Optional[str] = None


class ScenarioResponse(CamelModel):
    id: str
    title: str
    description: str
    patient_prompt: str
    evaluation_criteria: Dict[str, Any]
    pinecone_index: Optional[str] = None
    created_by: str
    created_at: datetime


class ScenarioListResponse(CamelModel):
    scenarios: List[ScenarioResponse]


# =============================================================================
# EXAM SESSIONS
# =============================================================================

class SessionCreateRequest(CamelModel):
    email: Optional[str] = None
    scenario_id: str


class SessionUpdateRequest(CamelModel):
    email: Optional[str] = None
    status: str


class MessageResponse(CamelModel):
    role: str
    content: str
    timestamp: datetime


class EcosSessionResponse(CamelModel):
    id: str
    scenario_id: str
    scenario_title: Optional[str] = None
    student_email: str
    training_session_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str
    completion_reason: Optional[str] = None
    seconds_remaining: int = 0

    @classmethod
    def from_db(cls, session, seconds_remaining: int = 0) -> "EcosSessionResponse":
        return cls(
            id=session.id,
            scenario_id=session.scenario_id,
            scenario_title=session.scenario.title if session.scenario else None,
            student_email=session.student_email,
            training_session_id=session.training_session_id,
            start_time=session.start_time,
            end_time=session.end_time,
            status=session.status,
            completion_reason=session.completion_reason,
            seconds_remaining=seconds_remaining,
        )


class SessionStartResponse(CamelModel):
    status: str = "success"
    session_id: str
    session: EcosSessionResponse


class SessionListResponse(CamelModel):
    sessions: List[EcosSessionResponse]


class SessionDetailResponse(CamelModel):
    session: EcosSessionResponse
    scenario: Optional[ScenarioResponse] = None
    messages: List[MessageResponse] = Field(default_factory=list)


class SessionUpdateResponse(CamelModel):
    status: str = "success"
    session: EcosSessionResponse
    already_completed: bool = False


# =============================================================================
# PATIENT SIMULATOR
# =============================================================================

class PatientMessageRequest(CamelModel):
    """The client sends the student's message as ``query`` (``message`` also accepted)."""
    email: Optional[str] = None
    session_id: str
    query: Optional[str] = Field(None, max_length=4000)
    message: Optional[str] = Field(None, max_length=4000)

    @property
    def text(self) -> str:
        return (self.query or self.message or "").strip()


class PatientMessageResponse(CamelModel):
    status: str
    session_id: str
    response: str
    timestamp: datetime
    seconds_remaining: int


# =============================================================================
# EVALUATION
# =============================================================================

class EvaluateRequest(CamelModel):
    email: Optional[str] = None
    student_email: Optional[str] = None
    session_id: str


class CriterionResult(CamelModel):
    id: str
    name: str
    score: float
    max_score: float
    feedback: Optional[str] = None


class ReportResponse(CamelModel):
    session_id: str
    summary: str
    strengths: List[str]
    weaknesses: List[str]
    recommendations: List[str]
    total_score: float
    max_score: float
    percentage: float
    criteria: List[CriterionResult]
    scores: Dict[str, float]
    comments: Dict[str, Optional[str]]
    created_at: datetime


class ReportEnvelope(CamelModel):
    report: ReportResponse


# =============================================================================
# TEACHER ASSISTANCE
# =============================================================================

class PromptAssistantRequest(CamelModel):
    email: Optional[str] = None
    input: str = Field(..., min_length=1)
    context_docs: List[str] = Field(default_factory=list)


class PromptAssistantResponse(CamelModel):
    prompt: str


class GenerateCriteriaRequest(CamelModel):
    email: Optional[str] = None
    description: str = Field(..., min_length=1)


class GenerateCriteriaResponse(CamelModel):
    criteria: Dict[str, Any]
