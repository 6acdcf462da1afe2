"""
Schemas for training sessions and student scenario visibility
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from ...core.constants import ensure_utc
from .common import CamelModel
from .ecos import ScenarioResponse


def _clean_emails(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return None
    emails = []
    for email in value:
        email = (email or "").strip().lower()
        if email and email not in emails:
            emails.append(email)
    return emails


class TrainingSessionCreateRequest(CamelModel):
    email: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    scenario_ids: List[str] = Field(default_factory=list)
    student_emails: List[str] = Field(default_factory=list)

    @field_validator("student_emails")
    @classmethod
    def normalize_emails(cls, v: List[str]) -> List[str]:
        return _clean_emails(v)


class TrainingSessionUpdateRequest(CamelModel):
    """Omitted fields keep their value; lists, when given, replace the current ones."""
    email: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    scenario_ids: Optional[List[str]] = None
    student_emails: Optional[List[str]] = None

    @field_validator("student_emails")
    @classmethod
    def normalize_emails(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_emails(v)


class TrainingScenarioSummary(CamelModel):
    id: str
    title: str


class TrainingSessionResponse(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    created_by: str
    created_at: datetime
    is_active: bool
    scenarios: List[TrainingScenarioSummary]
    student_emails: List[str]
    student_count: int

    @classmethod
    def from_db(cls, training, now: datetime) -> "TrainingSessionResponse":
        emails = [s.student_email for s in training.students]
        return cls(
            id=training.id,
            title=training.title,
            description=training.description,
            start_date=training.start_date,
            end_date=training.end_date,
            created_by=training.created_by,
            created_at=training.created_at,
            is_active=ensure_utc(training.start_date) <= ensure_utc(now) <= ensure_utc(training.end_date),
            scenarios=[
                TrainingScenarioSummary(id=link.scenario_id, title=link.scenario.title)
                for link in training.scenario_links
            ],
            student_emails=emails,
            student_count=len(emails),
        )


class TrainingSessionListResponse(CamelModel):
    training_sessions: List[TrainingSessionResponse]


class TrainingSessionEnvelope(CamelModel):
    status: str = "success"
    training_session: TrainingSessionResponse


class AvailableScenariosResponse(CamelModel):
    email: str
    scenarios: List[ScenarioResponse]
    training_sessions: List[TrainingSessionResponse]
