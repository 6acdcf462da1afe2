"""
Schemas for the course assistant (quota, ask, history, webhook)
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common import CamelModel


class QuotaStatusResponse(CamelModel):
    email: str
    questions_used: int
    questions_remaining: int
    max_daily_questions: int
    limit_reached: bool


class AskRequest(CamelModel):
    email: Optional[str] = None
    question: str = Field(..., min_length=1, max_length=4000)


class AskResponse(CamelModel):
    """
    ``limitReached`` is a regular field: a blocked ask is a 200 with
    ``status="error"`` and no ``id``/``response``.
    """
    status: str
    message: Optional[str] = None
    id: Optional[str] = None
    question: Optional[str] = None
    response: Optional[str] = None
    timestamp: Optional[datetime] = None
    email: str
    questions_used: int
    questions_remaining: int
    max_daily_questions: int
    limit_reached: bool


class ExchangeResponse(CamelModel):
    id: str
    email: str
    question: str
    response: str
    timestamp: datetime


class HistoryResponse(CamelModel):
    status: str = "success"
    exchanges: List[ExchangeResponse]


class WebhookRequest(CamelModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class WebhookResponse(CamelModel):
    status: str
    email: str
    is_new_user: bool
    last_access: datetime
    auto_enrolled_training_session_id: Optional[str] = None
