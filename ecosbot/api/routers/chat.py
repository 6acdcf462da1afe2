"""
Course assistant endpoints: daily quota, questions, history, LMS webhook
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Query
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from ...core.config import AppConfig
from ...services.chat_service import ChatService
from ...services.registration import RegistrationService, verify_webhook_signature
from ..deps import (
    get_chat_service,
    get_config,
    get_now,
    get_optional_query_email,
    get_query_email,
    get_registration_service,
    require_email,
    resolve_email,
)
from ..exceptions import EmptyMessageError, WebhookSignatureError
from ..schemas import (
    AskRequest,
    AskResponse,
    HistoryResponse,
    QuotaStatusResponse,
    WebhookRequest,
    WebhookResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Course Assistant"])


@router.get(
    "/status",
    response_model=QuotaStatusResponse,
    summary="Daily question quota of a user",
)
async def get_status(
    email: str = Depends(get_query_email),
    service: ChatService = Depends(get_chat_service),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    return service.quota.status(email, now).to_dict()


@router.post(
    "/ask",
    response_model=AskResponse,
    response_model_exclude_none=True,
    summary="Ask the course assistant",
    description="""
    Answers a question from the course material. When the daily limit is
    already reached the answer is a regular 200 with ``status="error"`` and
    ``limitReached=true``; the model is not called and nothing is counted.
    """,
)
async def ask(
    request: AskRequest,
    query_email: Optional[str] = Depends(get_optional_query_email),
    service: ChatService = Depends(get_chat_service),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    email = resolve_email(request.email, query_email)
    question = request.question.strip()
    if not question:
        raise EmptyMessageError()
    return await service.ask(email, question, now)


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Previous exchanges of a user, newest first",
)
async def get_history(
    email: str = Depends(get_query_email),
    limit: Optional[int] = Query(None, ge=1, le=200),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    return {"status": "success", "exchanges": service.history(email, limit)}


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="LMS handoff: register the user opening the chatbot",
)
async def webhook(
    payload: Dict[str, Any] = Body(...),
    signature: Optional[str] = Header(None, alias="X-Webhook-Signature"),
    config: AppConfig = Depends(get_config),
    service: RegistrationService = Depends(get_registration_service),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    if config.webhook_secret and not verify_webhook_signature(payload, signature, config.webhook_secret):
        logger.warning("Webhook rejected: bad signature")
        raise WebhookSignatureError()

    try:
        request = WebhookRequest.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False), body=payload)
    email = require_email(request.email)
    return service.register(email, request.first_name, request.last_name, now)
