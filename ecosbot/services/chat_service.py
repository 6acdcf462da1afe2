"""
Course assistant: retrieval-augmented answers under the daily quota

Flow of ``ask``:
1. Refuse immediately when today's quota is exhausted (the model is not
   called and nothing is counted).
2. Retrieve course passages and generate the answer.
3. In one transaction, atomically count the question and store the exchange.
   If concurrent requests took the last slot in the meantime, the answer is
   discarded and the ask is reported as blocked; the counter never goes past
   the limit and never decreases.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..api.exceptions import DatabaseOperationError, LLMServiceError
from ..core import metrics
from ..core.config import AppConfig
from ..core.logging_setup import sanitize_for_logs
from ..database.repositories import ExchangeRepository
from ..database.transaction import transaction
from ..llm.base import LLMMessage, LLMRole
from .quota import QuotaStatus, QuotaTracker

logger = logging.getLogger(__name__)

ASSISTANT_SYSTEM_PROMPT = """You are an educational assistant for a LearnWorlds learning management system.
Answer questions about the course content based on the context provided.
Be helpful, precise, and concise. If you don't know the answer based on the provided context, say so clearly.
Do not make up information. Cite sources from the context when relevant."""

ANSWER_TEMPERATURE = 0.5
ANSWER_MAX_TOKENS = 1000
EMPTY_ANSWER = "Je n'ai pas pu générer une réponse. Veuillez réessayer."


def format_context(passages: List[Dict[str, Any]]) -> str:
    blocks = []
    for i, passage in enumerate(passages, start=1):
        source = f" (Source: {passage['source']})" if passage.get("source") else ""
        blocks.append(f"Context {i}{source}:\n{passage['content']}\n")
    return "\n".join(blocks)


def blocked_response(status: QuotaStatus) -> Dict[str, Any]:
    return {
        "status": "error",
        "message": "Daily question limit reached",
        **status.to_dict(),
        "questionsRemaining": 0,
        "limitReached": True,
    }


class ChatService:
    def __init__(self, db: Session, config: AppConfig, llm_provider, retriever=None):
        self.db = db
        self.config = config
        self.llm_provider = llm_provider
        self.retriever = retriever
        self.quota = QuotaTracker(db, config)
        self.exchanges = ExchangeRepository(db)

    async def _generate_answer(self, question: str) -> str:
        passages = await self.retriever.search(question) if self.retriever else []

        messages = [
            LLMMessage(role=LLMRole.SYSTEM, content=ASSISTANT_SYSTEM_PROMPT),
            LLMMessage(
                role=LLMRole.USER,
                content=f"Question: {question}\n\nRelevant Content:\n{format_context(passages)}",
            ),
        ]
        try:
            response = await self.llm_provider.generate(
                messages=messages,
                temperature=ANSWER_TEMPERATURE,
                max_tokens=ANSWER_MAX_TOKENS,
            )
        except Exception as e:
            logger.error(f"Answer generation failed: {e}", exc_info=True)
            raise LLMServiceError("answer generation", str(e))

        return response.content.strip() or EMPTY_ANSWER

    async def ask(self, email: str, question: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        current = self.quota.status(email, now)
        if current.limit_reached:
            metrics.questions_blocked_total.inc()
            return blocked_response(current)

        logger.info(f"Question from {email}: {sanitize_for_logs(question)}")
        answer = await self._generate_answer(question)

        exchange = None
        consumed = None
        try:
            with transaction(self.db, "record exchange"):
                consumed = self.quota.try_consume(email, now)
                if consumed is not None:
                    exchange = self.exchanges.add(email, question, answer)
        except SQLAlchemyError as e:
            raise DatabaseOperationError("record exchange", str(e))

        if consumed is None:
            # Concurrent asks used the last slot while this answer was generated
            metrics.questions_blocked_total.inc()
            return blocked_response(self.quota.status(email, now))

        metrics.questions_asked_total.inc()
        return {
            "status": "success",
            "id": exchange.id,
            "question": exchange.question,
            "response": exchange.response,
            "timestamp": exchange.timestamp,
            **consumed.to_dict(),
        }

    def history(self, email: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        exchanges = self.exchanges.get_by_email(email, limit or self.config.history_limit)
        return [
            {
                "id": exchange.id,
                "email": exchange.email,
                "question": exchange.question,
                "response": exchange.response,
                "timestamp": exchange.timestamp,
            }
            for exchange in exchanges
        ]
