"""
ECOS Evaluation Engine

The language model scores the transcript against the scenario rubric; this
module owns everything around that call:

- normalizing the rubric (``{"anamnese": 20}`` or
  ``{"anamnese": {"name": "Anamnèse", "maxScore": 4}}``)
- parsing the model's JSON and clamping each score to [0, maxScore]
- aggregating the weighted total: total = sum(scores), max = sum(weights),
  percentage = round(total / max * 100)
- persisting one row per criterion plus the report, exactly once per session

Usage:
    engine = EvaluationEngine(db, llm_provider, config)
    report = await engine.evaluate(session)
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..api.exceptions import EvaluationFailedError
from ..core import metrics
from ..core.config import AppConfig
from ..core.constants import DEFAULT_EVALUATION_CRITERIA, MESSAGE_ROLE_USER
from ..database.repositories import EcosEvaluationRepository, EcosMessageRepository
from ..database.transaction import transaction
from ..llm.base import LLMMessage, LLMRole

logger = logging.getLogger(__name__)

EVALUATOR_SYSTEM_PROMPT = "Tu es un évaluateur médical expert. Évalue de manière constructive et pédagogique."
EVALUATION_TEMPERATURE = 0.3
EVALUATION_MAX_TOKENS = 2000

DEFAULT_STRENGTHS = ["Points forts à identifier"]
DEFAULT_WEAKNESSES = ["Points à améliorer à identifier"]
DEFAULT_RECOMMENDATIONS = ["Recommandations à définir"]


@dataclass
class Criterion:
    id: str
    name: str
    max_score: float


def normalize_criteria(raw: Optional[Dict[str, Any]]) -> List[Criterion]:
    """
    Turn a scenario's criteria map into ``Criterion`` objects.

    Entries whose weight is missing or not positive are ignored; an empty
    result falls back to the default five-criterion rubric.
    """
    criteria = []
    for criterion_id, value in (raw or {}).items():
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            name, max_score = criterion_id, float(value)
        elif isinstance(value, dict):
            name = value.get("name") or criterion_id
            weight = value.get("maxScore", value.get("weight"))
            if isinstance(weight, bool) or not isinstance(weight, (int, float)):
                continue
            max_score = float(weight)
        else:
            continue

        if max_score > 0:
            criteria.append(Criterion(id=str(criterion_id), name=str(name), max_score=max_score))
        else:
            logger.warning(f"Ignoring criterion with non-positive weight: {criterion_id}")

    if not criteria and raw is not DEFAULT_EVALUATION_CRITERIA:
        return normalize_criteria(DEFAULT_EVALUATION_CRITERIA)
    return criteria


def clamp_score(value: Any, max_score: float) -> float:
    if isinstance(value, dict):
        value = value.get("score")
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return min(max(score, 0.0), max_score)


def aggregate_scores(criteria: List[Criterion], scores: Dict[str, Any]) -> Dict[str, float]:
    """
    Weighted total over ``criteria``. Scores are clamped and missing ones
    count as 0.

    >>> aggregate_scores([Criterion("anamnese", "anamnese", 20), Criterion("examen_physique", "examen_physique", 30)],
    ...                  {"anamnese": 16, "examen_physique": 25})
    {'total_score': 41.0, 'max_score': 50.0, 'percentage': 82}
    """
    total = sum(clamp_score(scores.get(c.id), c.max_score) for c in criteria)
    maximum = sum(c.max_score for c in criteria)
    percentage = round(total / maximum * 100) if maximum > 0 else 0
    return {"total_score": total, "max_score": maximum, "percentage": percentage}


def performance_label(percentage: float) -> str:
    if percentage >= 80:
        return "excellente"
    if percentage >= 70:
        return "bonne"
    if percentage >= 60:
        return "satisfaisante"
    return "à améliorer"


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"


def build_summary(total_score: float, max_score: float, percentage: int) -> str:
    return (
        f"Performance globale {performance_label(percentage)} avec un score de "
        f"{_fmt(total_score)}/{_fmt(max_score)} ({percentage}%). L'étudiant démontre des "
        "compétences cliniques en développement avec des points forts identifiés "
        "et des axes d'amélioration ciblés."
    )


def _as_list(value: Any, default: List[str]) -> List[str]:
    if isinstance(value, list):
        items = [str(item).strip() for item in value if str(item).strip()]
        return items or default
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return default


def format_transcript(messages) -> str:
    lines = []
    for index, message in enumerate(messages, start=1):
        speaker = "ÉTUDIANT" if message.role == MESSAGE_ROLE_USER else "PATIENT"
        lines.append(f"[{index}] {speaker}: {message.content}")
    return "\n\n".join(lines)


class EvaluationEngine:
    def __init__(self, db: Session, llm_provider, config: AppConfig):
        self.db = db
        self.llm_provider = llm_provider
        self.config = config
        self.evaluations = EcosEvaluationRepository(db)
        self.messages = EcosMessageRepository(db)

    def _build_prompt(self, scenario, criteria: List[Criterion], transcript: str) -> str:
        rubric = {c.id: {"name": c.name, "maxScore": c.max_score} for c in criteria}
        return f"""Tu es un évaluateur expert pour les ECOS (Examens Cliniques Objectifs Structurés).

Scénario: {scenario.title}
Description: {scenario.description}

Critères d'évaluation (score de 0 à maxScore pour chaque critère):
{json.dumps(rubric, ensure_ascii=False, indent=2)}

Évalue la performance de l'étudiant basée sur cette interaction complète:

{transcript}

Fournir une évaluation détaillée incluant:
1. Score pour chaque critère (entre 0 et son maxScore)
2. Commentaires spécifiques pour chaque critère
3. Points forts observés
4. Points à améliorer
5. Recommandations pour l'apprentissage futur

Retourne UNIQUEMENT un objet JSON avec les champs:
"scores" (objet critère -> nombre), "comments" (objet critère -> texte),
"strengths", "weaknesses", "recommendations" (listes de textes)."""

    def _parse_llm_response(self, response: str) -> Dict[str, Any]:
        """Extract the JSON object (the model may wrap it in prose or fences)."""
        json_start = response.find('{')
        json_end = response.rfind('}') + 1

        if json_start == -1 or json_end == 0:
            raise ValueError("No JSON object found in evaluation response")

        parsed = json.loads(response[json_start:json_end])
        if not isinstance(parsed, dict):
            raise ValueError("Evaluation response is not a JSON object")
        return parsed

    async def _score_transcript(self, session, criteria: List[Criterion], messages) -> Dict[str, Any]:
        if not any(m.role == MESSAGE_ROLE_USER for m in messages):
            # Nothing to assess; the model is not consulted
            return {
                "scores": {},
                "comments": {c.id: "Aucune interaction enregistrée" for c in criteria},
                "strengths": [],
                "weaknesses": ["Aucune question posée au patient"],
                "recommendations": ["Mener l'entretien avec le patient avant la fin du temps imparti"],
            }

        prompt = self._build_prompt(session.scenario, criteria, format_transcript(messages))
        response = await self.llm_provider.generate(
            messages=[
                LLMMessage(role=LLMRole.SYSTEM, content=EVALUATOR_SYSTEM_PROMPT),
                LLMMessage(role=LLMRole.USER, content=prompt),
            ],
            temperature=EVALUATION_TEMPERATURE,
            max_tokens=EVALUATION_MAX_TOKENS,
            model=self.config.evaluation_model if self.config.llm_provider == "openai" else None,
            json_mode=True,
        )
        logger.info(f"Evaluation generated (model: {response.model})", extra={"session_id": session.id})
        return self._parse_llm_response(response.content)

    async def evaluate(self, session) -> Dict[str, Any]:
        """
        Score a completed session and store its report.

        Idempotent: when a report already exists it is returned unchanged.

        Raises:
            EvaluationFailedError: the model failed or returned unusable output
        """
        existing = self.get_report(session)
        if existing is not None:
            return existing

        criteria = normalize_criteria(session.scenario.evaluation_criteria)
        messages = self.messages.get_by_session(session.id)

        try:
            parsed = await self._score_transcript(session, criteria, messages)
        except Exception as e:
            metrics.evaluations_total.labels(status="error").inc()
            logger.error(f"Evaluation failed: {e}", exc_info=True, extra={"session_id": session.id})
            raise EvaluationFailedError(session.id, str(e))

        scores = parsed.get("scores") or {}
        comments = parsed.get("comments") or parsed.get("feedback") or {}
        if not isinstance(scores, dict):
            scores = {}
        if not isinstance(comments, dict):
            comments = {}

        criteria_results = [
            {
                "criterion_id": c.id,
                "score": clamp_score(scores.get(c.id), c.max_score),
                "max_score": c.max_score,
                "feedback": str(comments.get(c.id) or "Aucun commentaire spécifique"),
            }
            for c in criteria
        ]
        totals = aggregate_scores(criteria, scores)
        report_fields = {
            "summary": build_summary(totals["total_score"], totals["max_score"], totals["percentage"]),
            "strengths": _as_list(parsed.get("strengths"), DEFAULT_STRENGTHS),
            "weaknesses": _as_list(parsed.get("weaknesses"), DEFAULT_WEAKNESSES),
            "recommendations": _as_list(parsed.get("recommendations"), DEFAULT_RECOMMENDATIONS),
            **totals,
        }

        try:
            with transaction(self.db, "save evaluation"):
                self.evaluations.add_results(session.id, criteria_results, report_fields)
        except IntegrityError:
            # A concurrent evaluation of the same session stored its report first
            logger.info("Report already stored by a concurrent request", extra={"session_id": session.id})
            return self.get_report(session)

        metrics.evaluations_total.labels(status="success").inc()
        return self.get_report(session)

    def get_report(self, session) -> Optional[Dict[str, Any]]:
        """
        Stored report of ``session`` with its per-criterion rows, or None.

        ``criteria`` lists the rows with display names; ``scores`` and
        ``comments`` give the same data keyed by criterion id.
        """
        report = self.evaluations.get_report(session.id)
        if report is None:
            return None

        names = {c.id: c.name for c in normalize_criteria(session.scenario.evaluation_criteria)}
        evaluations = self.evaluations.get_by_session(session.id)
        criteria = [
            {
                "id": e.criterion_id,
                "name": names.get(e.criterion_id, e.criterion_id),
                "score": e.score,
                "maxScore": e.max_score,
                "feedback": e.feedback,
            }
            for e in evaluations
        ]
        return {
            "sessionId": session.id,
            "summary": report.summary,
            "strengths": list(report.strengths or []),
            "weaknesses": list(report.weaknesses or []),
            "recommendations": list(report.recommendations or []),
            "totalScore": report.total_score,
            "maxScore": report.max_score,
            "percentage": report.percentage,
            "criteria": criteria,
            "scores": {c["id"]: c["score"] for c in criteria},
            "comments": {c["id"]: c["feedback"] for c in criteria},
            "createdAt": report.created_at,
        }
