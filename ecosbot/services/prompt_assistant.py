"""
Teacher assistance: draft a patient prompt or an evaluation rubric
"""
import copy
import json
import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional

from ..api.exceptions import LLMServiceError
from ..core.constants import DEFAULT_EVALUATION_CRITERIA
from ..llm.base import LLMMessage, LLMRole

logger = logging.getLogger(__name__)

PATIENT_PROMPT_SYSTEM = """Tu es un expert en création de scénarios ECOS (Examen Clinique Objectif Structuré).
Tu dois créer un prompt détaillé et réaliste pour simuler un patient virtuel.

Le prompt doit:
1. Définir clairement l'identité du patient (âge, sexe, profession, etc.)
2. Décrire les symptômes actuels et l'histoire de la maladie
3. Inclure les antécédents médicaux pertinents
4. Préciser l'état émotionnel et le comportement du patient
5. Définir ce que le patient sait et ne sait pas sur sa condition
6. Inclure des détails sur la personnalité du patient
7. Spécifier comment le patient doit réagir aux différents types de questions

Le prompt résultant sera utilisé pour faire jouer le rôle du patient à une IA lors d'un ECOS avec un étudiant en médecine."""

CRITERIA_SYSTEM = """Tu es un expert en évaluation ECOS. Crée des critères d'évaluation structurés pour ce scénario clinique.

Les critères couvrent en général:
1. Communication (écoute, empathie, clarté)
2. Anamnèse (questions pertinentes, organisation)
3. Examen clinique (techniques, systématique)
4. Raisonnement clinique (diagnostic différentiel, hypothèses)
5. Prise en charge (plan thérapeutique, suivi)

Retourne UNIQUEMENT un objet JSON dont chaque clé est un identifiant court
(minuscules, sans accents, underscores) et chaque valeur un objet
{"name": "...", "description": "...", "maxScore": 4}."""


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "_", normalized.lower()).strip("_") or "critere"


def coerce_criteria(parsed: Any) -> Optional[Dict[str, Dict[str, Any]]]:
    """
    Accept either a map ``{id: {...}}`` or ``{"criteria": [{name, maxScore}, ...]}``.
    Returns None when nothing usable is found.
    """
    if isinstance(parsed, dict) and isinstance(parsed.get("criteria"), list):
        items = parsed["criteria"]
    elif isinstance(parsed, dict):
        items = [dict(value, id=key) for key, value in parsed.items() if isinstance(value, dict)]
    else:
        return None

    criteria: Dict[str, Dict[str, Any]] = {}
    for item in items:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        max_score = item.get("maxScore", item.get("weight", 4))
        if isinstance(max_score, bool) or not isinstance(max_score, (int, float)) or max_score <= 0:
            max_score = 4
        criterion = {"name": str(item["name"]), "maxScore": max_score}
        if item.get("description"):
            criterion["description"] = str(item["description"])
        criteria[slugify(str(item.get("id") or item["name"]))] = criterion

    return criteria or None


class PromptAssistant:
    def __init__(self, llm_provider, retriever=None):
        self.llm_provider = llm_provider
        self.retriever = retriever

    async def _generate(self, system: str, user: str, operation: str, json_mode: bool = False) -> str:
        try:
            response = await self.llm_provider.generate(
                messages=[
                    LLMMessage(role=LLMRole.SYSTEM, content=system),
                    LLMMessage(role=LLMRole.USER, content=user),
                ],
                temperature=0.7,
                max_tokens=1500,
                json_mode=json_mode,
            )
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            raise LLMServiceError(operation, str(e))
        return response.content.strip()

    async def generate_patient_prompt(self, teacher_input: str, context_docs: Optional[List[str]] = None) -> str:
        context = [doc for doc in (context_docs or []) if doc]
        if self.retriever is not None:
            context.extend(p["content"] for p in await self.retriever.search(teacher_input))

        user_prompt = (
            "Crée un prompt détaillé pour un patient virtuel basé sur cette description du scénario clinique:\n\n"
            f"{teacher_input}\n\n"
        )
        if context:
            joined = "\n\n".join(context)
            user_prompt += f"Utilise également ces informations contextuelles pour enrichir le scénario:\n{joined}\n\n"
        user_prompt += (
            "Assure-toi que le prompt soit suffisamment détaillé pour permettre une interaction "
            "réaliste et pédagogique de 15-20 minutes."
        )
        return await self._generate(PATIENT_PROMPT_SYSTEM, user_prompt, "patient prompt generation")

    async def generate_criteria(self, scenario_description: str) -> Dict[str, Dict[str, Any]]:
        """Proposed rubric; the default rubric when the model output is not usable JSON."""
        text = await self._generate(
            CRITERIA_SYSTEM,
            f"Crée des critères d'évaluation pour ce scénario ECOS:\n\n{scenario_description}",
            "criteria generation",
            json_mode=True,
        )

        start, end = text.find("{"), text.rfind("}") + 1
        criteria = None
        if start != -1 and end > start:
            try:
                criteria = coerce_criteria(json.loads(text[start:end]))
            except json.JSONDecodeError as e:
                logger.warning(f"Criteria response is not valid JSON: {e}")

        if criteria is None:
            logger.info("Falling back to the default evaluation rubric")
            return copy.deepcopy(DEFAULT_EVALUATION_CRITERIA)
        return criteria
