"""
Simulated patient for ECOS exams

The agent role-plays the patient described by a scenario. The scenario's
``patient_prompt`` is authoritative; the behavioural rules below keep the
model inside the case (no invented symptoms, lay vocabulary).
"""
from typing import Any, Dict, List, Optional
import logging

from ..core.constants import MESSAGE_ROLE_USER, MESSAGE_ROLE_ASSISTANT
from ..core.logging_setup import sanitize_for_logs
from ..llm.base import LLMMessage, LLMRole

logger = logging.getLogger(__name__)

PATIENT_TEMPERATURE = 0.7
PATIENT_MAX_TOKENS = 1000
FALLBACK_PATIENT_ANSWER = "Je ne peux pas répondre à cette question maintenant."


class PatientSimulatorAgent:
    """
    Builds the patient persona from a scenario and answers the student.

    Args:
        llm_provider: any ``LLMProvider``
        message_repo: ``EcosMessageRepository`` used to replay the transcript
        retriever: optional ``VectorRetriever`` for scenarios with a
            dedicated reference index
    """

    def __init__(self, llm_provider, message_repo=None, retriever=None):
        self.llm_provider = llm_provider
        self.message_repo = message_repo
        self.retriever = retriever

    @staticmethod
    def build_system_prompt(scenario, reference_material: str = "") -> str:
        description = scenario.description or "Pas de description disponible"
        prompt = f"""CONTEXTE DU SCÉNARIO: {scenario.title}
Description: {description}

RÔLE ET INSTRUCTIONS SPÉCIFIQUES (À RESPECTER ABSOLUMENT):
{scenario.patient_prompt}

INSTRUCTIONS COMPORTEMENTALES OBLIGATOIRES:
- Tu incarnes CE patient précis dans ce scénario médical spécifique
- Reste STRICTEMENT cohérent avec la pathologie décrite: {description}
- Ne jamais inventer d'autres symptômes ou pathologies
- Réponds uniquement en lien avec le cas médical présenté
- Si l'étudiant pose des questions non liées au cas, rappelle-lui poliment le motif de consultation
- Utilise un langage de patient (pas de termes médicaux techniques)
- Sois réaliste dans tes émotions et préoccupations de patient/parent"""

        if reference_material:
            prompt += f"\n\nContexte médical disponible:\n{reference_material}"
        return prompt

    def _load_conversation_history(self, session_id: str) -> List[LLMMessage]:
        """Replay the stored transcript as LLM messages, in sequence order."""
        if self.message_repo is None:
            return []

        messages = []
        for message in self.message_repo.get_by_session(session_id):
            if not message.content:
                continue
            if message.role == MESSAGE_ROLE_USER:
                messages.append(LLMMessage(role=LLMRole.USER, content=message.content))
            elif message.role == MESSAGE_ROLE_ASSISTANT:
                messages.append(LLMMessage(role=LLMRole.ASSISTANT, content=message.content))

        logger.debug(
            f"Loaded conversation history: {len(messages)} messages",
            extra={"session_id": session_id}
        )
        return messages

    async def _reference_material(self, scenario, student_input: str) -> str:
        if not self.retriever or not scenario.pinecone_index:
            return ""
        passages = await self.retriever.search(student_input, index_name=scenario.pinecone_index)
        return "\n\n".join(p["content"] for p in passages if p.get("content"))

    async def interact(self, scenario, student_input: str, session_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Answer ``student_input`` as the scenario's patient.

        Returns:
            {"message": str, "metadata": {"llm_model", "tokens_used", "reference_used"}}

        Raises:
            Exception: provider errors propagate so the turn is not recorded
        """
        reference = await self._reference_material(scenario, student_input)

        messages = [LLMMessage(role=LLMRole.SYSTEM, content=self.build_system_prompt(scenario, reference))]
        if session_id:
            messages.extend(self._load_conversation_history(session_id))
        messages.append(LLMMessage(role=LLMRole.USER, content=student_input))

        logger.info(
            f"Generating patient answer for {sanitize_for_logs(student_input)}",
            extra={"session_id": session_id, "scenario_id": scenario.id}
        )
        response = await self.llm_provider.generate(
            messages=messages,
            temperature=PATIENT_TEMPERATURE,
            max_tokens=PATIENT_MAX_TOKENS,
        )

        return {
            "message": response.content.strip() or FALLBACK_PATIENT_ANSWER,
            "metadata": {
                "llm_model": response.model,
                "tokens_used": response.usage.get("total_tokens", 0),
                "reference_used": bool(reference),
            },
        }
