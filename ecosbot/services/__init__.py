"""
Business services
"""
from .quota import QuotaStatus, QuotaTracker
from .chat_service import ChatService
from .evaluation import EvaluationEngine, aggregate_scores, normalize_criteria
from .session_lifecycle import SessionLifecycleManager
from .access import ScenarioAccessPolicy
from .patient_simulation import PatientSimulationService
from .prompt_assistant import PromptAssistant
from .registration import RegistrationService
from .retrieval import VectorRetriever
from .sweeper import SessionExpirySweeper

__all__ = [
    "QuotaStatus",
    "QuotaTracker",
    "ChatService",
    "EvaluationEngine",
    "aggregate_scores",
    "normalize_criteria",
    "SessionLifecycleManager",
    "ScenarioAccessPolicy",
    "PatientSimulationService",
    "PromptAssistant",
    "RegistrationService",
    "VectorRetriever",
    "SessionExpirySweeper",
]
