"""
Request/response schemas (camelCase on the wire)
"""
from .common import CamelModel, StatusResponse
from .chat import (
    AskRequest,
    AskResponse,
    ExchangeResponse,
    HistoryResponse,
    QuotaStatusResponse,
    WebhookRequest,
    WebhookResponse,
)
from .ecos import (
    EcosSessionResponse,
    EvaluateRequest,
    GenerateCriteriaRequest,
    GenerateCriteriaResponse,
    MessageResponse,
    PatientMessageRequest,
    PatientMessageResponse,
    PromptAssistantRequest,
    PromptAssistantResponse,
    ReportEnvelope,
    ReportResponse,
    ScenarioCreateRequest,
    ScenarioListResponse,
    ScenarioResponse,
    ScenarioUpdateRequest,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionListResponse,
    SessionStartResponse,
    SessionUpdateRequest,
    SessionUpdateResponse,
)
from .training import (
    AvailableScenariosResponse,
    TrainingSessionCreateRequest,
    TrainingSessionEnvelope,
    TrainingSessionListResponse,
    TrainingSessionResponse,
    TrainingSessionUpdateRequest,
)
from .teacher import DashboardResponse
