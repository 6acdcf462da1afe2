"""
Custom exceptions for the REST API

Every exception carries a machine-readable ``error_code`` and optional
``extra`` fields merged into the JSON body by the handler in ``api.main``:

    {"status": "error", "message": ..., "errorCode": ..., **extra}
"""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class EcosAPIException(HTTPException):
    """Base exception for the ECOS chatbot API"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, str]] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.extra = extra or {}


class MissingEmailError(EcosAPIException):
    """No user email was supplied"""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required",
            error_code="EMAIL_REQUIRED"
        )


class ScenarioNotFoundError(EcosAPIException):
    def __init__(self, scenario_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scenario '{scenario_id}' not found",
            error_code="SCENARIO_NOT_FOUND",
            extra={"scenarioId": scenario_id}
        )


class SessionNotFoundError(EcosAPIException):
    def __init__(self, session_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session '{session_id}' not found",
            error_code="SESSION_NOT_FOUND",
            extra={"sessionId": session_id}
        )


class TrainingSessionNotFoundError(EcosAPIException):
    def __init__(self, training_session_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Training session '{training_session_id}' not found",
            error_code="TRAINING_SESSION_NOT_FOUND",
            extra={"trainingSessionId": training_session_id}
        )


class ScenarioAccessDeniedError(EcosAPIException):
    """Student is not enrolled in an open training session containing the scenario"""

    def __init__(self, scenario_id: str):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Scenario is not available for this student",
            error_code="SCENARIO_ACCESS_DENIED",
            extra={"scenarioId": scenario_id}
        )


class AuthorizationError(EcosAPIException):
    def __init__(self, detail: str = "Not authorized to perform this action"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="AUTHORIZATION_FAILED"
        )


class SessionNotActiveError(EcosAPIException):
    """Patient turn on a session that is already completed (or just expired)"""

    def __init__(self, session_id: str, completion_reason: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="Session is not in progress",
            error_code="SESSION_NOT_ACTIVE",
            extra={"sessionId": session_id, "completionReason": completion_reason}
        )


class ScenarioInUseError(EcosAPIException):
    def __init__(self, scenario_id: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="Scenario is referenced by ECOS sessions and cannot be deleted",
            error_code="SCENARIO_IN_USE",
            extra={"scenarioId": scenario_id}
        )


class InvalidSessionTransitionError(EcosAPIException):
    def __init__(self, requested_status: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported session status transition to '{requested_status}'",
            error_code="INVALID_SESSION_TRANSITION",
            extra={"requestedStatus": requested_status}
        )


class InvalidTrainingWindowError(EcosAPIException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Training session end date must be after its start date",
            error_code="INVALID_TRAINING_WINDOW"
        )


class WebhookSignatureError(EcosAPIException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
            error_code="INVALID_SIGNATURE"
        )


class LLMServiceError(EcosAPIException):
    """Language model call failed"""

    def __init__(self, operation: str, details: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Language model unavailable during {operation}",
            error_code="LLM_UNAVAILABLE",
            extra={"operation": operation, "details": details}
        )


class EvaluationFailedError(EcosAPIException):
    def __init__(self, session_id: str, details: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Evaluation could not be generated",
            error_code="EVALUATION_FAILED",
            extra={"sessionId": session_id, "details": details}
        )


class DatabaseOperationError(EcosAPIException):
    """Write failed after rollback"""

    def __init__(self, operation: str, details: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database operation failed: {operation}",
            error_code="DATABASE_ERROR",
            extra={"operation": operation, "details": details}
        )


class EmptyMessageError(EcosAPIException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message is required",
            error_code="MESSAGE_REQUIRED"
        )


class ReportNotFoundError(EcosAPIException):
    """Session has no stored evaluation report yet"""

    def __init__(self, session_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No evaluation report for this session",
            error_code="REPORT_NOT_FOUND",
            extra={"sessionId": session_id}
        )
