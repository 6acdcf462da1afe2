"""
Persistence for the ECOS chatbot

Users and their daily counters, course-assistant exchanges, scenarios,
training sessions with their rosters, and exam sessions with messages,
evaluations and reports. Routers and services go through the repositories;
multi-write operations use ``transaction()``.
"""
from .config import DatabaseConfig, get_db_session, init_database, get_db_config
from .base import Base
from .transaction import transaction, transactional

# ORM Models
from .models import (
    UserDB,
    DailyCounterDB,
    ExchangeDB,
    EcosScenarioDB,
    TrainingSessionDB,
    TrainingSessionScenarioDB,
    TrainingSessionStudentDB,
    EcosSessionDB,
    EcosMessageDB,
    EcosEvaluationDB,
    EcosReportDB,
)

# Repositories
from .repositories import (
    UserRepository,
    DailyCounterRepository,
    ExchangeRepository,
    ScenarioRepository,
    TrainingSessionRepository,
    EcosSessionRepository,
    EcosMessageRepository,
    EcosEvaluationRepository,
)

__all__ = [
    # Configuration
    "DatabaseConfig",
    "get_db_session",
    "init_database",
    "get_db_config",
    "Base",
    "transaction",
    "transactional",
    # Models
    "UserDB",
    "DailyCounterDB",
    "ExchangeDB",
    "EcosScenarioDB",
    "TrainingSessionDB",
    "TrainingSessionScenarioDB",
    "TrainingSessionStudentDB",
    "EcosSessionDB",
    "EcosMessageDB",
    "EcosEvaluationDB",
    "EcosReportDB",
    # Repositories
    "UserRepository",
    "DailyCounterRepository",
    "ExchangeRepository",
    "ScenarioRepository",
    "TrainingSessionRepository",
    "EcosSessionRepository",
    "EcosMessageRepository",
    "EcosEvaluationRepository",
]
