"""
API routers
"""
from .chat import router as chat_router
from .ecos import router as ecos_router
from .metrics import router as metrics_router
from .student import router as student_router
from .teacher import router as teacher_router
from .training_sessions import router as training_sessions_router

__all__ = [
    "chat_router",
    "ecos_router",
    "metrics_router",
    "student_router",
    "teacher_router",
    "training_sessions_router",
]
