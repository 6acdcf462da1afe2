"""
FastAPI application factory

    from ecosbot.api.main import create_app
    app = create_app()                      # configuration from the environment
    app = create_app(config, llm_provider)  # tests inject both

Startup order: logging, database (tables created if missing), LLM provider,
retrieval client with its cache, then the expiry sweep once the event loop
runs.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.cache import RetrievalCache
from ..core.config import AppConfig
from ..core.logging_setup import configure_logging
from ..database.config import DatabaseConfig
from ..llm.base import LLMProvider
from ..llm.factory import LLMProviderFactory
from ..services.retrieval import VectorRetriever
from ..services.sweeper import SessionExpirySweeper
from .exceptions import EcosAPIException
from .routers import (
    chat_router,
    ecos_router,
    metrics_router,
    student_router,
    teacher_router,
    training_sessions_router,
)

logger = logging.getLogger(__name__)

API_VERSION = "0.3.0"


def create_app(config: Optional[AppConfig] = None, llm_provider: Optional[LLMProvider] = None) -> FastAPI:
    config = config or AppConfig.from_env()
    configure_logging(config.log_level)

    db_config = DatabaseConfig(config.database_url)
    db_config.create_tables()

    if llm_provider is None:
        llm_provider = LLMProviderFactory.create_from_config(config)

    cache = RetrievalCache(redis_url=config.redis_url, ttl_seconds=config.cache_ttl_seconds)
    retriever = VectorRetriever(config, cache=cache)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = None
        if config.session_sweep_enabled:
            sweeper = SessionExpirySweeper(db_config, config, llm_provider)
            sweeper.start()
        logger.info("ECOS chatbot API started", extra={"version": API_VERSION})
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.stop()
            db_config.dispose()

    app = FastAPI(
        title="ECOS Chatbot API",
        description="Course assistant with daily quota and simulated-patient ECOS exams for an LMS",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.db_config = db_config
    app.state.llm_provider = llm_provider
    app.state.retriever = retriever

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EcosAPIException)
    async def ecos_exception_handler(request: Request, exc: EcosAPIException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} on {request.url.path}: {exc.detail}", extra=exc.extra)
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.detail, "errorCode": exc.error_code, **exc.extra},
            headers=exc.headers,
        )

    @app.get("/health", tags=["Monitoring"])
    async def health():
        return {
            "status": "healthy",
            "version": API_VERSION,
            "llmProvider": llm_provider.get_model_info(),
            "retrieval": retriever.enabled,
            "cacheBackend": cache.backend,
        }

    app.include_router(chat_router)
    app.include_router(ecos_router)
    app.include_router(student_router)
    app.include_router(training_sessions_router)
    app.include_router(teacher_router)
    app.include_router(metrics_router)

    return app
