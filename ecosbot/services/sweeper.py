"""
Background expiry sweep for abandoned ECOS sessions

Sessions are also expired on access; the sweep closes (and evaluates) the ones
nobody looks at again, e.g. when the student closed the browser tab.
"""
import logging
from datetime import datetime
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..core.config import AppConfig
from ..database.config import DatabaseConfig, get_db_session
from .evaluation import EvaluationEngine
from .session_lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)


class SessionExpirySweeper:
    JOB_ID = "ecos_session_expiry"

    def __init__(self, db_config: DatabaseConfig, config: AppConfig, llm_provider):
        self.db_config = db_config
        self.config = config
        self.llm_provider = llm_provider
        self.scheduler: Optional[AsyncIOScheduler] = None

    def start(self) -> None:
        """Schedule the sweep; must be called from a running event loop."""
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.sweep_now,
            IntervalTrigger(seconds=self.config.session_sweep_interval_seconds),
            id=self.JOB_ID,
            name="Expire overdue ECOS sessions",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Session expiry sweep scheduled every {self.config.session_sweep_interval_seconds}s")

    def stop(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Session expiry sweep stopped")
        self.scheduler = None

    async def sweep_now(self, now: Optional[datetime] = None) -> List[str]:
        """Run one sweep. Errors are logged so the schedule keeps running."""
        try:
            with get_db_session(self.db_config) as db:
                engine = EvaluationEngine(db, self.llm_provider, self.config)
                lifecycle = SessionLifecycleManager(db, self.config, evaluation_engine=engine)
                return await lifecycle.expire_overdue(now)
        except Exception as e:
            logger.error(f"Session expiry sweep failed: {e}", exc_info=True)
            return []
