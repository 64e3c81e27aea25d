"""
Application context: the pool and metrics registry shared by handlers.

Built once before the listener is bound and closed on shutdown. Handlers
reach it through ``request.app.state.context``.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .core.config import Settings
from .core.metrics import Metrics
from .db.pool import Database

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    database: Database
    metrics: Metrics = field(default_factory=Metrics)

    @classmethod
    def from_settings(cls, settings: Settings, metrics: Optional[Metrics] = None) -> "AppContext":
        """
        Raises:
            QueryError: ``DB_POOL_MIN`` connections were requested and
                could not be opened
        """
        logger.info("[STARTUP] Initializing database connection pool...")
        logger.info(f"[STARTUP] DATABASE_URL: {settings.database.url_status}")
        return cls(
            settings=settings,
            database=Database(settings.database),
            metrics=metrics if metrics is not None else Metrics()
        )

    def close(self) -> None:
        self.database.close()
