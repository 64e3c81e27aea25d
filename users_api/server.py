"""
Process entry point for the users API.

Startup sequence:

    configure logging -> build context (pool + metrics)
    -> SELECT 1 -> ensure users table -> install fault handlers
    -> bind the HTTP listener

Any failure before the listener is bound exits the process with
status 1. An uncaught exception later on is logged, counted, and exits
with status 1 after a short delay so log output can flush.
"""

import asyncio
import logging
import os
import sys
import threading
from typing import Optional

import uvicorn

from .context import AppContext
from .core.config import Settings
from .core.exceptions import UsersApiError
from .core.metrics import Metrics
from .db.schema import ensure_schema
from .main import create_app

logger = logging.getLogger(__name__)

EXIT_DELAY_SECONDS = 1.0


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


async def bootstrap(ctx: AppContext) -> None:
    """
    Verify connectivity and make sure the schema exists.

    Raises:
        UsersApiError: The database is unreachable or the schema could
            not be ensured; the listener must not be started.
    """
    logger.info("[STARTUP] Checking DB connection...")
    try:
        async with ctx.metrics.track_query("ping"):
            await ctx.database.query("SELECT 1")
    except UsersApiError:
        ctx.metrics.record_error("startup_failed", "main")
        raise
    logger.info("[STARTUP] DB connection OK")

    logger.info("[STARTUP] Ensuring schema...")
    await ensure_schema(ctx.database, ctx.metrics)
    logger.info("[STARTUP] Schema initialization complete")


def schedule_exit(delay: float = EXIT_DELAY_SECONDS, code: int = 1) -> threading.Timer:
    """Exit the process with ``code`` after ``delay`` seconds."""
    timer = threading.Timer(delay, os._exit, args=(code,))
    timer.start()
    return timer


def install_fault_handlers(metrics: Metrics, exit_delay: float = EXIT_DELAY_SECONDS) -> None:
    """
    Route uncaught exceptions (main thread and worker threads) to the log
    and the error counter, then terminate the process.
    """

    def handle(exc_type, exc_value, exc_tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            f"uncaughtException: {exc_value}",
            exc_info=(exc_type, exc_value, exc_tb)
        )
        metrics.record_error("uncaughtException", "process")
        schedule_exit(exit_delay)

    def handle_thread(args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return
        handle(args.exc_type, args.exc_value, args.exc_traceback)

    sys.excepthook = handle
    threading.excepthook = handle_thread


def main(settings: Optional[Settings] = None) -> None:
    """Run the startup sequence and serve until the process is killed."""
    settings = settings or Settings()
    configure_logging(settings.server.log_level)

    metrics = Metrics()
    ctx = None
    try:
        ctx = AppContext.from_settings(settings, metrics=metrics)
        asyncio.run(bootstrap(ctx))
    except UsersApiError as e:
        logger.error(f"[STARTUP] FAILED: {e}", exc_info=e)
        if ctx is None:
            # bootstrap counts its own failures
            metrics.record_error("startup_failed", "main")
        else:
            ctx.close()
        sys.exit(1)

    install_fault_handlers(ctx.metrics)

    app = create_app(ctx)
    logger.info(f"[STARTUP] Starting server on {settings.server.host}:{settings.server.port}")
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
