"""
FastAPI Application Factory

Builds the users API around an already constructed ``AppContext``:
CORS, per-request Prometheus metrics, the request-validation handler,
the catch-all error boundary and the route table.

Startup work that needs the database (connectivity check, schema
bootstrap) happens in ``users_api.server`` before this app is served,
so a broken database never gets a bound listener.
"""

import asyncio
import logging
import time
from http import HTTPStatus
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .api.routes import router
from .context import AppContext
from .core.exceptions import QueryError
from .core.metrics import Metrics

logger = logging.getLogger(__name__)

# Request-state key set once the response headers have been sent
RESPONSE_STARTED = "response_started"


# ============================================================
# Application Lifespan Handler
# ============================================================

def _loop_exception_handler(metrics: Metrics):
    """
    Build an asyncio exception handler for failures outside any request,
    such as a background task whose exception was never retrieved.
    """

    def handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        logger.error(
            f"Unhandled async error: {context.get('message', exc)}",
            exc_info=exc
        )
        metrics.record_error("unhandledRejection", "process")

    return handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: route un-retrieved task exceptions to the metrics registry
    - Shutdown: close the connection pool
    """
    ctx: AppContext = app.state.context
    asyncio.get_running_loop().set_exception_handler(
        _loop_exception_handler(ctx.metrics)
    )

    yield  # Application runs here

    logger.info("API shutting down...")
    ctx.close()


# ============================================================
# Exception Handlers
# ============================================================

def _validation_error_code(exc: RequestValidationError) -> str:
    for error in exc.errors():
        if error.get("type") == "string_too_long" and "name" in error.get("loc", ()):
            return "name_too_long"
    return "name_required"


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Reject an invalid body with 400 before any database work.

    Validation failures are client errors: logged, never counted as
    errors in the metrics.
    """
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": _validation_error_code(exc)}
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """
    Give routing errors (unknown path, wrong method) the same
    ``{"error": ...}`` body as every other failure.
    """
    try:
        code = HTTPStatus(exc.status_code).phrase.lower().replace(" ", "_")
    except ValueError:
        code = "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": code},
        headers=getattr(exc, "headers", None)
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Error boundary: turn any unhandled failure into a uniform 500.

    Query failures were already counted by the handler that caught them;
    anything else is counted here as "unhandled". When the response had
    already started, the failure is only logged: Starlette does not send
    this second response.
    """
    logger.error(f"Unhandled error: {exc}", exc_info=exc)

    response_started = request.scope.get("state", {}).get(RESPONSE_STARTED, False)
    if not response_started and not isinstance(exc, QueryError):
        request.app.state.context.metrics.record_error("unhandled", request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_server_error"}
    )


# ============================================================
# Middleware
# ============================================================

class RequestMetricsMiddleware:
    """
    Track in-flight requests and record duration and final status.

    The completion hook runs exactly once, in ``finally``. The status is
    the one sent in ``http.response.start``; a downstream exception before
    that point is recorded as 500. Whether the response has started is
    stored in the request state for the error boundary.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        metrics: Metrics = scope["app"].state.context.metrics
        state = scope.setdefault("state", {})
        state[RESPONSE_STARTED] = False
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        async def send_with_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                state[RESPONSE_STARTED] = True
            await send(message)

        start = time.perf_counter()
        metrics.request_started()
        try:
            await self.app(scope, receive, send_with_status)
        finally:
            route = scope.get("route")
            route_path = getattr(route, "path", None) or scope["path"]
            metrics.request_finished(
                scope["method"],
                route_path,
                status_code,
                time.perf_counter() - start
            )


# ============================================================
# FastAPI Application Instance
# ============================================================

def create_app(context: AppContext) -> FastAPI:
    """
    Create the FastAPI application bound to ``context``.
    """
    settings = context.settings
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.context = context

    app.add_middleware(RequestMetricsMiddleware)

    allow_all = "*" in settings.server.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.server.cors_origins),
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(router)

    return app
