"""
API Routes - health check, metrics scrape and the users resource.

- GET /healthz: liveness only, never touches the database
- GET /metrics: Prometheus text exposition
- GET /users: every stored user, ordered by id
- POST /users: insert one user and return the stored row

Database failures are counted here, where they are first seen, and then
re-raised for the application's error boundary to answer.
"""

import logging
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response

from ..context import AppContext
from ..core.exceptions import QueryError
from ..models.schemas import (
    UserCreate,
    User,
    HealthResponse,
    ErrorResponse
)

# Configure logging
logger = logging.getLogger(__name__)

# Create the router
router = APIRouter()

USERS_ENDPOINT = "/users"

SELECT_USERS = "SELECT * FROM users ORDER BY id"
INSERT_USER = "INSERT INTO users(name) VALUES (%s) RETURNING *"


def get_context(request: Request) -> AppContext:
    """Dependency returning the context the application was built with."""
    return request.app.state.context


# ============================================================
# Utility Endpoints
# ============================================================

@router.get(
    "/healthz",
    response_model=HealthResponse,
    summary="Health check",
    description="Liveness probe. Succeeds whenever the process is serving."
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/metrics",
    include_in_schema=False
)
async def scrape_metrics(ctx: AppContext = Depends(get_context)) -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=ctx.metrics.render(),
        media_type=ctx.metrics.content_type
    )


# ============================================================
# Users Endpoints
# ============================================================

@router.get(
    USERS_ENDPOINT,
    response_model=list[User],
    summary="List users",
    responses={
        500: {"model": ErrorResponse, "description": "Database failure"}
    }
)
async def list_users(ctx: AppContext = Depends(get_context)) -> list[dict]:
    """
    Return every user. An empty table yields an empty list.
    """
    try:
        async with ctx.metrics.track_query("select"):
            rows = await ctx.database.query(SELECT_USERS)
    except QueryError:
        ctx.metrics.record_error("database", USERS_ENDPOINT)
        raise

    logger.debug(f"Listed {len(rows)} users")
    return rows


@router.post(
    USERS_ENDPOINT,
    response_model=User,
    status_code=status.HTTP_200_OK,
    summary="Create a user",
    description="""
    Insert a user and return the stored row, including the id assigned
    by the database.

    A missing, empty or non-string `name` is rejected with 400 before the
    database is contacted.
    """,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid name"},
        500: {"model": ErrorResponse, "description": "Database failure"}
    }
)
async def create_user(
    payload: UserCreate,
    ctx: AppContext = Depends(get_context)
) -> dict:
    try:
        async with ctx.metrics.track_query("insert"):
            rows = await ctx.database.query(INSERT_USER, (payload.name,))
    except QueryError:
        ctx.metrics.record_error("database", USERS_ENDPOINT)
        raise

    user = rows[0]
    logger.info(f"Created user {user['id']}")
    return user
