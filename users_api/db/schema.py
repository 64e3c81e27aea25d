"""
Schema bootstrap for the users table.

``CREATE TABLE IF NOT EXISTS`` makes the bootstrap safe to repeat on
every restart; the table never changes shape, so there is no migration
versioning.
"""

import logging

from ..core.exceptions import QueryError, SchemaError
from ..core.metrics import Metrics
from .pool import Database

# Configure logging
logger = logging.getLogger(__name__)

CREATE_USERS_TABLE = (
    "CREATE TABLE IF NOT EXISTS users ("
    "id SERIAL PRIMARY KEY, "
    "name VARCHAR(100) NOT NULL)"
)

VERIFY_USERS_TABLE = (
    "SELECT EXISTS ("
    "SELECT FROM information_schema.tables WHERE table_name = 'users'"
    ")"
)


async def ensure_schema(database: Database, metrics: Metrics) -> None:
    """
    Create the users table if it is missing, then verify it exists.

    Raises:
        QueryError: Either statement failed
        SchemaError: The table is still missing after creation
    """
    try:
        logger.info("[SCHEMA] Ensuring users table exists...")
        logger.debug(f"[SCHEMA] SQL: {CREATE_USERS_TABLE}")
        async with metrics.track_query("create_table"):
            await database.query(CREATE_USERS_TABLE)

        async with metrics.track_query("verify_table"):
            rows = await database.query(VERIFY_USERS_TABLE)

        present = bool(rows and rows[0].get("exists"))
        logger.info(f"[SCHEMA] Table verification: exists={present}")
        if not present:
            raise SchemaError("users table not found after CREATE TABLE")

    except (QueryError, SchemaError) as e:
        logger.error(f"[SCHEMA] CRITICAL: Failed to ensure DB schema: {e}")
        metrics.record_error("schema_initialization", "/schema")
        raise

    logger.info("[SCHEMA] users table is ready")
