"""
Configuration module for the users API.

Reads the PostgreSQL connection string, pool limits and HTTP listener
settings from environment variables. Nothing here talks to the network;
a missing DATABASE_URL is accepted and only surfaces when the startup
connectivity check runs.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Immutable configuration for the PostgreSQL connection pool.

    Attributes:
        url: libpq connection string (DSN or URI), may be empty
        pool_min: Connections opened eagerly when the pool is created
        pool_max: Upper bound on open connections and concurrent queries
    """
    url: str = ""
    pool_min: int = 0
    pool_max: int = 10

    @property
    def url_status(self) -> str:
        """Loggable description of the connection string (never the value)."""
        return "SET" if self.url else "NOT SET"


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the HTTP listener.

    Attributes:
        host: Interface to bind
        port: Port to bind
        log_level: Root log level name
        cors_origins: Origins allowed by the CORS middleware
    """
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)


class Settings:
    """
    Central settings manager that aggregates all configuration.

    Built from an environment mapping (``os.environ`` unless one is
    given) so tests can construct settings without touching the process
    environment.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        env = os.environ if environ is None else environ

        self.database = DatabaseConfig(
            url=env.get("DATABASE_URL", ""),
            pool_min=int(env.get("DB_POOL_MIN", "0")),
            pool_max=int(env.get("DB_POOL_MAX", "10"))
        )

        self.server = ServerConfig(
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT") or "3000"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            cors_origins=_split_origins(env.get("CORS_ORIGINS", "*"))
        )

        if self.database.pool_max < 1:
            raise ValueError("DB_POOL_MAX must be at least 1")
        if not 0 <= self.database.pool_min <= self.database.pool_max:
            raise ValueError("DB_POOL_MIN must be between 0 and DB_POOL_MAX")

    @property
    def api_title(self) -> str:
        """API title for OpenAPI documentation."""
        return "Users API"

    @property
    def api_version(self) -> str:
        """API version string."""
        from .. import __version__
        return __version__


def _split_origins(raw: str) -> tuple[str, ...]:
    origins = tuple(o.strip() for o in raw.split(",") if o.strip())
    return origins or ("*",)
