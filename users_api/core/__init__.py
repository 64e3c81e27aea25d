"""
Core module containing configuration, errors and metrics.
"""

from .config import Settings, DatabaseConfig, ServerConfig
from .exceptions import UsersApiError, QueryError, SchemaError
from .metrics import Metrics

__all__ = [
    "Settings",
    "DatabaseConfig",
    "ServerConfig",
    "UsersApiError",
    "QueryError",
    "SchemaError",
    "Metrics",
]
