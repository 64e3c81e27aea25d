"""
Database module: connection pool and schema bootstrap.
"""

from .pool import Database
from .schema import ensure_schema

__all__ = ["Database", "ensure_schema"]
