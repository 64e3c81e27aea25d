"""
Exception types raised by the users API.
"""


class UsersApiError(Exception):
    """Base class for errors raised by this service."""


class QueryError(UsersApiError):
    """
    A statement sent through the connection pool failed.

    The driver exception is chained as ``__cause__``; its text is logged
    but never sent to API clients.
    """

    def __init__(self, message: str, sql: str = ""):
        super().__init__(message)
        self.sql = sql


class SchemaError(UsersApiError):
    """The users table could not be created or was not found afterwards."""
