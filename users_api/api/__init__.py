"""
API module containing the HTTP routes.
"""

from .routes import router, get_context

__all__ = ["router", "get_context"]
