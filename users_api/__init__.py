"""
Users API

A minimal CRUD backend exposing a single ``users`` resource stored in
PostgreSQL, instrumented with Prometheus metrics.
"""

__version__ = "1.0.0"
