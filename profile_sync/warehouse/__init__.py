"""
Operational database access.
"""

from .connection import DatabaseConnectionPool
from .resolver import RecordResolver

__all__ = [
    "DatabaseConnectionPool",
    "RecordResolver",
]
