"""
Analytics platform clients: query generation, query execution and batch updates.
"""

from .engage import ProfileBatchUpdater
from .query_builder import build_missing_fields_query
from .query_client import JQLClient

__all__ = [
    "JQLClient",
    "ProfileBatchUpdater",
    "build_missing_fields_query",
]
