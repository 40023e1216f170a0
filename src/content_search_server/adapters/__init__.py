"""Adapters layer - Repository implementations.

Following Cosmic Python Chapter 2: Repository Pattern
Abstracts content storage, text search and aggregation behind the domain model.
"""

from .content_repository import (
    AbstractContentRepository,
    SqliteContentRepository,
    build_search_query,
)


__all__ = [
    "AbstractContentRepository",
    "SqliteContentRepository",
    "build_search_query",
]
