"""Service layer - Business logic orchestration.

Following Cosmic Python Chapter 4:
- Service layer orchestrates use cases
- Works with domain model and repositories
- Raw request parameters are parsed once, at this boundary
"""

from .analytics_service import AnalyticsService
from .query_composer import QueryComposer, build_match_expression
from .search_service import SearchGateway


__all__ = [
    "AnalyticsService",
    "QueryComposer",
    "SearchGateway",
    "build_match_expression",
]
