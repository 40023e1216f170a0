"""HTTP surface of the content search service."""

from .search_endpoints import build_search_routes


__all__ = ["build_search_routes"]
