"""Domain layer - pure business types with no infrastructure dependencies.

Following Cosmic Python Chapter 2 (Repository Pattern), this layer contains:
- Entities: objects with identity (``ContentRecord``)
- Value Objects: immutable objects defined by their attributes
  (``SearchFilters``, ``SortKey``, ``SearchSpec``)

Nothing here touches SQLite, HTTP or the event loop.
"""
