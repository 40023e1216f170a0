"""Content search server: full-text search, indexing and analytics over SQLite FTS5."""

__version__ = "1.0.0"
