"""
SQLite storage for the content index.

- schema: tables, FTS5 index, triggers and the bm25 relevance expression
- sqlite_pragmas: connection and shutdown PRAGMAs
- sqlite_storage: thread-local connection pool and the database handle
"""
