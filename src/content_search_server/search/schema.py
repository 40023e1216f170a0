"""SQLite schema for content records and their FTS5 text index.

``content_fts`` is a standalone FTS5 table keyed by ``content_records.seq``
and kept in step by triggers, so every write to a record updates its text
index inside the same transaction. Tags and categories are stored as JSON
arrays and indexed as space-joined text.
"""

from __future__ import annotations

import sqlite3

from content_search_server.domain.model import CONTENT_TYPES


SCHEMA_VERSION = 1

# Relative bm25() weights, in content_fts column order.
FTS_COLUMN_WEIGHTS: dict[str, float] = {
    "title": 10.0,
    "content": 5.0,
    "tags": 8.0,
    "categories": 6.0,
}

FTS_TOKENIZER = "porter unicode61 remove_diacritics 2"

_FTS_COLUMNS = ", ".join(FTS_COLUMN_WEIGHTS)
_CONTENT_TYPE_CHECK = ", ".join(f"'{content_type}'" for content_type in CONTENT_TYPES)

_FTS_VALUES = (
    "new.seq, new.title, new.content, "
    "(SELECT group_concat(value, ' ') FROM json_each(new.tags)), "
    "(SELECT group_concat(value, ' ') FROM json_each(new.categories))"
)

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS content_records (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    business_id TEXT NOT NULL,
    franchise_id TEXT,
    content_type TEXT NOT NULL CHECK (content_type IN ({_CONTENT_TYPE_CHECK})),
    content_id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    categories TEXT NOT NULL DEFAULT '[]',
    rating INTEGER CHECK (rating IS NULL OR rating BETWEEN 1 AND 5),
    sentiment TEXT CHECK (sentiment IS NULL OR sentiment IN ('positive', 'negative', 'neutral')),
    language TEXT NOT NULL DEFAULT 'en',
    source TEXT,
    author TEXT,
    custom TEXT,
    searchable_fields TEXT NOT NULL DEFAULT '{{}}',
    is_active INTEGER NOT NULL DEFAULT 1,
    indexed_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_records_business_type ON content_records(business_id, content_type, is_active);
CREATE INDEX IF NOT EXISTS idx_records_franchise_type ON content_records(franchise_id, content_type, is_active);
CREATE INDEX IF NOT EXISTS idx_records_content_ref ON content_records(content_id, content_type);
CREATE INDEX IF NOT EXISTS idx_records_rating ON content_records(rating, indexed_at DESC);
CREATE INDEX IF NOT EXISTS idx_records_sentiment ON content_records(sentiment, indexed_at DESC);
CREATE INDEX IF NOT EXISTS idx_records_language ON content_records(language, is_active);
CREATE INDEX IF NOT EXISTS idx_records_indexed_at ON content_records(indexed_at DESC);

CREATE TABLE IF NOT EXISTS content_sources (
    id TEXT PRIMARY KEY,
    name TEXT,
    description TEXT
) WITHOUT ROWID;

CREATE TABLE IF NOT EXISTS franchises (
    id TEXT PRIMARY KEY,
    name TEXT
) WITHOUT ROWID;

CREATE VIRTUAL TABLE IF NOT EXISTS content_fts USING fts5(
    {_FTS_COLUMNS},
    tokenize = '{FTS_TOKENIZER}'
);

CREATE TRIGGER IF NOT EXISTS content_records_ai AFTER INSERT ON content_records BEGIN
    INSERT INTO content_fts(rowid, title, content, tags, categories) VALUES ({_FTS_VALUES});
END;

CREATE TRIGGER IF NOT EXISTS content_records_ad AFTER DELETE ON content_records BEGIN
    DELETE FROM content_fts WHERE rowid = old.seq;
END;

CREATE TRIGGER IF NOT EXISTS content_records_au
AFTER UPDATE OF title, content, tags, categories ON content_records BEGIN
    DELETE FROM content_fts WHERE rowid = old.seq;
    INSERT INTO content_fts(rowid, title, content, tags, categories) VALUES ({_FTS_VALUES});
END;
"""


def bm25_expression() -> str:
    """Return the weighted relevance expression (higher is better)."""
    weights = ", ".join(str(weight) for weight in FTS_COLUMN_WEIGHTS.values())
    return f"-bm25(content_fts, {weights})"


def create_schema(conn: sqlite3.Connection) -> None:
    """Create tables, indexes and triggers if they do not exist yet."""
    conn.executescript(SCHEMA_SQL)
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
