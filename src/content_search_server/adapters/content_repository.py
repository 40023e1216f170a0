"""Content repository abstractions and the SQLite implementation.

Defines the storage layer following the Repository Pattern: the service
layer talks to ``AbstractContentRepository`` and never sees SQL. The SQLite
implementation runs every blocking call in a worker thread and turns
``sqlite3`` failures into ``StorageError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
import logging
import sqlite3
from typing import Any, TypeVar

from anyio import to_thread
import orjson

from content_search_server.domain.model import (
    ContentHit,
    ContentRecord,
    ContentTypeStats,
    Suggestion,
    TagCount,
)
from content_search_server.domain.search import SearchSpec
from content_search_server.errors import StorageError
from content_search_server.observability.metrics import ERROR_COUNT, STORAGE_LATENCY, track_latency
from content_search_server.search.schema import bm25_expression
from content_search_server.search.sqlite_storage import SqliteDatabase


logger = logging.getLogger(__name__)

T = TypeVar("T")

_RECORD_COLUMNS = (
    "id",
    "business_id",
    "franchise_id",
    "content_type",
    "content_id",
    "title",
    "content",
    "tags",
    "categories",
    "rating",
    "sentiment",
    "language",
    "source",
    "author",
    "custom",
    "searchable_fields",
    "is_active",
    "indexed_at",
    "created_at",
    "updated_at",
)

_INSERT_SQL = (
    f"INSERT INTO content_records ({', '.join(_RECORD_COLUMNS)}) "
    f"VALUES ({', '.join(':' + column for column in _RECORD_COLUMNS)})"
)

_UPDATE_SQL = (
    "UPDATE content_records SET "
    + ", ".join(f"{column} = :{column}" for column in _RECORD_COLUMNS if column not in ("id", "created_at"))
    + " WHERE id = :id"
)

_HIT_COLUMNS = (
    "r.*, cs.name AS source_name, cs.description AS source_description, f.name AS franchise_name"
)

_REFERENCE_JOINS = (
    "LEFT JOIN content_sources cs ON cs.id = r.content_id "
    "LEFT JOIN franchises f ON f.id = r.franchise_id"
)

_SORT_COLUMNS = {
    "score": "score",
    "metadata.rating": "r.rating",
    "indexedAt": "r.indexed_at",
}


def format_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with fixed microsecond width, so text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dump_json(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def record_to_row(record: ContentRecord) -> dict[str, Any]:
    """Flatten a record into named SQL parameters."""
    metadata = record.metadata
    return {
        "id": record.id,
        "business_id": record.business_id,
        "franchise_id": record.franchise_id,
        "content_type": record.content_type,
        "content_id": record.content_id,
        "title": record.title,
        "content": record.content,
        "tags": _dump_json(record.tags),
        "categories": _dump_json(record.categories),
        "rating": metadata.rating,
        "sentiment": metadata.sentiment,
        "language": metadata.language,
        "source": metadata.source,
        "author": metadata.author,
        "custom": _dump_json(metadata.custom) if metadata.custom is not None else None,
        "searchable_fields": _dump_json(record.searchable_fields),
        "is_active": int(record.is_active),
        "indexed_at": format_timestamp(record.indexed_at),
        "created_at": format_timestamp(record.created_at),
        "updated_at": format_timestamp(record.updated_at),
    }


def _record_fields(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "business_id": row["business_id"],
        "franchise_id": row["franchise_id"],
        "content_type": row["content_type"],
        "content_id": row["content_id"],
        "title": row["title"],
        "content": row["content"],
        "tags": orjson.loads(row["tags"]),
        "categories": orjson.loads(row["categories"]),
        "metadata": {
            "rating": row["rating"],
            "sentiment": row["sentiment"],
            "language": row["language"],
            "source": row["source"],
            "author": row["author"],
            "custom": orjson.loads(row["custom"]) if row["custom"] is not None else None,
        },
        "searchable_fields": orjson.loads(row["searchable_fields"]),
        "is_active": bool(row["is_active"]),
        "indexed_at": row["indexed_at"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def row_to_record(row: sqlite3.Row) -> ContentRecord:
    return ContentRecord.model_validate(_record_fields(row))


def row_to_hit(row: sqlite3.Row) -> ContentHit:
    """Build a populated hit from a row selected with the reference joins."""
    fields = _record_fields(row)
    fields["content_id"] = {
        "id": row["content_id"],
        "name": row["source_name"],
        "description": row["source_description"],
    }
    if row["franchise_id"] is not None:
        fields["franchise_id"] = {"id": row["franchise_id"], "name": row["franchise_name"]}
    if "score" in row.keys() and row["score"] is not None:
        fields["score"] = float(row["score"])
    return ContentHit.model_validate(fields)


def _in_clause(column_sql: str, values: Sequence[str], params: list[Any]) -> str:
    params.extend(values)
    placeholders = ", ".join("?" for _ in values)
    return f"EXISTS (SELECT 1 FROM json_each({column_sql}) WHERE json_each.value IN ({placeholders}))"


def build_search_query(spec: SearchSpec) -> tuple[str, list[Any]]:
    """Translate a ``SearchSpec`` into one SELECT statement and its parameters.

    Text searches drive the query from the FTS table so ``bm25()`` is
    available for scoring; filtered listings scan ``content_records``.
    Inactive records are always excluded.
    """
    params: list[Any] = []
    where: list[str] = []
    if spec.is_text_search:
        select = f"SELECT {_HIT_COLUMNS}, {bm25_expression()} AS score"
        source = "FROM content_fts JOIN content_records r ON r.seq = content_fts.rowid"
        where.append("content_fts MATCH ?")
        params.append(spec.match_expression)
    else:
        select = f"SELECT {_HIT_COLUMNS}, NULL AS score"
        source = "FROM content_records r"

    where.append("r.is_active = 1")
    filters = spec.filters
    for column, value in (
        ("r.business_id", filters.business_id),
        ("r.franchise_id", filters.franchise_id),
        ("r.content_type", filters.content_type),
        ("r.rating", filters.rating),
        ("r.sentiment", filters.sentiment),
        ("r.language", filters.language),
    ):
        if value is not None:
            where.append(f"{column} = ?")
            params.append(value)
    if filters.tags:
        where.append(_in_clause("r.tags", filters.tags, params))
    if filters.categories:
        where.append(_in_clause("r.categories", filters.categories, params))

    order_terms = [
        f"{_SORT_COLUMNS[key.column]} {'DESC' if key.descending else 'ASC'}" for key in spec.sort_keys
    ]
    # Insertion order settles any remaining ties.
    order_terms.append("r.seq DESC")

    sql = (
        f"{select} {source} {_REFERENCE_JOINS} "
        f"WHERE {' AND '.join(where)} "
        f"ORDER BY {', '.join(order_terms)} "
        "LIMIT ? OFFSET ?"
    )
    params.extend([spec.limit, spec.offset])
    return sql, params


class AbstractContentRepository(ABC):
    """Abstract repository for content records.

    Implementations own the text index and aggregation engine; callers only
    pass validated domain objects and ``SearchSpec`` values.
    """

    @abstractmethod
    async def add(self, record: ContentRecord) -> None:
        """Insert one record."""

    @abstractmethod
    async def add_many(self, records: Sequence[ContentRecord]) -> None:
        """Insert all records in one transaction (all or nothing)."""

    @abstractmethod
    async def get(self, record_id: str) -> ContentRecord | None:
        """Return the record with ``record_id`` or None."""

    @abstractmethod
    async def update(self, record: ContentRecord) -> bool:
        """Persist a modified record. Returns False when it no longer exists."""

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Hard delete. Returns False when nothing was deleted."""

    @abstractmethod
    async def search(self, spec: SearchSpec) -> list[ContentHit]:
        """Run a composed search and return populated hits."""

    @abstractmethod
    async def popular_tags(self, business_id: str, limit: int) -> list[TagCount]:
        """Tag frequencies over a tenant's active records."""

    @abstractmethod
    async def content_stats(self, business_id: str) -> list[ContentTypeStats]:
        """Per content type counts, average rating and sentiments."""

    @abstractmethod
    async def recent(self, business_id: str, limit: int) -> list[ContentHit]:
        """Newest records first."""

    @abstractmethod
    async def by_rating(self, business_id: str, min_rating: int, limit: int) -> list[ContentHit]:
        """Records rated at least ``min_rating``, best first."""

    @abstractmethod
    async def suggestions(self, business_id: str, needle: str, limit: int) -> list[Suggestion]:
        """Records whose title or a tag contains ``needle`` (case-insensitive)."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when storage answers."""

    async def upsert_content_source(self, source_id: str, name: str | None, description: str | None = None) -> None:
        """Optional hook for seeding reference projections."""
        return

    async def upsert_franchise(self, franchise_id: str, name: str | None) -> None:
        """Optional hook for seeding reference projections."""
        return

    async def close(self) -> None:
        """Optional hook for releasing storage resources."""
        return


class SqliteContentRepository(AbstractContentRepository):
    """Repository over the SQLite FTS5 content index."""

    def __init__(self, database: SqliteDatabase) -> None:
        self.database = database

    async def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        with track_latency(STORAGE_LATENCY, operation=operation):
            try:
                return await to_thread.run_sync(func, *args)
            except sqlite3.Error as exc:
                ERROR_COUNT.labels(error_type=type(exc).__name__, component="storage").inc()
                logger.error("Storage operation %s failed: %s", operation, exc)
                raise StorageError(f"{operation} failed: {exc}") from exc

    # Writes

    async def add(self, record: ContentRecord) -> None:
        await self._run("add", self._add_many_sync, [record])

    async def add_many(self, records: Sequence[ContentRecord]) -> None:
        await self._run("add_many", self._add_many_sync, list(records))

    def _add_many_sync(self, records: list[ContentRecord]) -> None:
        rows = [record_to_row(record) for record in records]
        with self.database.transaction() as conn:
            conn.executemany(_INSERT_SQL, rows)

    async def update(self, record: ContentRecord) -> bool:
        return await self._run("update", self._update_sync, record)

    def _update_sync(self, record: ContentRecord) -> bool:
        with self.database.transaction() as conn:
            cursor = conn.execute(_UPDATE_SQL, record_to_row(record))
        return cursor.rowcount > 0

    async def delete(self, record_id: str) -> bool:
        return await self._run("delete", self._delete_sync, record_id)

    def _delete_sync(self, record_id: str) -> bool:
        with self.database.transaction() as conn:
            cursor = conn.execute("DELETE FROM content_records WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    async def upsert_content_source(self, source_id: str, name: str | None, description: str | None = None) -> None:
        await self._run(
            "upsert_content_source",
            self._execute_write,
            "INSERT INTO content_sources (id, name, description) VALUES (?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET name = excluded.name, description = excluded.description",
            (source_id, name, description),
        )

    async def upsert_franchise(self, franchise_id: str, name: str | None) -> None:
        await self._run(
            "upsert_franchise",
            self._execute_write,
            "INSERT INTO franchises (id, name) VALUES (?, ?) ON CONFLICT(id) DO UPDATE SET name = excluded.name",
            (franchise_id, name),
        )

    def _execute_write(self, sql: str, params: Sequence[Any]) -> None:
        with self.database.transaction() as conn:
            conn.execute(sql, params)

    # Reads

    def _fetch_all(self, sql: str, params: Sequence[Any]) -> list[sqlite3.Row]:
        with self.database.connection() as conn:
            return conn.execute(sql, params).fetchall()

    async def get(self, record_id: str) -> ContentRecord | None:
        rows = await self._run("get", self._fetch_all, "SELECT * FROM content_records WHERE id = ?", (record_id,))
        return row_to_record(rows[0]) if rows else None

    async def search(self, spec: SearchSpec) -> list[ContentHit]:
        sql, params = build_search_query(spec)
        rows = await self._run("search", self._fetch_all, sql, params)
        return [row_to_hit(row) for row in rows]

    async def popular_tags(self, business_id: str, limit: int) -> list[TagCount]:
        sql = (
            "SELECT j.value AS tag, COUNT(*) AS count "
            "FROM content_records r, json_each(r.tags) j "
            "WHERE r.business_id = ? AND r.is_active = 1 "
            "GROUP BY j.value ORDER BY count DESC, tag ASC LIMIT ?"
        )
        rows = await self._run("popular_tags", self._fetch_all, sql, (business_id, limit))
        return [TagCount(tag=row["tag"], count=row["count"]) for row in rows]

    async def content_stats(self, business_id: str) -> list[ContentTypeStats]:
        sql = (
            "SELECT content_type, COUNT(*) AS count, AVG(rating) AS avg_rating, "
            "json_group_array(sentiment) FILTER (WHERE sentiment IS NOT NULL) AS sentiments "
            "FROM content_records WHERE business_id = ? AND is_active = 1 "
            "GROUP BY content_type ORDER BY count DESC, content_type ASC"
        )
        rows = await self._run("content_stats", self._fetch_all, sql, (business_id,))
        return [
            ContentTypeStats(
                content_type=row["content_type"],
                count=row["count"],
                avg_rating=row["avg_rating"],
                sentiment_breakdown=orjson.loads(row["sentiments"]) if row["sentiments"] else [],
            )
            for row in rows
        ]

    async def recent(self, business_id: str, limit: int) -> list[ContentHit]:
        sql = (
            f"SELECT {_HIT_COLUMNS} FROM content_records r {_REFERENCE_JOINS} "
            "WHERE r.business_id = ? AND r.is_active = 1 "
            "ORDER BY r.indexed_at DESC, r.seq DESC LIMIT ?"
        )
        rows = await self._run("recent", self._fetch_all, sql, (business_id, limit))
        return [row_to_hit(row) for row in rows]

    async def by_rating(self, business_id: str, min_rating: int, limit: int) -> list[ContentHit]:
        sql = (
            f"SELECT {_HIT_COLUMNS} FROM content_records r {_REFERENCE_JOINS} "
            "WHERE r.business_id = ? AND r.is_active = 1 AND r.rating >= ? "
            "ORDER BY r.rating DESC, r.indexed_at DESC, r.seq DESC LIMIT ?"
        )
        rows = await self._run("by_rating", self._fetch_all, sql, (business_id, min_rating, limit))
        return [row_to_hit(row) for row in rows]

    async def suggestions(self, business_id: str, needle: str, limit: int) -> list[Suggestion]:
        # Literal substring match over Unicode case-folded text.
        sql = (
            "SELECT r.id, r.title, r.tags, r.content_type FROM content_records r "
            "WHERE r.business_id = ? AND r.is_active = 1 AND ("
            "instr(casefold(r.title), ?) > 0 "
            "OR EXISTS (SELECT 1 FROM json_each(r.tags) j WHERE instr(casefold(j.value), ?) > 0)"
            ") ORDER BY r.indexed_at DESC, r.seq DESC LIMIT ?"
        )
        folded = needle.casefold()
        rows = await self._run("suggestions", self._fetch_all, sql, (business_id, folded, folded, limit))
        return [
            Suggestion(
                id=row["id"],
                title=row["title"],
                tags=orjson.loads(row["tags"]),
                content_type=row["content_type"],
            )
            for row in rows
        ]

    async def ping(self) -> bool:
        return await self._run("ping", self.database.ping)

    async def close(self) -> None:
        await to_thread.run_sync(self.database.close)
