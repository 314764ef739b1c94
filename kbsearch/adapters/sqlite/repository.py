"""
SQLite Repository - Unit storage with FTS5 search.

Features:
- Async operations via aiosqlite
- Full-text search with FTS5 (BM25 rank)
- Compiled filter fragments applied as extra WHERE clauses
- REGEXP SQL function registered on the connection
- Unit, document and tag lookups
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiosqlite

from kbsearch.config.errors import ErrorCode, LexicalIndexUnavailableError, StorageError
from kbsearch.domains.filters.models import CompiledLexicalFilter
from kbsearch.domains.search.models import DocumentMeta, LexicalHit, Unit

logger = logging.getLogger(__name__)

__all__ = ["SQLiteRepository", "build_match_query"]

UNIT_COLUMNS = (
    "id",
    "type",
    "title",
    "content",
    "context",
    "category",
    "tags",
    "keywords",
    "timestamp",
    "created",
    "conversation_id",
    "document_id",
    "embedding_status",
)

_TOKEN = re.compile(r"\S+")


def build_match_query(text: str) -> str:
    """Quote each whitespace token so FTS5 treats it literally."""
    tokens = _TOKEN.findall(text)
    return " ".join('"' + token.replace('"', '""') + '"' for token in tokens)


def _regexp(pattern: str, value: Any) -> bool:
    if value is None:
        return False
    try:
        return re.search(pattern, str(value)) is not None
    except re.error:
        return False


class SQLiteRepository:
    """
    SQLite repository for knowledge units.

    Implements both the lexical index and the unit store.

    Example:
        >>> repo = SQLiteRepository("data/knowledge.db")
        >>> await repo.initialize()
        >>> await repo.insert_unit(Unit(id="u1", title="OAuth", content="..."))
        >>> hits = await repo.query_text("oauth refresh")
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            try:
                connection = await aiosqlite.connect(str(self.db_path))
            except (aiosqlite.Error, OSError) as e:
                raise StorageError(
                    f"Cannot open database: {e}", {"path": str(self.db_path)}
                ) from e
            connection.row_factory = aiosqlite.Row
            await connection.create_function("REGEXP", 2, _regexp)
            self._connection = connection
        return self._connection

    async def initialize(self) -> None:
        """Initialize database schema."""
        conn = await self._get_connection()

        await conn.executescript("""
            -- Documents table
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                source_id TEXT,
                format TEXT,
                title TEXT,
                metadata TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            -- Atomic units table
            CREATE TABLE IF NOT EXISTS units (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                type TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL DEFAULT '',
                context TEXT,
                category TEXT,
                tags TEXT,
                keywords TEXT,
                timestamp TEXT NOT NULL,
                created TEXT NOT NULL,
                conversation_id TEXT,
                document_id TEXT,
                embedding_status TEXT DEFAULT 'pending',
                FOREIGN KEY (document_id) REFERENCES documents(id)
            );

            -- FTS5 virtual table for full-text search
            CREATE VIRTUAL TABLE IF NOT EXISTS units_fts USING fts5(
                title,
                content,
                context,
                tags,
                content='units',
                content_rowid='seq',
                tokenize='porter'
            );

            -- Triggers to keep FTS in sync
            CREATE TRIGGER IF NOT EXISTS units_ai AFTER INSERT ON units BEGIN
                INSERT INTO units_fts(rowid, title, content, context, tags)
                VALUES (new.seq, new.title, new.content, new.context, new.tags);
            END;

            CREATE TRIGGER IF NOT EXISTS units_ad AFTER DELETE ON units BEGIN
                INSERT INTO units_fts(units_fts, rowid, title, content, context, tags)
                VALUES ('delete', old.seq, old.title, old.content, old.context, old.tags);
            END;

            CREATE TRIGGER IF NOT EXISTS units_au AFTER UPDATE ON units BEGIN
                INSERT INTO units_fts(units_fts, rowid, title, content, context, tags)
                VALUES ('delete', old.seq, old.title, old.content, old.context, old.tags);
                INSERT INTO units_fts(rowid, title, content, context, tags)
                VALUES (new.seq, new.title, new.content, new.context, new.tags);
            END;

            -- Tag lookup
            CREATE TABLE IF NOT EXISTS unit_tags (
                unit_id TEXT NOT NULL,
                tag TEXT NOT NULL,
                PRIMARY KEY (unit_id, tag),
                FOREIGN KEY (unit_id) REFERENCES units(id)
            );

            -- Indexes
            CREATE INDEX IF NOT EXISTS idx_units_created ON units(created);
            CREATE INDEX IF NOT EXISTS idx_units_category ON units(category);
            CREATE INDEX IF NOT EXISTS idx_units_type ON units(type);
            CREATE INDEX IF NOT EXISTS idx_units_conversation ON units(conversation_id);
            CREATE INDEX IF NOT EXISTS idx_units_document ON units(document_id);
            CREATE INDEX IF NOT EXISTS idx_unit_tags_tag ON unit_tags(tag);
        """)

        await conn.commit()
        logger.info("Database initialized: %s", self.db_path)

    # --- Writes ---

    async def insert_document(
        self,
        document: DocumentMeta,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Insert or replace a document.

        Returns:
            Document ID
        """
        conn = await self._get_connection()
        try:
            await conn.execute(
                """
                INSERT OR REPLACE INTO documents (id, source_id, format, title, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.source_id,
                    document.format,
                    title,
                    json.dumps(metadata) if metadata else None,
                ),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to insert document {document.id}: {e}",
                code=ErrorCode.STORAGE_WRITE_FAILED,
            ) from e
        return document.id

    async def insert_unit(self, unit: Unit) -> str:
        """
        Insert or update a unit and its tags.

        Returns:
            Unit ID
        """
        conn = await self._get_connection()
        record = unit.to_record()
        columns = ", ".join(UNIT_COLUMNS)
        placeholders = ", ".join("?" for _ in UNIT_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in UNIT_COLUMNS if c != "id")

        try:
            await conn.execute(
                f"""
                INSERT INTO units ({columns}) VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET {updates}
                """,
                tuple(record[c] for c in UNIT_COLUMNS),
            )
            await conn.execute("DELETE FROM unit_tags WHERE unit_id = ?", (unit.id,))
            await conn.executemany(
                "INSERT OR IGNORE INTO unit_tags (unit_id, tag) VALUES (?, ?)",
                [(unit.id, tag) for tag in unit.tags],
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to insert unit {unit.id}: {e}", code=ErrorCode.STORAGE_WRITE_FAILED
            ) from e
        return unit.id

    async def mark_embedded(self, unit_ids: Sequence[str]) -> None:
        """Set embedding_status to completed."""
        if not unit_ids:
            return
        conn = await self._get_connection()
        placeholders = ",".join("?" for _ in unit_ids)
        try:
            await conn.execute(
                f"UPDATE units SET embedding_status = 'completed' WHERE id IN ({placeholders})",
                tuple(unit_ids),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to update embedding status: {e}", code=ErrorCode.STORAGE_WRITE_FAILED
            ) from e

    # --- Lexical index ---

    async def query_text(
        self,
        text: str,
        compiled_filter: CompiledLexicalFilter | None = None,
        limit: int = 20,
    ) -> list[LexicalHit]:
        """
        Full-text search using FTS5.

        Args:
            text: Search query
            compiled_filter: Extra predicate over unit columns
            limit: Maximum results

        Returns:
            Hits ordered by BM25 rank, rank 0 best

        Raises:
            LexicalIndexUnavailableError: Database unreachable or query failed
        """
        match_query = build_match_query(text)
        if not match_query:
            return []

        where = ""
        params: list[Any] = [match_query]
        if compiled_filter is not None and not compiled_filter.is_empty:
            where = f"WHERE ({compiled_filter.fragment})"
            params.extend(compiled_filter.params)
        params.append(limit)

        sql = f"""
            SELECT u.id AS unit_id, f.rank AS score
            FROM (SELECT rowid, rank FROM units_fts WHERE units_fts MATCH ?) AS f
            JOIN units AS u ON u.seq = f.rowid
            {where}
            ORDER BY f.rank
            LIMIT ?
        """

        try:
            conn = await self._get_connection()
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
        except (aiosqlite.Error, OSError) as e:
            logger.error("Lexical query failed: %s", e)
            raise LexicalIndexUnavailableError(
                "Full-text search failed",
                {"reason": str(e)},
            ) from e

        return [LexicalHit(unit_id=row["unit_id"], rank=rank) for rank, row in enumerate(rows)]

    # --- Unit store ---

    async def resolve(self, unit_id: str) -> Unit | None:
        """Get unit by ID."""
        units = await self.resolve_many([unit_id])
        return units.get(unit_id)

    async def resolve_many(self, unit_ids: Sequence[str]) -> dict[str, Unit]:
        """Get units by ID. Missing ids are absent from the result."""
        if not unit_ids:
            return {}
        placeholders = ",".join("?" for _ in unit_ids)
        rows = await self._fetchall(
            f"SELECT * FROM units WHERE id IN ({placeholders})", tuple(unit_ids)
        )
        tags = await self._tags_for([row["id"] for row in rows])
        return {row["id"]: self._row_to_unit(row, tags.get(row["id"], [])) for row in rows}

    async def resolve_document(self, document_id: str) -> DocumentMeta | None:
        """Get document metadata by ID."""
        rows = await self._fetchall(
            "SELECT id, source_id, format FROM documents WHERE id = ?", (document_id,)
        )
        if not rows:
            return None
        return DocumentMeta(**dict(rows[0]))

    async def units_by_tag(self, tag: str) -> list[Unit]:
        """Units carrying ``tag``, newest first."""
        rows = await self._fetchall(
            """
            SELECT u.* FROM units u
            JOIN unit_tags ut ON u.id = ut.unit_id
            WHERE ut.tag = ?
            ORDER BY u.created DESC
            """,
            (tag,),
        )
        tags = await self._tags_for([row["id"] for row in rows])
        return [self._row_to_unit(row, tags.get(row["id"], [])) for row in rows]

    async def all_units(self) -> list[Unit]:
        """Every unit, in insertion order."""
        rows = await self._fetchall("SELECT * FROM units ORDER BY seq")
        tags = await self._tags_for([row["id"] for row in rows])
        return [self._row_to_unit(row, tags.get(row["id"], [])) for row in rows]

    async def get_unit_count(self) -> int:
        """Get total unit count."""
        rows = await self._fetchall("SELECT COUNT(*) FROM units")
        return rows[0][0] if rows else 0

    async def get_document_count(self) -> int:
        """Get total document count."""
        rows = await self._fetchall("SELECT COUNT(*) FROM documents")
        return rows[0][0] if rows else 0

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    # --- Helpers ---

    async def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        try:
            conn = await self._get_connection()
            cursor = await conn.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StorageError(f"Read failed: {e}", code=ErrorCode.STORAGE_READ_FAILED) from e

    async def _tags_for(self, unit_ids: Sequence[str]) -> dict[str, list[str]]:
        if not unit_ids:
            return {}
        placeholders = ",".join("?" for _ in unit_ids)
        rows = await self._fetchall(
            f"SELECT unit_id, tag FROM unit_tags WHERE unit_id IN ({placeholders}) ORDER BY tag",
            tuple(unit_ids),
        )
        tags: dict[str, list[str]] = {}
        for row in rows:
            tags.setdefault(row["unit_id"], []).append(row["tag"])
        return tags

    @staticmethod
    def _row_to_unit(row: aiosqlite.Row, tags: list[str]) -> Unit:
        return Unit(
            id=row["id"],
            type=row["type"],
            title=row["title"] or "",
            content=row["content"] or "",
            context=row["context"] or "",
            category=row["category"] or "",
            tags=tags,
            keywords=(row["keywords"] or "").split(),
            timestamp=row["timestamp"],
            created=row["created"],
            conversation_id=row["conversation_id"],
            document_id=row["document_id"],
            embedding_status=row["embedding_status"] or "pending",
        )
