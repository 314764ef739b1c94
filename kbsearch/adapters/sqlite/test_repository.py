"""Tests for SQLite Repository."""

from datetime import datetime
from pathlib import Path

import pytest

from kbsearch.config.errors import ErrorCode, LexicalIndexUnavailableError, StorageError
from kbsearch.domains.filters import FilterCompiler, FilterLeaf
from kbsearch.domains.search.models import DocumentMeta, Unit

from .repository import SQLiteRepository, build_match_query


@pytest.fixture
async def repo(tmp_path: Path):
    """Create a test repository with temporary database."""
    db_path = tmp_path / "test.db"
    repo = SQLiteRepository(db_path)
    await repo.initialize()
    yield repo
    await repo.close()


@pytest.fixture
async def seeded(repo: SQLiteRepository) -> SQLiteRepository:
    """Repository with a document and three units."""
    await repo.insert_document(DocumentMeta(id="d1", source_id="github", format="markdown"))
    await repo.insert_unit(
        Unit(
            id="u1",
            type="code",
            title="OAuth refresh tokens",
            content="Rotate refresh tokens on every use.",
            tags=["auth", "security"],
            timestamp=datetime(2024, 1, 10),
            document_id="d1",
        )
    )
    await repo.insert_unit(
        Unit(
            id="u2",
            type="decision",
            title="Session storage",
            content="Store OAuth sessions in Redis.",
            tags=["auth"],
            timestamp=datetime(2024, 2, 10),
            conversation_id="c1",
        )
    )
    await repo.insert_unit(
        Unit(
            id="u3",
            type="message",
            title="Lunch",
            content="Pizza on Friday.",
            timestamp=datetime(2024, 3, 10),
        )
    )
    return repo


def test_build_match_query_quotes_tokens() -> None:
    """Test FTS5 operators in user text are neutralized."""
    assert build_match_query("oauth AND tokens") == '"oauth" "AND" "tokens"'
    assert build_match_query('say "hi"') == '"say" """hi"""'
    assert build_match_query("   ") == ""


async def test_initialize_creates_tables(repo: SQLiteRepository):
    """Test that initialize creates all required tables."""
    conn = await repo._get_connection()
    cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    tables = {row[0] for row in await cursor.fetchall()}

    assert "documents" in tables
    assert "units" in tables
    assert "unit_tags" in tables
    assert "units_fts" in tables


async def test_insert_and_resolve_unit(seeded: SQLiteRepository):
    """Test inserting and retrieving a unit."""
    unit = await seeded.resolve("u1")

    assert unit is not None
    assert unit.title == "OAuth refresh tokens"
    assert unit.tags == ["auth", "security"]
    assert unit.timestamp == datetime(2024, 1, 10)
    assert unit.document_id == "d1"
    assert await seeded.resolve("missing") is None


async def test_insert_unit_upserts(seeded: SQLiteRepository):
    """Test re-inserting a unit replaces its fields and tags."""
    await seeded.insert_unit(Unit(id="u3", title="Dinner", content="Tacos", tags=["food"]))

    unit = await seeded.resolve("u3")
    assert unit.title == "Dinner"
    assert unit.tags == ["food"]
    assert await seeded.get_unit_count() == 3
    hits = await seeded.query_text("tacos")
    assert [h.unit_id for h in hits] == ["u3"]
    assert await seeded.query_text("pizza") == []


async def test_resolve_many(seeded: SQLiteRepository):
    """Test batch resolution skips unknown ids."""
    units = await seeded.resolve_many(["u1", "u3", "nope"])
    assert set(units) == {"u1", "u3"}
    assert await seeded.resolve_many([]) == {}


async def test_resolve_document(seeded: SQLiteRepository):
    """Test document metadata lookup."""
    document = await seeded.resolve_document("d1")
    assert document == DocumentMeta(id="d1", source_id="github", format="markdown")
    assert await seeded.resolve_document("d9") is None


async def test_query_text_ranks_matches(seeded: SQLiteRepository):
    """Test full-text search returns ranked hits."""
    hits = await seeded.query_text("oauth")

    assert {h.unit_id for h in hits} == {"u1", "u2"}
    assert [h.rank for h in hits] == [0, 1]


async def test_query_text_with_compiled_filter(seeded: SQLiteRepository):
    """Test compiled filter fragments narrow FTS results."""
    compiler = FilterCompiler()
    compiled = compiler.compile_lexical(FilterLeaf(field="type", operator="=", value="decision"))

    hits = await seeded.query_text("oauth", compiled)

    assert [h.unit_id for h in hits] == ["u2"]


async def test_query_text_with_regex_and_contains(seeded: SQLiteRepository):
    """Test REGEXP and LIKE fragments run against the database."""
    compiler = FilterCompiler()

    regex = compiler.compile_lexical(FilterLeaf(field="title", operator="regex", value="^OAuth"))
    assert [h.unit_id for h in await seeded.query_text("oauth", regex)] == ["u1"]

    contains = compiler.compile_lexical(FilterLeaf(field="tags", operator="contains", value="secur"))
    assert [h.unit_id for h in await seeded.query_text("oauth", contains)] == ["u1"]


async def test_query_text_with_date_filter(seeded: SQLiteRepository):
    """Test ISO timestamps compare correctly in SQL."""
    compiler = FilterCompiler()
    compiled = compiler.compile_lexical(
        FilterLeaf(field="timestamp", operator=">=", value="2024-02-01")
    )
    hits = await seeded.query_text("oauth", compiled)
    assert [h.unit_id for h in hits] == ["u2"]


async def test_query_text_respects_limit(seeded: SQLiteRepository):
    """Test the limit caps hits."""
    hits = await seeded.query_text("oauth", limit=1)
    assert len(hits) == 1


async def test_query_text_empty(seeded: SQLiteRepository):
    """Test blank or unmatched queries return nothing."""
    assert await seeded.query_text("  ") == []
    assert await seeded.query_text("nonexistent_term_xyz") == []


async def test_query_text_failure_is_unavailable(repo: SQLiteRepository):
    """Test database errors surface as LexicalIndexUnavailableError."""
    conn = await repo._get_connection()
    await conn.execute("DROP TABLE units_fts")

    with pytest.raises(LexicalIndexUnavailableError):
        await repo.query_text("oauth")


async def test_units_by_tag(seeded: SQLiteRepository):
    """Test tag lookup, newest first."""
    units = await seeded.units_by_tag("auth")
    assert [u.id for u in units] == ["u2", "u1"]
    assert await seeded.units_by_tag("none") == []


async def test_mark_embedded(seeded: SQLiteRepository):
    """Test embedding status updates."""
    await seeded.mark_embedded(["u1"])
    unit = await seeded.resolve("u1")
    assert unit.embedding_status == "completed"


async def test_counts(seeded: SQLiteRepository):
    """Test unit and document counts."""
    assert await seeded.get_unit_count() == 3
    assert await seeded.get_document_count() == 1
    assert len(await seeded.all_units()) == 3


async def test_query_text_contains_matches_wildcards_literally(repo: SQLiteRepository):
    """Test LIKE wildcards in a contains value are escaped."""
    await repo.insert_unit(Unit(id="p1", title="Coverage 100%", content="coverage report"))
    await repo.insert_unit(Unit(id="p2", title="Coverage 1000", content="coverage report"))

    compiled = FilterCompiler().compile_lexical(
        FilterLeaf(field="title", operator="contains", value="100%")
    )
    hits = await repo.query_text("coverage", compiled)

    assert [h.unit_id for h in hits] == ["p1"]


async def test_storage_errors_carry_read_and_write_codes(repo: SQLiteRepository):
    """Test read and write failures are told apart by error code."""
    conn = await repo._get_connection()
    await conn.execute("DROP TABLE unit_tags")

    with pytest.raises(StorageError) as read_error:
        await repo.units_by_tag("auth")
    assert read_error.value.code is ErrorCode.STORAGE_READ_FAILED

    with pytest.raises(StorageError) as write_error:
        await repo.insert_unit(Unit(id="w1", tags=["auth"]))
    assert write_error.value.code is ErrorCode.STORAGE_WRITE_FAILED
