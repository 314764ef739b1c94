"""Tests for the CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from kbsearch import __version__
from kbsearch.config.errors import LexicalIndexUnavailableError
from kbsearch.domains.orchestration import SearchResponse
from kbsearch.domains.search import RankedItem, Unit

from .main import app

runner = CliRunner()


@pytest.fixture
def services():
    """Patch service setup with a mock repository and pipeline."""
    repo = AsyncMock()
    repo.units_by_tag.return_value = [Unit(id="u1", type="code", title="OAuth refresh")]
    pipeline = MagicMock()
    pipeline.search = AsyncMock(
        return_value=SearchResponse(
            query="oauth",
            results=[
                RankedItem(
                    unit_id="u1",
                    lexical_rank=0,
                    combined_score=0.0066,
                    unit=Unit(id="u1", type="code", title="OAuth refresh", tags=["auth"]),
                )
            ],
            total=1,
            limit=10,
        )
    )
    with patch(
        "kbsearch.interfaces.cli.main._open_services",
        AsyncMock(return_value=(repo, pipeline)),
    ), patch("kbsearch.interfaces.api.deps.cleanup_services", AsyncMock()):
        yield repo, pipeline


def test_version() -> None:
    """Test version output."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_search_prints_results(services) -> None:
    """Test search renders a results table."""
    _, pipeline = services
    result = runner.invoke(
        app,
        ["search", "oauth", "--filter", '{"field": "type", "operator": "=", "value": "code"}'],
    )

    assert result.exit_code == 0
    assert "OAuth refresh" in result.stdout
    query = pipeline.search.call_args.args[0]
    assert query.query == "oauth"
    assert len(query.filters) == 1
    assert query.limit == 20


def test_search_limit_option(services) -> None:
    """Test --limit overrides the configured page size."""
    _, pipeline = services
    result = runner.invoke(app, ["search", "oauth", "--limit", "5"])

    assert result.exit_code == 0
    assert pipeline.search.call_args.args[0].limit == 5


def test_search_rejects_bad_filter_json(services) -> None:
    """Test malformed --filter JSON exits non-zero."""
    result = runner.invoke(app, ["search", "oauth", "--filter", "{nope"])
    assert result.exit_code == 1


def test_search_reports_errors(services) -> None:
    """Test search errors are printed with their code."""
    _, pipeline = services
    pipeline.search.side_effect = LexicalIndexUnavailableError("db gone")

    result = runner.invoke(app, ["search", "oauth"])

    assert result.exit_code == 1
    assert "SEARCH_INDEX_UNAVAILABLE" in result.stdout


def test_tag_lists_units(services) -> None:
    """Test tag lookup renders units."""
    repo, _ = services
    result = runner.invoke(app, ["tag", "auth"])

    assert result.exit_code == 0
    assert "OAuth refresh" in result.stdout
    repo.units_by_tag.assert_awaited_once_with("auth")


def test_import_missing_file(tmp_path) -> None:
    """Test import refuses a missing file."""
    result = runner.invoke(app, ["import", str(tmp_path / "missing.jsonl")])
    assert result.exit_code == 1
    assert "File not found" in result.stdout
