"""
Integration tests for the CLI using Click's CliRunner.
"""

import json
from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from lifecycle_research.main import cli, read_products
from lifecycle_research.models.schemas import (
    Confidence,
    EnrichedProduct,
    LifecycleDates,
    Product,
    ResearchResult,
)
from lifecycle_research.services.research_cache import ResearchCache

# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cache.db'}"


@pytest.fixture(autouse=True)
def cli_settings(settings, db_url):
    """Patch settings and logging setup for all CLI tests."""
    file_settings = settings.model_copy(update={"database_url": db_url})
    with patch("lifecycle_research.main.get_settings", return_value=file_settings), \
            patch("lifecycle_research.main.setup_logging"):
        yield file_settings


def _enriched(identifier="WS-C3850-48P", error=None):
    dates = LifecycleDates() if error else LifecycleDates(
        end_of_sale=date(2019, 10, 31),
        last_day_of_support=date(2025, 10, 31),
    )
    research = ResearchResult(dates=dates, error=error)
    return EnrichedProduct(
        product=Product(manufacturer="Cisco", identifier=identifier),
        research=research,
        dates=dates,
        confidence=Confidence() if error else Confidence(overall=90, lifecycle=95),
    )


@pytest.fixture
def mock_pipeline():
    """Patches the pipeline class used by the CLI."""
    instance = AsyncMock()
    instance.__aenter__.return_value = instance
    instance.__aexit__.return_value = None
    with patch("lifecycle_research.main.LifecycleEnrichmentPipeline", return_value=instance) as cls:
        instance.cls = cls
        yield instance


# =============================================================================
# Tests
# =============================================================================

def test_enrich_prints_json(runner, mock_pipeline):
    mock_pipeline.enrich.return_value = _enriched()

    result = runner.invoke(cli, ["enrich", "Cisco", "WS-C3850-48P", "--json"])

    assert result.exit_code == 0, result.output
    assert '"end_of_sale": "2019-10-31"' in result.output
    assert '"confidence": 90' in result.output
    product = mock_pipeline.enrich.await_args.args[0]
    assert product.identifier == "WS-C3850-48P"
    assert mock_pipeline.enrich.await_args.kwargs["use_cache"] is True


def test_enrich_table_output(runner, mock_pipeline):
    mock_pipeline.enrich.return_value = _enriched()

    result = runner.invoke(cli, ["enrich", "Cisco", "WS-C3850-48P"])

    assert result.exit_code == 0, result.output
    assert "2019-10-31" in result.output
    assert "Confidence: 90" in result.output


def test_enrich_no_cache_flag(runner, mock_pipeline):
    mock_pipeline.enrich.return_value = _enriched()

    runner.invoke(cli, ["enrich", "Cisco", "WS-C3850-48P", "--no-cache"])

    assert mock_pipeline.enrich.await_args.kwargs["use_cache"] is False


def test_enrich_degraded_exits_nonzero(runner, mock_pipeline):
    mock_pipeline.enrich.return_value = _enriched(error="All search queries failed")

    result = runner.invoke(cli, ["enrich", "Cisco", "WS-C3850-48P"])

    assert result.exit_code == 1
    assert "All search queries failed" in result.output


def test_enrich_pipeline_error(runner, mock_pipeline):
    mock_pipeline.cls.side_effect = RuntimeError("no provider")

    result = runner.invoke(cli, ["enrich", "Cisco", "WS-C3850-48P"])

    assert result.exit_code == 1
    assert "no provider" in result.output


def test_batch_writes_json_lines(runner, mock_pipeline, tmp_path):
    input_file = tmp_path / "products.csv"
    input_file.write_text("manufacturer,identifier\nCisco,WS-C3850-48P\nCisco,WS-C2960X-24TS-L\n")
    output_file = tmp_path / "out.jsonl"
    mock_pipeline.enrich_batch.return_value = [
        _enriched("WS-C3850-48P"),
        _enriched("WS-C2960X-24TS-L", error="All search queries failed"),
    ]

    result = runner.invoke(cli, ["batch", str(input_file), "--output", str(output_file)])

    assert result.exit_code == 0, result.output
    products = mock_pipeline.enrich_batch.await_args.args[0]
    assert [p.identifier for p in products] == ["WS-C3850-48P", "WS-C2960X-24TS-L"]
    rows = [json.loads(line) for line in output_file.read_text().splitlines()]
    assert rows[0]["end_of_sale"] == "2019-10-31"
    assert rows[1]["error"] == "All search queries failed"
    assert "Failed: 1" in result.output


def test_batch_empty_file(runner, mock_pipeline, tmp_path):
    input_file = tmp_path / "empty.txt"
    input_file.write_text("\n# nothing here\n")

    result = runner.invoke(cli, ["batch", str(input_file)])

    assert result.exit_code == 1
    assert "No products found" in result.output


def test_read_products_formats(tmp_path):
    csv_file = tmp_path / "a.csv"
    csv_file.write_text("Manufacturer,Part_Number,Notes\nCisco,WS-C3850-48P,x\n,JL256A,\n")
    assert read_products(csv_file) == [
        Product(manufacturer="Cisco", identifier="WS-C3850-48P"),
        Product(manufacturer="", identifier="JL256A"),
    ]

    lines_file = tmp_path / "b.txt"
    lines_file.write_text("Juniper,EX4300-48T\nPA-3220\n")
    assert read_products(lines_file) == [
        Product(manufacturer="Juniper", identifier="EX4300-48T"),
        Product(identifier="PA-3220"),
    ]


def test_cache_stats(runner, db_url):
    cache = ResearchCache(db_url)
    cache.upsert("Cisco", "WS-C3850-48P", LifecycleDates(end_of_sale=date(2019, 10, 31)), 90)
    cache.close()

    result = runner.invoke(cli, ["cache-stats"])

    assert result.exit_code == 0, result.output
    assert "Total entries" in result.output
    assert "90.0" in result.output


def test_purge_stale_with_yes(runner, db_url):
    cache = ResearchCache(db_url, clock=lambda: datetime(2000, 1, 1))
    cache.upsert("Cisco", "OLD-1", LifecycleDates(end_of_sale=date(1999, 1, 1)), 80)
    cache.close()

    result = runner.invoke(cli, ["purge-stale", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Removed 1 stale entries" in result.output
    assert ResearchCache(db_url).stats()["total_entries"] == 0


def test_purge_stale_declined(runner):
    result = runner.invoke(cli, ["purge-stale"], input="n\n")

    assert result.exit_code == 0
    assert "Aborted" in result.output


def test_validate_setup_pass(runner):
    result = runner.invoke(cli, ["validate-setup"])

    assert result.exit_code == 0, result.output
    assert "serpapi" in result.output


def test_validate_setup_without_provider(runner, cli_settings):
    bare = cli_settings.model_copy(update={"serpapi_api_key": None})
    with patch("lifecycle_research.main.get_settings", return_value=bare):
        result = runner.invoke(cli, ["validate-setup"])

    assert result.exit_code == 1
    assert "No search provider configured" in result.output


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output
