"""Tests for AI cluster parsing and cluster volume aggregation.

Tests cover:
- Markdown parsing, allowed-keyword filtering, one cluster per keyword
- Case- and spacing-insensitive keyword dedup
- Main keyword, total volume and long-tail fragments
- ClusterGenerator with a mocked LLM client
"""

from unittest.mock import AsyncMock

import pytest

from keyword_intel.core.errors import WorkflowError
from keyword_intel.integrations.claude import ClaudeClient, CompletionResult
from keyword_intel.schemas.volume import VolumeItem
from keyword_intel.services.cluster_analysis import (
    ClusterGenerator,
    calculate_clusters_with_volume,
    dedupe_volume_items,
    normalize_keyword,
    parse_cluster_markdown,
)

CLUSTER_MARKDOWN = """Here are the clusters:

## Cluster: Recipes
- 雞湯食譜
- Chicken Soup Recipe
* easy chicken soup recipe

### Cluster： Health
- 雞湯 功效
- 雞湯食譜
- not requested
"""


# =============================================================================
# PARSING TESTS
# =============================================================================


class TestParseClusterMarkdown:
    """Tests for parse_cluster_markdown."""

    def test_parses_headers_and_bullets(self) -> None:
        """Test clusters are read in document order."""
        clusters = parse_cluster_markdown(CLUSTER_MARKDOWN)

        assert list(clusters) == ["Recipes", "Health"]
        assert clusters["Recipes"] == [
            "雞湯食譜",
            "Chicken Soup Recipe",
            "easy chicken soup recipe",
        ]

    def test_keyword_stays_in_first_cluster(self) -> None:
        """Test a repeated keyword is only kept the first time."""
        clusters = parse_cluster_markdown(CLUSTER_MARKDOWN)
        assert "雞湯食譜" not in clusters["Health"]

    def test_allowed_keywords_filter_and_respell(self) -> None:
        """Test unknown keywords are dropped and known ones use our spelling."""
        allowed = ["雞湯食譜", "chicken soup recipe", "雞湯功效"]

        clusters = parse_cluster_markdown(CLUSTER_MARKDOWN, allowed_keywords=allowed)

        assert clusters == {
            "Recipes": ["雞湯食譜", "chicken soup recipe"],
            "Health": ["雞湯功效"],
        }

    def test_empty_clusters_dropped(self) -> None:
        """Test headers without surviving keywords are omitted."""
        markdown = "## Cluster: Empty\n\n## Cluster: Full\n- a\n"
        assert parse_cluster_markdown(markdown) == {"Full": ["a"]}

    def test_bullets_before_any_header_ignored(self) -> None:
        """Test stray bullets are not assigned to a cluster."""
        assert parse_cluster_markdown("- a\n- b\n") == {}


class TestDedupeVolumeItems:
    """Tests for dedupe_volume_items and normalize_keyword."""

    def test_normalize_keyword(self) -> None:
        """Test case and all whitespace are ignored."""
        assert normalize_keyword(" Chicken  Soup ") == normalize_keyword("chickensoup")

    def test_higher_volume_variant_wins(self) -> None:
        """Test the higher-volume spelling replaces the first at its position."""
        items = [
            VolumeItem(text="Chicken Soup", search_volume=10),
            VolumeItem(text="雞湯", search_volume=50),
            VolumeItem(text="chicken soup", search_volume=90),
            VolumeItem(text="ChickenSoup", search_volume=5),
        ]

        unique = dedupe_volume_items(items)

        assert [(item.text, item.search_volume) for item in unique] == [
            ("chicken soup", 90),
            ("雞湯", 50),
        ]

    def test_blank_keywords_dropped(self) -> None:
        """Test whitespace-only keywords are removed."""
        assert dedupe_volume_items([VolumeItem(text="  ")]) == []


# =============================================================================
# VOLUME AGGREGATION TESTS
# =============================================================================


class TestCalculateClustersWithVolume:
    """Tests for calculate_clusters_with_volume."""

    def test_cjk_cluster(self) -> None:
        """Test main keyword, total volume and CJK long-tail fragments."""
        volumes = [
            VolumeItem(text="雞湯", search_volume=5000),
            VolumeItem(text="雞湯食譜", search_volume=800),
            VolumeItem(text="雞湯 功效", search_volume=300),
        ]
        clusters = {"Chicken soup": ["雞湯食譜", "雞湯", "雞湯 功效"]}

        [cluster] = calculate_clusters_with_volume(clusters, volumes)

        assert cluster.cluster_name == "Chicken soup"
        assert cluster.main_keyword == "雞湯"
        assert cluster.total_volume == 6100
        assert [item.text for item in cluster.keywords] == ["雞湯", "雞湯食譜", "雞湯 功效"]
        assert cluster.long_tail_keywords == ["食譜", "功效"]

    def test_latin_cluster(self) -> None:
        """Test Latin long-tail fragments remove the main keyword as a phrase."""
        volumes = [
            VolumeItem(text="chicken soup", search_volume=900),
            VolumeItem(text="easy chicken soup recipe", search_volume=100),
        ]
        clusters = {"Soup": ["easy chicken soup recipe", "Chicken Soup"]}

        [cluster] = calculate_clusters_with_volume(clusters, volumes)

        assert cluster.main_keyword == "chicken soup"
        assert cluster.long_tail_keywords == ["easy recipe"]

    def test_missing_volume_counts_as_zero(self) -> None:
        """Test keywords without volume data still appear."""
        [cluster] = calculate_clusters_with_volume({"A": ["unknown"]}, [])

        assert cluster.total_volume == 0
        assert cluster.keywords[0].text == "unknown"
        assert cluster.main_keyword == "unknown"

    def test_volume_tie_keeps_cluster_order(self) -> None:
        """Test the first keyword wins when volumes are equal."""
        volumes = [VolumeItem(text="b", search_volume=10), VolumeItem(text="a", search_volume=10)]

        [cluster] = calculate_clusters_with_volume({"X": ["a", "b"]}, volumes)

        assert cluster.main_keyword == "a"

    def test_empty_cluster_skipped(self) -> None:
        """Test clusters without keywords produce nothing."""
        assert calculate_clusters_with_volume({"Empty": []}, []) == []


# =============================================================================
# GENERATOR TESTS
# =============================================================================


@pytest.fixture
def claude() -> AsyncMock:
    return AsyncMock(spec=ClaudeClient)


class TestClusterGenerator:
    """Tests for ClusterGenerator.generate_clusters."""

    @pytest.mark.asyncio
    async def test_generate_clusters(self, claude: AsyncMock) -> None:
        """Test the LLM output is parsed against the requested keywords."""
        claude.complete.return_value = CompletionResult(
            success=True, text=CLUSTER_MARKDOWN
        )

        clusters = await ClusterGenerator(claude).generate_clusters(
            ["雞湯食譜", "雞湯功效"]
        )

        assert clusters == {"Recipes": ["雞湯食譜"], "Health": ["雞湯功效"]}
        prompt = claude.complete.await_args.args[0]
        assert "雞湯食譜\n雞湯功效" in prompt

    @pytest.mark.asyncio
    async def test_llm_failure_raises(self, claude: AsyncMock) -> None:
        """Test a failed completion raises WorkflowError."""
        claude.complete.return_value = CompletionResult(success=False, error="overloaded")

        with pytest.raises(WorkflowError) as exc_info:
            await ClusterGenerator(claude).generate_clusters(["a"])

        assert "overloaded" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unparsable_output_raises(self, claude: AsyncMock) -> None:
        """Test output without clusters raises WorkflowError."""
        claude.complete.return_value = CompletionResult(
            success=True, text="I cannot help with that."
        )

        with pytest.raises(WorkflowError):
            await ClusterGenerator(claude).generate_clusters(["a"])
