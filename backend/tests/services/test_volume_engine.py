"""Tests for the keyword volume engine.

Tests cover:
- Keyword idea mapping (volume, competition, CPC from micros)
- Processing time estimate
- Input and credential validation before any I/O
- Simplified-Chinese filtering and case-insensitive dedup
- Cache-first lookup and single write-back
- Batching at 20 seeds, partial and total batch failure
- Stable sort by search volume
"""

from unittest.mock import AsyncMock

import pytest

from keyword_intel.core.document_store import InMemoryDocumentStore
from keyword_intel.core.errors import ProviderError, StoreError, ValidationError
from keyword_intel.integrations.google_ads import (
    GoogleAdsClient,
    KeywordIdea,
    KeywordIdeaMetrics,
    KeywordIdeasResponse,
)
from keyword_intel.schemas.volume import CompetitionLevel, VolumeDocument
from keyword_intel.services.batch_fetcher import BatchFetcher
from keyword_intel.services.cache_store import CacheStore
from keyword_intel.services.volume_engine import (
    VolumeCacheEngine,
    estimate_processing_time,
    map_keyword_idea,
)

from tests.conftest import FakeClock


def make_idea(text: str, volume=None, competition=None, cpc_micros=None) -> KeywordIdea:
    return KeywordIdea(
        text=text,
        keyword_idea_metrics=KeywordIdeaMetrics(
            avg_monthly_searches=volume,
            competition=competition,
            low_top_of_page_bid_micros=cpc_micros,
        ),
    )


@pytest.fixture
def volume_cache(memory_store: InMemoryDocumentStore, clock: FakeClock) -> CacheStore:
    return CacheStore(memory_store, VolumeDocument, "volume", clock=clock)


@pytest.fixture
def ads_client() -> AsyncMock:
    client = AsyncMock(spec=GoogleAdsClient)
    client.available = True
    client.generate_keyword_ideas.return_value = KeywordIdeasResponse(
        results=[
            make_idea("雞湯", volume=5000, competition="HIGH", cpc_micros=1_230_000),
            make_idea("雞湯食譜", volume=8000, competition=2),
            make_idea("鸡汤", volume=9000),
        ]
    )
    return client


@pytest.fixture
def engine(volume_cache: CacheStore, ads_client: AsyncMock) -> VolumeCacheEngine:
    return VolumeCacheEngine(
        volume_cache,
        ads_client,
        fetcher=BatchFetcher(batch_size=20, pacing_ms=0),
        include_spaced_variants=False,
    )


# =============================================================================
# MAPPING TESTS
# =============================================================================


class TestMapKeywordIdea:
    """Tests for map_keyword_idea."""

    def test_full_metrics(self) -> None:
        """Test every metric is mapped."""
        item = map_keyword_idea(make_idea(" 雞湯 ", volume="5000", competition="HIGH", cpc_micros=1_230_000))

        assert item.text == "雞湯"
        assert item.search_volume == 5000
        assert item.competition is CompetitionLevel.HIGH
        assert item.cpc == 1.23

    def test_absent_cpc_is_none(self) -> None:
        """Test missing bid micros give no CPC rather than zero."""
        assert map_keyword_idea(make_idea("a", volume=10)).cpc is None

    def test_missing_metrics(self) -> None:
        """Test ideas without metrics map to zero volume."""
        item = map_keyword_idea(KeywordIdea(text="a"))
        assert item.search_volume == 0
        assert item.competition is CompetitionLevel.UNKNOWN

    @pytest.mark.parametrize(
        ("competition", "expected"),
        [
            (0, CompetitionLevel.UNKNOWN),
            (1, CompetitionLevel.LOW),
            ("2", CompetitionLevel.MEDIUM),
            ("very_high", CompetitionLevel.VERY_HIGH),
            ("UNSPECIFIED", CompetitionLevel.UNKNOWN),
            ("nonsense", CompetitionLevel.UNKNOWN),
        ],
    )
    def test_competition(self, competition, expected: CompetitionLevel) -> None:
        """Test numeric and named competition values."""
        item = map_keyword_idea(make_idea("a", competition=competition))
        assert item.competition is expected

    def test_unparseable_volume_is_zero(self) -> None:
        """Test garbage volumes fall back to zero."""
        assert map_keyword_idea(make_idea("a", volume="n/a")).search_volume == 0


class TestEstimateProcessingTime:
    """Tests for estimate_processing_time."""

    @pytest.mark.parametrize(
        ("count", "expected"),
        [(0, 1), (1, 4), (20, 15), (21, 18)],
    )
    def test_with_volume(self, count: int, expected: int) -> None:
        """Test 1 + 0.1N + 0.5N + 2 per batch of 20, rounded up."""
        assert estimate_processing_time(count) == expected

    def test_without_volume(self) -> None:
        """Test the estimate without volume lookups."""
        assert estimate_processing_time(20, with_volume=False) == 3


# =============================================================================
# LOOKUP TESTS
# =============================================================================


class TestGetSearchVolume:
    """Tests for VolumeCacheEngine.get_search_volume."""

    @pytest.mark.asyncio
    async def test_api_then_cache(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test the second identical lookup is served from cache."""
        first = await engine.get_search_volume(["雞湯"], "TW", "zh-TW")
        second = await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        assert first.source_info == "api"
        assert second.source_info == "cache"
        assert second.results == first.results
        assert ads_client.generate_keyword_ideas.await_count == 1

    @pytest.mark.asyncio
    async def test_results_sorted_and_simplified_dropped(
        self, engine: VolumeCacheEngine
    ) -> None:
        """Test provider ideas are filtered and sorted by volume."""
        result = await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        assert [item.text for item in result.results] == ["雞湯食譜", "雞湯"]
        assert result.results[1].cpc == 1.23
        assert result.processing_time.estimated == estimate_processing_time(1)

    @pytest.mark.asyncio
    async def test_sort_is_stable(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test equal volumes keep provider order."""
        ads_client.generate_keyword_ideas.return_value = KeywordIdeasResponse(
            results=[make_idea("b", volume=10), make_idea("a", volume=10), make_idea("c", volume=20)]
        )

        result = await engine.get_search_volume(["x"], "US", "en")

        assert [item.text for item in result.results] == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_location_and_language_ids(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test region and language are resolved to provider ids."""
        await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        ads_client.generate_keyword_ideas.assert_awaited_once_with(["雞湯"], 2158, 1018)

    @pytest.mark.asyncio
    async def test_unknown_region_and_language_use_defaults(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test unknown region and language fall back to Taiwan and English."""
        await engine.get_search_volume(["soup"], "Atlantis", "xx")

        ads_client.generate_keyword_ideas.assert_awaited_once_with(["soup"], 2158, 1000)

    @pytest.mark.asyncio
    async def test_keywords_cleaned_before_query(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test simplified and duplicate keywords never reach the provider."""
        await engine.get_search_volume(["Soup", "电脑", "soup ", "雞湯"], "TW", "zh-TW")

        assert ads_client.generate_keyword_ideas.await_args.args[0] == ["Soup", "雞湯"]

    @pytest.mark.asyncio
    async def test_all_simplified_raises(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test nothing usable left after filtering is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            await engine.get_search_volume(["电脑", "网络"], "TW", "zh-TW")

        assert exc_info.value.field == "keywords"
        ads_client.generate_keyword_ideas.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_credentials_raise_before_io(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test missing credentials fail validation without a provider call."""
        ads_client.available = False

        with pytest.raises(ValidationError) as exc_info:
            await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        assert exc_info.value.field == "credentials"
        ads_client.generate_keyword_ideas.assert_not_awaited()

    @pytest.mark.parametrize(
        ("keywords", "region", "language", "field"),
        [([], "TW", "zh-TW", "keywords"), ([" "], "TW", "zh-TW", "keywords"),
         (["a"], " ", "zh-TW", "region"), (["a"], "TW", "", "language")],
    )
    @pytest.mark.asyncio
    async def test_validation(
        self, engine: VolumeCacheEngine, keywords, region, language, field
    ) -> None:
        """Test empty inputs raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            await engine.get_search_volume(keywords, region, language)
        assert exc_info.value.field == field

    @pytest.mark.asyncio
    async def test_batches_of_twenty(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test 45 keywords are sent in three batches."""
        keywords = [f"keyword {i}" for i in range(45)]

        result = await engine.get_search_volume(keywords, "US", "en")

        sizes = [len(call.args[0]) for call in ads_client.generate_keyword_ideas.await_args_list]
        assert sizes == [20, 20, 5]
        assert result.total_batches == 3

    @pytest.mark.asyncio
    async def test_partial_batch_failure(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test a failed batch is skipped and the rest returned."""
        ads_client.generate_keyword_ideas.side_effect = [
            ProviderError("upstream 500", status_code=500),
            KeywordIdeasResponse(results=[make_idea("keyword 20", volume=1)]),
        ]

        result = await engine.get_search_volume(
            [f"keyword {i}" for i in range(21)], "US", "en"
        )

        assert result.success is True
        assert result.failed_batches == 1
        assert [item.text for item in result.results] == ["keyword 20"]

    @pytest.mark.asyncio
    async def test_case_variants_across_batches_deduped(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock
    ) -> None:
        """Test ideas differing only in case keep the first one seen."""
        ads_client.generate_keyword_ideas.side_effect = [
            KeywordIdeasResponse(results=[make_idea("Chicken Soup", volume=900)]),
            KeywordIdeasResponse(results=[make_idea("chicken soup", volume=10)]),
        ]

        result = await engine.get_search_volume(
            [f"keyword {i}" for i in range(21)], "US", "en"
        )

        assert [(item.text, item.search_volume) for item in result.results] == [
            ("Chicken Soup", 900)
        ]

    @pytest.mark.asyncio
    async def test_all_batches_failed(
        self,
        engine: VolumeCacheEngine,
        ads_client: AsyncMock,
        memory_store: InMemoryDocumentStore,
    ) -> None:
        """Test an error result, and nothing cached, when every batch fails."""
        ads_client.generate_keyword_ideas.side_effect = ProviderError("quota", status_code=429)

        result = await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        assert result.success is False
        assert result.results == []
        assert "quota" in result.error
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_stale_cache_refetches(
        self, engine: VolumeCacheEngine, ads_client: AsyncMock, clock: FakeClock
    ) -> None:
        """Test entries older than seven days are refreshed."""
        await engine.get_search_volume(["雞湯"], "TW", "zh-TW")
        clock.advance(days=8)

        result = await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        assert result.source_info == "api"
        assert ads_client.generate_keyword_ideas.await_count == 2

    @pytest.mark.asyncio
    async def test_store_failure_still_returns_results(self, ads_client: AsyncMock) -> None:
        """Test a failed cache write does not fail the lookup."""
        store = AsyncMock()
        store.get.return_value = None
        store.put.side_effect = StoreError("Redis connection failed")
        engine = VolumeCacheEngine(
            CacheStore(store, VolumeDocument, "volume"),
            ads_client,
            fetcher=BatchFetcher(batch_size=20, pacing_ms=0),
            include_spaced_variants=False,
        )

        result = await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        assert result.success is True
        assert len(result.results) == 2

    @pytest.mark.asyncio
    async def test_without_cache(self, ads_client: AsyncMock) -> None:
        """Test the engine works with caching disabled."""
        engine = VolumeCacheEngine(
            None,
            ads_client,
            fetcher=BatchFetcher(batch_size=20, pacing_ms=0),
            include_spaced_variants=False,
        )

        result = await engine.get_search_volume(["雞湯"], "TW", "zh-TW")

        assert result.source_info == "api"

    @pytest.mark.asyncio
    async def test_spaced_variants_queried(
        self, volume_cache: CacheStore, ads_client: AsyncMock
    ) -> None:
        """Test short CJK keywords are also queried character-spaced."""
        engine = VolumeCacheEngine(
            volume_cache,
            ads_client,
            fetcher=BatchFetcher(batch_size=20, pacing_ms=0),
            include_spaced_variants=True,
        )

        await engine.get_search_volume(["雞湯", "soup"], "TW", "zh-TW")

        assert ads_client.generate_keyword_ideas.await_args.args[0] == ["雞 湯", "雞湯", "soup"]
