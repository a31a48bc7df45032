"""Services layer - Cache engines and the clustering workflow.

Services coordinate the cache store, provider integrations and
repositories. They contain no direct HTTP or SQL; that is delegated to
integrations and repositories.
"""

from keyword_intel.services.batch_fetcher import BatchFetcher, BatchRunResult
from keyword_intel.services.cache_store import (
    CacheLookup,
    CacheOutcome,
    CacheStats,
    CacheStore,
)
from keyword_intel.services.cluster_analysis import (
    ClusterGenerator,
    calculate_clusters_with_volume,
    parse_cluster_markdown,
)
from keyword_intel.services.clustering import (
    ClusteringRequestResult,
    ClusteringWorkflow,
)
from keyword_intel.services.invalidation import InvalidationNotifier
from keyword_intel.services.serp_engine import (
    HtmlEnrichmentResult,
    SerpAnalysisResult,
    SerpCacheEngine,
    analyze_serp_results,
)
from keyword_intel.services.volume_engine import (
    VolumeCacheEngine,
    VolumeLookupResult,
    estimate_processing_time,
)

__all__ = [
    # Batching
    "BatchFetcher",
    "BatchRunResult",
    # Cache
    "CacheLookup",
    "CacheOutcome",
    "CacheStats",
    "CacheStore",
    # Clustering
    "ClusterGenerator",
    "ClusteringRequestResult",
    "ClusteringWorkflow",
    "calculate_clusters_with_volume",
    "parse_cluster_markdown",
    # Invalidation
    "InvalidationNotifier",
    # SERP
    "HtmlEnrichmentResult",
    "SerpAnalysisResult",
    "SerpCacheEngine",
    "analyze_serp_results",
    # Volume
    "VolumeCacheEngine",
    "VolumeLookupResult",
    "estimate_processing_time",
]
