"""Integrations layer - Clients for the external data providers.

Every client derives from ProviderClient, which owns the httpx client,
retry/backoff policy and error mapping. Clients return typed responses
and raise keyword_intel.core.errors.ProviderError subclasses.
"""

from keyword_intel.integrations.apify_serp import (
    ApifySerpClient,
    ProviderOrganicResult,
    SerpProviderItem,
)
from keyword_intel.integrations.base import ProviderClient
from keyword_intel.integrations.claude import ClaudeClient, CompletionResult
from keyword_intel.integrations.google_ads import (
    GoogleAdsClient,
    KeywordIdea,
    KeywordIdeaMetrics,
    KeywordIdeasResponse,
)
from keyword_intel.integrations.page_fetch import (
    PageFetchClient,
    PageFetchResult,
    PagePayload,
)

__all__ = [
    # Base
    "ProviderClient",
    # SERP scraper
    "ApifySerpClient",
    "ProviderOrganicResult",
    "SerpProviderItem",
    # LLM
    "ClaudeClient",
    "CompletionResult",
    # Keyword planner
    "GoogleAdsClient",
    "KeywordIdea",
    "KeywordIdeaMetrics",
    "KeywordIdeasResponse",
    # Page fetcher
    "PageFetchClient",
    "PageFetchResult",
    "PagePayload",
]
