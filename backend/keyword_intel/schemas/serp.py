"""Pydantic schemas for cached SERP documents.

SerpDocument is the unit stored per cache key:
- keywords/region/language: what was queried
- results: keyword -> KeywordSerpResult (organic results, analysis, extras)

OrganicResult.html_analysis is attached later, per URL, by the HTML
enrichment pass; it is optional and may be stripped during degraded
recovery of a document that no longer validates.
"""

import copy
from typing import Any, Literal

from pydantic import Field

from keyword_intel.schemas.base import CamelModel


class Heading(CamelModel):
    """A heading extracted from a fetched page."""

    level: Literal["h1", "h2", "h3"]
    text: str


class HtmlAnalysis(CamelModel):
    """On-page analysis of a ranking URL."""

    title: str = ""
    headings: list[Heading] = Field(default_factory=list)
    h1_consistency: bool = True
    content: str | None = Field(
        default=None, description="Markdown body with image links removed"
    )
    content_ref: str | None = Field(
        default=None, description="Cache key of separately stored page content"
    )


class OrganicResult(CamelModel):
    """A single organic search result."""

    position: int = Field(..., ge=1)
    title: str = ""
    url: str
    description: str = ""
    displayed_url: str = ""
    html_analysis: HtmlAnalysis | None = None


class SerpAnalysis(CamelModel):
    """Aggregate statistics derived from a result list."""

    total_results: int = 0
    domains: dict[str, int] = Field(default_factory=dict)
    top_domains: list[str] = Field(default_factory=list)
    avg_title_length: int = 0
    avg_description_length: int = 0


class KeywordSerpResult(CamelModel):
    """Processed SERP payload for one keyword."""

    results: list[OrganicResult] = Field(default_factory=list)
    analysis: SerpAnalysis = Field(default_factory=SerpAnalysis)
    related_queries: list[Any] = Field(default_factory=list)
    people_also_ask: list[Any] = Field(default_factory=list)
    ai_overview: Any | None = None
    original_query: str
    total_results: int = Field(
        default=0, description="Total result count reported by the provider"
    )


class SerpDocument(CamelModel):
    """Cached SERP data for one cache key."""

    keywords: list[str]
    region: str
    language: str
    results: dict[str, KeywordSerpResult] = Field(default_factory=dict)


class PageContent(CamelModel):
    """Markdown body of a fetched page, stored apart from SERP documents."""

    url: str
    markdown: str


def strip_html_analysis(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a raw SerpDocument payload without HTML analyses.

    Used as the degraded-recovery step when a stored document fails
    validation because of a malformed nested analysis.
    """
    cleaned = copy.deepcopy(payload)
    results = cleaned.get("results")
    if not isinstance(results, dict):
        return cleaned

    for keyword_result in results.values():
        if not isinstance(keyword_result, dict):
            continue
        entries = keyword_result.get("results")
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if isinstance(entry, dict):
                entry.pop("htmlAnalysis", None)
                entry.pop("html_analysis", None)
    return cleaned
