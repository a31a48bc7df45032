"""Pydantic schemas for cached documents and research records."""

from keyword_intel.schemas.base import CamelModel
from keyword_intel.schemas.research import ClusterWithVolume, ResearchRead
from keyword_intel.schemas.serp import (
    Heading,
    HtmlAnalysis,
    KeywordSerpResult,
    OrganicResult,
    PageContent,
    SerpAnalysis,
    SerpDocument,
    strip_html_analysis,
)
from keyword_intel.schemas.volume import (
    CompetitionLevel,
    ProcessingTime,
    VolumeDocument,
    VolumeItem,
)

__all__ = [
    "CamelModel",
    # Research
    "ClusterWithVolume",
    "ResearchRead",
    # SERP
    "Heading",
    "HtmlAnalysis",
    "KeywordSerpResult",
    "OrganicResult",
    "PageContent",
    "SerpAnalysis",
    "SerpDocument",
    "strip_html_analysis",
    # Volume
    "CompetitionLevel",
    "ProcessingTime",
    "VolumeDocument",
    "VolumeItem",
]
