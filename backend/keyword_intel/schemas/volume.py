"""Pydantic schemas for keyword search-volume data."""

from enum import Enum

from pydantic import Field

from keyword_intel.schemas.base import CamelModel


class CompetitionLevel(str, Enum):
    """Advertising competition level for a keyword."""

    UNKNOWN = "unknown"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class VolumeItem(CamelModel):
    """Search-volume metrics for one keyword."""

    text: str
    search_volume: int = Field(default=0, ge=0)
    competition: CompetitionLevel = CompetitionLevel.UNKNOWN
    competition_index: float | None = Field(default=None, ge=0, le=100)
    cpc: float | None = Field(default=None, ge=0)


class VolumeDocument(CamelModel):
    """Cached volume lookup for one (keyword set, region, language)."""

    keywords: list[str]
    region: str
    language: str
    results: list[VolumeItem] = Field(default_factory=list)


class ProcessingTime(CamelModel):
    """Estimated and measured processing time in seconds."""

    estimated: int
    actual: int = 0
