"""Pydantic schemas for research records and clustering output."""

from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from keyword_intel.models.research import ClusteringStatus
from keyword_intel.schemas.base import CamelModel
from keyword_intel.schemas.volume import VolumeItem


class ClusterWithVolume(CamelModel):
    """A keyword cluster annotated with search volumes."""

    cluster_name: str
    main_keyword: str
    total_volume: int = 0
    keywords: list[VolumeItem] = Field(default_factory=list)
    long_tail_keywords: list[str] = Field(default_factory=list)


class ResearchRead(CamelModel):
    """Read model for a research record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    query: str
    region: str
    language: str
    keywords: list[VolumeItem] = Field(default_factory=list)
    clusters: dict[str, list[str]] | None = None
    clusters_with_volume: list[ClusterWithVolume] | None = None
    personas: dict[str, str] | None = None
    clustering_status: ClusteringStatus = ClusteringStatus.UNSET
    clustering_error: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("clustering_status", mode="before")
    @classmethod
    def default_unset(cls, v: Any) -> Any:
        """Rows written before status tracking have no status."""
        return v or ClusteringStatus.UNSET
