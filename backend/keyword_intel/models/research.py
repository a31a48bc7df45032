"""ResearchRecord model for keyword research results and clustering state.

ResearchRecord is the umbrella entity a user sees:
- query/region/language: what was researched
- keywords: deduplicated keyword + volume list (JSON, VolumeItem dicts)
- clusters: optional {cluster name: [keywords]} map written by clustering
- clusters_with_volume: clusters annotated with volumes (main keyword,
  total volume, long-tail keywords)
- personas: optional {cluster name: persona description} map
- clustering_status: workflow status (pending, processing, completed, failed)

SERP and volume cache documents are referenced by cache key, never embedded.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from keyword_intel.core.database import Base

JsonColumn = JSON().with_variant(JSONB(), "postgresql")


class ClusteringStatus(str, Enum):
    """Status of the clustering workflow for a research record."""

    UNSET = "unset"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ResearchRecord(Base):
    """ResearchRecord model.

    Attributes:
        id: UUID primary key (string form)
        query: The seed query the research was run for
        region: Region code (e.g. "TW")
        language: Language code (e.g. "zh-TW")
        keywords: List of VolumeItem dicts
        clusters: Cluster name -> keyword list, or None before clustering
        clusters_with_volume: List of ClusterWithVolume dicts, or None
        personas: Cluster name -> persona text, or None
        clustering_status: ClusteringStatus value (None on legacy rows)
        clustering_error: Message from the last failed clustering run
        created_at: Timestamp when record was created
        updated_at: Timestamp when record was last updated
    """

    __tablename__ = "keyword_research"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    query: Mapped[str] = mapped_column(Text, nullable=False)

    region: Mapped[str] = mapped_column(String(20), nullable=False)

    language: Mapped[str] = mapped_column(String(20), nullable=False)

    keywords: Mapped[list[dict[str, Any]]] = mapped_column(
        JsonColumn,
        nullable=False,
        default=list,
    )

    clusters: Mapped[dict[str, list[str]] | None] = mapped_column(
        JsonColumn,
        nullable=True,
    )

    clusters_with_volume: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JsonColumn,
        nullable=True,
    )

    personas: Mapped[dict[str, str] | None] = mapped_column(
        JsonColumn,
        nullable=True,
    )

    clustering_status: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        default=ClusteringStatus.PENDING.value,
        index=True,
    )

    clustering_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    @property
    def status(self) -> ClusteringStatus:
        """Clustering status as an enum; NULL reads as UNSET."""
        if not self.clustering_status:
            return ClusteringStatus.UNSET
        return ClusteringStatus(self.clustering_status)

    def __repr__(self) -> str:
        return (
            f"<ResearchRecord(id={self.id!r}, query={self.query!r}, "
            f"status={self.clustering_status!r})>"
        )
