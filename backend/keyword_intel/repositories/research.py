"""ResearchRepository with CRUD operations for research records.

Follows the layered architecture pattern: Service -> Repository -> Database.
The repository flushes; committing is the caller's job (see
keyword_intel.core.database.transaction).

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include research_id in all logs
- Log state transitions (status changes) at INFO level
- Add timing logs for operations >1 second
"""

import time
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from keyword_intel.core.logging import db_logger, get_logger
from keyword_intel.models.research import ClusteringStatus, ResearchRecord

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000  # 1 second


class ResearchRepository:
    """Repository for ResearchRecord CRUD operations."""

    TABLE_NAME = "keyword_research"

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        self.session = session
        logger.debug("ResearchRepository initialized")

    def _check_slow(self, query: str, start_time: float) -> None:
        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            db_logger.slow_query(
                query=query,
                duration_ms=duration_ms,
                table=self.TABLE_NAME,
            )

    async def create(
        self,
        query: str,
        region: str,
        language: str,
        keywords: list[dict[str, Any]],
    ) -> ResearchRecord:
        """Create a new research record in pending state."""
        start_time = time.monotonic()
        logger.debug(
            "Creating research record",
            extra={
                "query": query[:100],
                "region": region,
                "language": language,
                "keyword_count": len(keywords),
            },
        )

        try:
            record = ResearchRecord(
                query=query,
                region=region,
                language=language,
                keywords=keywords,
                clustering_status=ClusteringStatus.PENDING.value,
            )
            self.session.add(record)
            await self.session.flush()
            await self.session.refresh(record)

            logger.debug(
                "Research record created",
                extra={"research_id": record.id, "keyword_count": len(keywords)},
            )
            self._check_slow("INSERT INTO keyword_research", start_time)
            return record

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Creating research record query={query[:50]}",
            )
            raise

    async def get_by_id(self, research_id: str) -> ResearchRecord | None:
        """Get a research record by ID."""
        start_time = time.monotonic()

        try:
            result = await self.session.execute(
                select(ResearchRecord).where(ResearchRecord.id == research_id)
            )
            record = result.scalar_one_or_none()

            logger.debug(
                "Research record fetch completed",
                extra={"research_id": research_id, "found": record is not None},
            )
            self._check_slow(
                f"SELECT FROM keyword_research WHERE id={research_id}", start_time
            )
            return record

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch research record",
                extra={
                    "research_id": research_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            raise

    async def update_status(
        self,
        research_id: str,
        status: ClusteringStatus,
        error: str | None = None,
    ) -> bool:
        """Set the clustering status (and error message) of a record.

        Returns True if a row was updated.
        """
        start_time = time.monotonic()

        try:
            result = await self.session.execute(
                update(ResearchRecord)
                .where(ResearchRecord.id == research_id)
                .values(clustering_status=status.value, clustering_error=error)
            )
            await self.session.flush()
            updated = result.rowcount > 0

            logger.info(
                "Research clustering status changed",
                extra={
                    "research_id": research_id,
                    "new_status": status.value,
                    "error_message": error,
                    "updated": updated,
                },
            )
            self._check_slow("UPDATE keyword_research SET clustering_status", start_time)
            return updated

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Updating status research_id={research_id} to {status.value}",
            )
            raise

    async def save_clusters(
        self,
        research_id: str,
        clusters: dict[str, list[str]],
        clusters_with_volume: list[dict[str, Any]] | None = None,
    ) -> bool:
        """Persist clustering output and mark the record completed."""
        start_time = time.monotonic()

        try:
            result = await self.session.execute(
                update(ResearchRecord)
                .where(ResearchRecord.id == research_id)
                .values(
                    clusters=clusters,
                    clusters_with_volume=clusters_with_volume,
                    clustering_status=ClusteringStatus.COMPLETED.value,
                    clustering_error=None,
                )
            )
            await self.session.flush()
            updated = result.rowcount > 0

            logger.info(
                "Research clusters saved",
                extra={
                    "research_id": research_id,
                    "cluster_count": len(clusters),
                    "new_status": ClusteringStatus.COMPLETED.value,
                    "updated": updated,
                },
            )
            self._check_slow("UPDATE keyword_research SET clusters", start_time)
            return updated

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Saving clusters research_id={research_id}",
            )
            raise

    async def set_personas(self, research_id: str, personas: dict[str, str]) -> bool:
        """Store the persona map for a record."""
        try:
            result = await self.session.execute(
                update(ResearchRecord)
                .where(ResearchRecord.id == research_id)
                .values(personas=personas)
            )
            await self.session.flush()
            logger.debug(
                "Research personas saved",
                extra={"research_id": research_id, "persona_count": len(personas)},
            )
            return result.rowcount > 0

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Saving personas research_id={research_id}",
            )
            raise

    async def delete(self, research_id: str) -> bool:
        """Delete a research record. Returns True if it existed."""
        try:
            result = await self.session.execute(
                delete(ResearchRecord).where(ResearchRecord.id == research_id)
            )
            await self.session.flush()
            deleted = result.rowcount > 0
            logger.info(
                "Research record deleted",
                extra={"research_id": research_id, "deleted": deleted},
            )
            return deleted

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Deleting research_id={research_id}",
            )
            raise
