"""Keyword clustering workflow for research records.

request_clustering() validates the record, flips it to PROCESSING (committed)
and schedules the AI run as a background task. The caller gets an answer
immediately and polls poll_status() until the record leaves PROCESSING.

State machine:

    pending/failed/unset --request--> processing --ok--> completed
                                                 \\--error/timeout--> failed
    completed --request(force=True)--> processing

A record that already has clusters but a stale status (e.g. a worker died
between writing clusters and the status) is reported, and repaired, as
completed.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include research_id in all logs
- Log state transitions (status changes) at INFO level
- Add timing logs for operations >1 second

RAILWAY DEPLOYMENT REQUIREMENTS:
- Background tasks are process-local; call drain() on shutdown
- Status lives in the database, so any replica can answer poll_status()
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from keyword_intel.core.config import get_settings
from keyword_intel.core.database import transaction
from keyword_intel.core.errors import KeywordIntelError, ValidationError
from keyword_intel.core.logging import get_logger
from keyword_intel.models.research import ClusteringStatus, ResearchRecord
from keyword_intel.repositories.research import ResearchRepository
from keyword_intel.schemas.research import ResearchRead
from keyword_intel.schemas.volume import VolumeItem
from keyword_intel.services.cluster_analysis import (
    ClusterGenerator,
    calculate_clusters_with_volume,
    dedupe_volume_items,
)
from keyword_intel.services.invalidation import InvalidationNotifier

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000  # 1 second

TABLE_NAME = ResearchRepository.TABLE_NAME


@dataclass
class ClusteringRequestResult:
    """Outcome of a clustering request."""

    success: bool
    status: ClusteringStatus | None = None
    message: str | None = None
    error: str | None = None


def research_tag(research_id: str) -> str:
    """Invalidation tag for a research record."""
    return f"research:{research_id}"


def _load_volume_items(raw_keywords: list[dict[str, Any]]) -> list[VolumeItem]:
    items: list[VolumeItem] = []
    for raw in raw_keywords:
        try:
            items.append(VolumeItem.model_validate(raw))
        except PydanticValidationError:
            logger.warning(
                "Skipping malformed stored keyword",
                extra={"keyword_preview": str(raw)[:100]},
            )
    return items


class ClusteringWorkflow:
    """Runs AI keyword clustering for research records in the background."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clusterer: ClusterGenerator,
        notifier: InvalidationNotifier,
        max_keywords: int | None = None,
        timeout_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._clusterer = clusterer
        self._notifier = notifier
        self._max_keywords = max_keywords or settings.clustering_max_keywords
        self._timeout_seconds = timeout_seconds or settings.clustering_timeout_seconds
        self._poll_interval_seconds = (
            poll_interval_seconds or settings.clustering_poll_interval_seconds
        )
        self._sleep = sleep
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """Number of clustering runs that have not finished."""
        return len(self._tasks)

    async def create_research(
        self,
        query: str,
        region: str,
        language: str,
        volume_items: list[VolumeItem],
    ) -> ResearchRead:
        """Create a pending research record from volume results.

        Keywords differing only by case or spacing are collapsed first.
        """
        if not query or not query.strip():
            raise ValidationError("query", query, "Query cannot be empty")

        unique = dedupe_volume_items(volume_items)
        async with self._session_factory() as session:
            async with transaction(session, TABLE_NAME):
                record = await ResearchRepository(session).create(
                    query=query.strip(),
                    region=region,
                    language=language,
                    keywords=[item.to_document() for item in unique],
                )
            research = ResearchRead.model_validate(record)

        logger.info(
            "Research record created",
            extra={
                "research_id": research.id,
                "keyword_count": len(unique),
                "duplicates_removed": len(volume_items) - len(unique),
            },
        )
        return research

    async def get_research(self, research_id: str) -> ResearchRead | None:
        async with self._session_factory() as session:
            record = await ResearchRepository(session).get_by_id(research_id)
            return ResearchRead.model_validate(record) if record else None

    async def set_personas(self, research_id: str, personas: dict[str, str]) -> bool:
        """Store the persona map; returns False if the record does not exist."""
        async with self._session_factory() as session:
            async with transaction(session, TABLE_NAME):
                updated = await ResearchRepository(session).set_personas(
                    research_id, personas
                )
        if updated:
            await self._notify(research_id)
        return updated

    async def request_clustering(
        self,
        research_id: str,
        force: bool = False,
    ) -> ClusteringRequestResult:
        """Start clustering for a research record.

        Args:
            research_id: Record to cluster
            force: Re-run even if clustering already completed

        Returns:
            ClusteringRequestResult; status is PROCESSING when a run was
            scheduled.
        """
        logger.debug(
            "Clustering requested",
            extra={"research_id": research_id, "force": force},
        )

        async with self._session_factory() as session:
            repo = ResearchRepository(session)
            record = await repo.get_by_id(research_id)
            if record is None:
                logger.warning(
                    "Clustering requested for unknown research record",
                    extra={"research_id": research_id},
                )
                return ClusteringRequestResult(
                    success=False, error="Research record not found"
                )

            status = record.status
            raw_keywords = list(record.keywords or [])

            if not raw_keywords:
                logger.info(
                    "Research record has no keywords, nothing to cluster",
                    extra={"research_id": research_id, "status": status.value},
                )
                return ClusteringRequestResult(
                    success=True, status=status, message="No keywords to cluster"
                )

            # A forced re-run keeps the previous clusters until it finishes
            if record.clusters and status not in (
                ClusteringStatus.COMPLETED,
                ClusteringStatus.PROCESSING,
            ):
                async with transaction(session, TABLE_NAME):
                    await repo.update_status(research_id, ClusteringStatus.COMPLETED)
                return ClusteringRequestResult(
                    success=True,
                    status=ClusteringStatus.COMPLETED,
                    message="Clusters already exist",
                )

            if status is ClusteringStatus.PROCESSING:
                return ClusteringRequestResult(
                    success=False,
                    status=status,
                    error="Clustering is already in progress",
                )

            if status is ClusteringStatus.COMPLETED and not force:
                return ClusteringRequestResult(
                    success=False,
                    status=status,
                    error="Clustering already completed",
                )

            async with transaction(session, TABLE_NAME):
                await repo.update_status(research_id, ClusteringStatus.PROCESSING)

        task = asyncio.create_task(self._run(research_id, raw_keywords))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

        logger.info(
            "Clustering scheduled",
            extra={
                "research_id": research_id,
                "keyword_count": len(raw_keywords),
                "previous_status": status.value,
                "force": force,
            },
        )
        return ClusteringRequestResult(
            success=True,
            status=ClusteringStatus.PROCESSING,
            message="Clustering started",
        )

    async def _run(self, research_id: str, raw_keywords: list[dict[str, Any]]) -> None:
        start_time = time.monotonic()
        unique = dedupe_volume_items(_load_volume_items(raw_keywords))
        request = [item.text for item in unique[: self._max_keywords]]

        try:
            clusters = await asyncio.wait_for(
                self._clusterer.generate_clusters(request),
                timeout=self._timeout_seconds,
            )
            with_volume = calculate_clusters_with_volume(clusters, unique)

            async with self._session_factory() as session:
                async with transaction(session, TABLE_NAME):
                    await ResearchRepository(session).save_clusters(
                        research_id,
                        clusters,
                        [cluster.to_document() for cluster in with_volume],
                    )

            duration_ms = (time.monotonic() - start_time) * 1000
            logger.info(
                "Clustering completed",
                extra={
                    "research_id": research_id,
                    "keyword_count": len(request),
                    "cluster_count": len(clusters),
                    "duration_ms": round(duration_ms, 2),
                },
            )
            if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
                logger.warning(
                    "Slow clustering run",
                    extra={"research_id": research_id, "duration_ms": round(duration_ms, 2)},
                )

        except TimeoutError:
            await self._mark_failed(
                research_id,
                f"Clustering timed out after {self._timeout_seconds:g} seconds",
            )
        except (KeywordIntelError, SQLAlchemyError) as e:
            await self._mark_failed(research_id, getattr(e, "message", None) or str(e))
        except Exception as e:
            logger.error(
                "Unexpected clustering failure",
                extra={
                    "research_id": research_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            await self._mark_failed(research_id, str(e) or type(e).__name__)
        finally:
            await self._notify(research_id)

    async def _mark_failed(self, research_id: str, error: str) -> None:
        logger.error(
            "Clustering failed",
            extra={"research_id": research_id, "error_message": error},
        )
        try:
            async with self._session_factory() as session:
                async with transaction(session, TABLE_NAME):
                    await ResearchRepository(session).update_status(
                        research_id, ClusteringStatus.FAILED, error=error
                    )
        except SQLAlchemyError as e:
            logger.error(
                "Could not record clustering failure",
                extra={
                    "research_id": research_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )

    async def _notify(self, research_id: str) -> None:
        try:
            await self._notifier.invalidate(research_tag(research_id))
        except Exception as e:
            logger.warning(
                "Research invalidation failed",
                extra={
                    "research_id": research_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Clustering task ended with an unhandled error",
                extra={
                    "error_type": type(error).__name__,
                    "error_message": str(error),
                },
                exc_info=error,
            )

    async def poll_status(self, research_id: str) -> ClusteringStatus:
        """Current clustering status of a record.

        Raises:
            ValidationError: If the record does not exist
        """
        async with self._session_factory() as session:
            repo = ResearchRepository(session)
            record: ResearchRecord | None = await repo.get_by_id(research_id)
            if record is None:
                raise ValidationError(
                    "research_id", research_id, "Research record not found"
                )

            status = record.status
            if record.clusters and status not in (
                ClusteringStatus.COMPLETED,
                ClusteringStatus.PROCESSING,
            ):
                async with transaction(session, TABLE_NAME):
                    await repo.update_status(research_id, ClusteringStatus.COMPLETED)
                return ClusteringStatus.COMPLETED

            return status

    async def wait_for_completion(
        self,
        research_id: str,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> ClusteringStatus:
        """Poll until the record leaves PROCESSING.

        Returns the last status seen, which is still PROCESSING if the
        timeout ran out first.
        """
        interval = interval if interval is not None else self._poll_interval_seconds
        timeout = timeout if timeout is not None else self._timeout_seconds
        deadline = time.monotonic() + timeout

        while True:
            status = await self.poll_status(research_id)
            remaining = deadline - time.monotonic()
            if status is not ClusteringStatus.PROCESSING or remaining <= 0:
                if status is ClusteringStatus.PROCESSING:
                    logger.warning(
                        "Timed out waiting for clustering",
                        extra={"research_id": research_id, "timeout_seconds": timeout},
                    )
                return status
            await self._sleep(min(interval, remaining))

    async def drain(self) -> None:
        """Wait for all in-flight clustering runs.

        Task failures are logged by the done callback, not raised here.
        """
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
