"""Derived analysis status with a short-lived cache.

Status is not stored authoritatively anywhere. It is recomputed from the
persisted analysis record (summary and features present means completed)
and cached under ``analysis:{id}:status`` for an hour.
"""

import logging

from pydantic import ValidationError

from repolens.core.redis import ANALYSIS_STATUS_TTL, CacheStore, get_analysis_status_key
from repolens.schemas.analysis import AnalysisStatus, AnalysisStatusValue
from repolens.services.records import AnalysisRecord, AnalysisRecordStore

logger = logging.getLogger(__name__)


class AnalysisNotFoundError(ValueError):
    """Raised when an analysis is not found."""

    def __init__(self, analysis_id: str):
        self.analysis_id = analysis_id
        super().__init__(f"Analysis not found: {analysis_id}")


def derive_status(analysis: AnalysisRecord) -> AnalysisStatus:
    """Compute status from what the record contains."""
    if analysis.summary and analysis.features is not None:
        return AnalysisStatus(status=AnalysisStatusValue.COMPLETED, progress=100)
    if analysis.created_at:
        return AnalysisStatus(status=AnalysisStatusValue.PROCESSING, progress=50)
    return AnalysisStatus(status=AnalysisStatusValue.PENDING, progress=0)


class AnalysisStatusService:
    """Reads and caches the derived status of persisted analyses."""

    def __init__(
        self,
        store: CacheStore,
        records: AnalysisRecordStore,
        ttl: int = ANALYSIS_STATUS_TTL,
    ):
        self.store = store
        self.records = records
        self.ttl = ttl

    async def get_status(self, analysis_id: str) -> AnalysisStatus:
        """Get the status of an analysis.

        Never raises; an unknown analysis or any lookup failure yields a
        ``failed`` status with an explanatory message.
        """
        try:
            analysis = await self.records.get_analysis(analysis_id)
            if analysis is None:
                raise AnalysisNotFoundError(analysis_id)

            cached = await self._get_cached_status(analysis_id)
            if cached is not None:
                return cached

            status = derive_status(analysis)
            await self.update_status(analysis_id, status)
            return status
        except Exception as e:
            logger.error(f"Error getting analysis status for {analysis_id}: {e}")
            return AnalysisStatus(
                status=AnalysisStatusValue.FAILED,
                progress=0,
                message="Failed to get analysis status",
            )

    async def update_status(self, analysis_id: str, status: AnalysisStatus) -> None:
        """Write a status to the cache; failures are logged and dropped."""
        key = get_analysis_status_key(analysis_id)
        try:
            await self.store.setex(key, self.ttl, status.model_dump_json(exclude_none=True))
        except Exception as e:
            logger.error(f"Error updating cache status for {analysis_id}: {e}")

    async def _get_cached_status(self, analysis_id: str) -> AnalysisStatus | None:
        key = get_analysis_status_key(analysis_id)
        try:
            cached = await self.store.get(key)
        except Exception as e:
            logger.error(f"Error checking cache status for {analysis_id}: {e}")
            return None

        if not cached:
            return None

        try:
            return AnalysisStatus.model_validate_json(cached)
        except ValidationError:
            logger.warning(f"Discarding invalid cached status for {analysis_id}")
            return None
