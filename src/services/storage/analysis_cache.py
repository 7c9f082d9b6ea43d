"""
Analysis Cache

Cache-aside helper for monthly needs/wants analyses stored in the
finance store. Callers check the cache before paying for an AI call.

Fallback results (the AI failed) are returned but never cached, so the
next view of that month tries the AI again.
"""

from typing import Awaitable, Callable, Optional

import structlog

from src.models.finance import NeedsWantsSummary
from src.services.storage.interface import FinanceStorageInterface, PersistError


logger = structlog.get_logger(__name__)


class AnalysisCache:
    """Month key -> NeedsWantsSummary, persisted through the store."""

    def __init__(self, storage: FinanceStorageInterface):
        self._storage = storage

    async def get(self, month_key: str) -> Optional[NeedsWantsSummary]:
        return await self._storage.get_monthly_analysis(month_key)

    async def save(self, month_key: str, record: NeedsWantsSummary) -> None:
        await self._storage.save_monthly_analysis(month_key, record)

    async def invalidate(self, month_key: str) -> bool:
        """Remove the durable record. Returns True if one existed."""
        return await self._storage.delete_monthly_analysis(month_key)

    async def get_or_compute(
        self,
        month_key: str,
        compute: Callable[[], Awaitable[Optional[NeedsWantsSummary]]],
        force: bool = False,
    ) -> tuple[Optional[NeedsWantsSummary], bool]:
        """
        Return the cached record, or compute and store a new one.

        Returns:
            (record, from_cache)
        """
        if not force:
            cached = await self.get(month_key)
            if cached is not None:
                logger.debug("analysis_cache_hit", month_key=month_key)
                return cached, True

        record = await compute()
        if record is not None and not record.is_fallback:
            try:
                await self.save(month_key, record)
            except PersistError as e:
                # Saved in memory; durable on the next successful write
                logger.warning("analysis_persist_failed", month_key=month_key, error=str(e))
        return record, False
