"""
Abstract base class for paginated source walkers
"""

from abc import ABC
from typing import Any, Dict, List, Optional, Type, TypeVar
from pydantic import BaseModel, ValidationError
from core.exceptions import SourceFetchError
from ingestion.fetcher import RateLimitedFetcher
import logging

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class SourceWalker(ABC):
    """
    Abstract base class for all source walkers.

    Responsibilities:
    - Budget gate: no call is issued once the run's budget is spent
    - Failure isolation: a failed unit (group, query) yields an empty list
    - Schema validation of every raw record at the ingestion boundary

    Each walker method re-fetches from the source on every call; nothing is
    cached between calls, so a walk can be restarted by calling it again.
    """

    source_name: str = "source"

    def __init__(self, fetcher: RateLimitedFetcher):
        self.fetcher = fetcher

    @property
    def context(self):
        return self.fetcher.context

    def has_reached_api_limit(self) -> bool:
        return self.fetcher.has_reached_api_limit()

    async def _fetch_payload(
        self,
        unit: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch one unit, or None if the budget is spent or the fetch failed
        """
        if self.has_reached_api_limit():
            self.context.record_refusal()
            logger.warning(
                f"[{self.source_name}] Skipping {unit}: API call limit reached "
                f"({self.context.budget_label()})"
            )
            return None

        try:
            return await self.fetcher.call("GET", url, params=params, headers=headers, unit=unit)
        except SourceFetchError as e:
            logger.error(f"[{self.source_name}] Fetch failed for {unit}: {e.message}")
            return None

    def _validate_records(
        self,
        unit: str,
        records: Any,
        model: Type[M],
    ) -> List[M]:
        """Validate raw records against ``model``, dropping the ones that don't fit"""
        if not isinstance(records, list):
            return []

        valid: List[M] = []
        for index, record in enumerate(records):
            try:
                valid.append(model.model_validate(record))
            except ValidationError as e:
                logger.warning(
                    f"[{self.source_name}] Dropping invalid {model.__name__} #{index} "
                    f"from {unit}: {e.error_count()} validation error(s)"
                )
        return valid

    async def _fetch_results(
        self,
        unit: str,
        url: str,
        model: Type[M],
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        results_key: str = "results",
    ) -> List[M]:
        payload = await self._fetch_payload(unit, url, params=params, headers=headers)
        if not payload:
            return []

        # Absent results means an empty unit, not an error
        records = payload.get(results_key) or []
        return self._validate_records(unit, records, model)
