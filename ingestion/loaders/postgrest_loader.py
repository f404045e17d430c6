"""
Keyed store over a PostgREST endpoint (Supabase REST API)
"""

import httpx
import logging
from typing import Any, Dict, List, Optional, Sequence

from core.config import settings
from core.exceptions import ConfigurationError, StoreReadError, StoreWriteError
from ingestion.loaders.base import KeyedStore
from pydantic import ValidationError
from schemas.normalized import CanonicalRow
from schemas.raw import TargetCard, TargetGroup

logger = logging.getLogger(__name__)


class PostgrestStore(KeyedStore):
    """
    Upserts through ``POST /rest/v1/{table}?on_conflict=<key>`` with
    ``Prefer: resolution=merge-duplicates``. Rows always carry every
    column, so a merge on conflict replaces the full row.
    """

    backend = "postgrest"

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        base_url = base_url or settings.SUPABASE_URL
        api_key = api_key or settings.SUPABASE_KEY
        if not base_url or not api_key:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_KEY are required for the postgrest store",
                context={"store_backend": self.backend}
            )
        self.client = client
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.api_key = api_key

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(extra)
        return headers

    async def upsert(
        self,
        table: str,
        rows: Sequence[CanonicalRow],
        conflict_key: Sequence[str],
    ) -> int:
        if not rows:
            return 0

        context = {"table": table, "conflict_key": ",".join(conflict_key), "rows": len(rows)}
        try:
            response = await self.client.post(
                f"{self.rest_url}/{table}",
                params={"on_conflict": ",".join(conflict_key)},
                json=[row.model_dump(mode="json") for row in rows],
                headers=self._headers(Prefer="resolution=merge-duplicates,return=minimal"),
            )
        except httpx.TransportError as e:
            raise StoreWriteError(f"Upsert into {table} failed", context=context, original_exception=e)

        if not response.is_success:
            raise StoreWriteError(
                f"Upsert into {table} rejected with HTTP {response.status_code}",
                context={**context, "status_code": response.status_code, "response_body": response.text[:500]}
            )
        return len(rows)

    async def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        try:
            response = await self.client.get(
                f"{self.rest_url}/{table}", params=params, headers=self._headers()
            )
        except httpx.TransportError as e:
            raise StoreReadError(f"Read from {table} failed", context={"table": table}, original_exception=e)

        if not response.is_success:
            raise StoreReadError(
                f"Read from {table} failed with HTTP {response.status_code}",
                context={"table": table, "status_code": response.status_code, "response_body": response.text[:500]}
            )
        try:
            data = response.json()
        except ValueError as e:
            raise StoreReadError(
                f"Failed to parse rows read from {table}",
                context={"table": table, "response_body": response.text[:500]},
                original_exception=e,
            )
        return data if isinstance(data, list) else []

    async def select_groups(self, category_id: int, limit: int) -> List[TargetGroup]:
        rows = await self._select(
            "tcgcsv_groups",
            {
                "select": "group_id,display_name",
                "category_id": f"eq.{category_id}",
                "order": "group_id.desc",
                "limit": str(limit),
            },
        )
        return self._parse(rows, TargetGroup)

    async def select_top_products(self, group_id: int, limit: int) -> List[TargetCard]:
        rows = await self._select(
            "tcgcsv_products",
            {
                "select": "product_id,name,card_number,market_price,set_name",
                "group_id": f"eq.{group_id}",
                "market_price": "not.is.null",
                "order": "market_price.desc",
                "limit": str(limit),
            },
        )
        return self._parse(rows, TargetCard)

    @staticmethod
    def _parse(rows, model):
        parsed = []
        for row in rows:
            try:
                parsed.append(model.model_validate(row))
            except ValidationError:
                logger.warning(f"Ignoring malformed {model.__name__} row from store: {row}")
        return parsed
