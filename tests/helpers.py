"""
Shared test doubles: fake sources, payload builders, fetcher factory
"""

import re
from typing import Any, Callable, Dict, List, Optional

import httpx

from ingestion.context import RunContext
from ingestion.fetcher import RateLimitedFetcher, TokenManager

TCGCSV = "https://tcgcsv.test/tcgplayer"
EBAY_SEARCH = "https://api.ebay.test/buy/browse/v1/item_summary/search"
EBAY_TOKEN = "https://api.ebay.test/identity/v1/oauth2/token"


async def no_sleep(seconds: float):
    return None


class SleepRecorder:
    """Async sleep double that records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


def make_fetcher(
    handler: Callable[[httpx.Request], httpx.Response],
    budget: int = 100,
    skip: int = 0,
    token_manager: Optional[TokenManager] = None,
    context: Optional[RunContext] = None,
):
    """(client, fetcher) over an httpx.MockTransport; backoff sleeps are skipped"""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    context = context or RunContext(call_budget=budget, sets_skipped=skip)
    fetcher = RateLimitedFetcher(client, context, token_manager=token_manager, sleep=no_sleep)
    return client, fetcher


def ok(payload: Any) -> httpx.Response:
    return httpx.Response(200, json=payload)


# ============================================================================
# TCGCSV payloads
# ============================================================================

def tcg_group(group_id: int, name: str, published: Optional[str] = "2024-01-01T00:00:00", category_id: int = 3):
    return {
        "groupId": group_id,
        "categoryId": category_id,
        "name": name,
        "abbreviation": f"G{group_id}",
        "publishedOn": published,
        "modifiedOn": "2024-02-01T00:00:00",
    }


def tcg_product(product_id: int, group_id: int, name: str, number: Optional[str] = "001/100", category_id: int = 3):
    extended = [{"name": "Rarity", "value": "Rare"}]
    if number is not None:
        extended.insert(0, {"name": "Number", "value": number})
    return {
        "productId": product_id,
        "categoryId": category_id,
        "groupId": group_id,
        "name": name,
        "cleanName": name,
        "imageUrl": f"https://tcgplayer-cdn.test/product/{product_id}_200w.jpg",
        "url": f"https://www.tcgplayer.com/product/{product_id}",
        "extendedData": extended,
    }


def tcg_price(product_id: int, market: Optional[float] = 10.0, sub_type: str = "Normal", low: Optional[float] = 8.0):
    return {
        "productId": product_id,
        "lowPrice": low,
        "midPrice": 11.0,
        "highPrice": 20.0,
        "marketPrice": market,
        "subTypeName": sub_type,
    }


class TcgcsvSource:
    """
    Fake TCGCSV API: groups with products and prices, request log, and
    optional per-path failure status codes.
    """

    _PATH = re.compile(r"/tcgplayer/(\d+)/(?:(\d+)/)?(groups|products|prices)$")

    def __init__(self, category_id: int = 3):
        self.category_id = category_id
        self.groups: List[Dict[str, Any]] = []
        self.products: Dict[int, List[Dict[str, Any]]] = {}
        self.prices: Dict[int, List[Dict[str, Any]]] = {}
        self.failures: Dict[str, int] = {}
        self.requests: List[str] = []

    def add_group(self, group_id: int, name: str, published: Optional[str], product_count: int = 3):
        self.groups.append(tcg_group(group_id, name, published, self.category_id))
        base = group_id * 100
        self.products[group_id] = [
            tcg_product(base + i, group_id, f"{name} Card {i}", f"{i:03d}/100", self.category_id)
            for i in range(1, product_count + 1)
        ]
        self.prices[group_id] = [tcg_price(base + i, market=float(i)) for i in range(1, product_count + 1)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(path)
        for fragment, status in self.failures.items():
            if path.endswith(fragment):
                return httpx.Response(status, text="upstream error")

        match = self._PATH.search(path)
        if match is None:
            return httpx.Response(404, text="not found")
        _, group_id, kind = match.groups()
        if kind == "groups":
            results = self.groups
        elif kind == "products":
            results = self.products.get(int(group_id), [])
        else:
            results = self.prices.get(int(group_id), [])
        return ok({"success": True, "errors": [], "results": results})


# ============================================================================
# eBay payloads
# ============================================================================

def ebay_item(item_id: str, title: str, price: Optional[str] = "100.00", created: Optional[str] = None):
    item = {
        "itemId": item_id,
        "title": title,
        "itemWebUrl": f"https://www.ebay.com/itm/{item_id}",
        "condition": "Graded",
        "image": {"imageUrl": f"https://i.ebayimg.com/images/g/{item_id}/s-l225.jpg"},
    }
    if price is not None:
        item["price"] = {"value": price, "currency": "USD"}
    if created is not None:
        item["itemCreationDate"] = created
    return item


def token_response() -> httpx.Response:
    return ok({"access_token": "token-abc", "expires_in": 7200, "token_type": "Application Access Token"})
