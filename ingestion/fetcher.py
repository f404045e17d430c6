"""
Rate-limited fetcher with OAuth token caching and a shared call budget.

This module provides resilient outbound HTTP for every walker:
- OAuth client-credentials token caching with proactive refresh
- Exponential backoff on HTTP 429 and on "too many requests" error payloads
- Retry on transport failures and timeouts
- One unit of the run's call budget consumed per attempt
- Degradation to an empty result once retries are exhausted
"""

import httpx
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from core.config import settings
from core.exceptions import (
    AuthError,
    BudgetExhausted,
    NetworkError,
    RateLimited,
    SourceFetchError,
)
from ingestion.context import RunContext
from ingestion.retry import RetryPolicy, with_retry
from pydantic import ValidationError
from schemas.raw import OAuthTokenResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("too many requests", "rate limit")


def _payload_is_rate_limited(payload: Any) -> bool:
    """True for an ``{errors: [...]}`` body that reports rate limiting"""
    if not isinstance(payload, dict):
        return False
    errors = payload.get("errors")
    if not errors or not isinstance(errors, list):
        return False
    for error in errors:
        text = str(error.get("message", "") if isinstance(error, dict) else error).lower()
        if any(marker in text for marker in RATE_LIMIT_MARKERS):
            return True
    return False


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class TokenManager:
    """
    OAuth2 client-credentials token cache.

    The token is kept in memory with its expiry and exchanged again once
    fewer than ``refresh_margin`` seconds remain. Token exchanges do not
    count against the run's call budget.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        app_id: Optional[str],
        client_secret: Optional[str],
        token_url: str = settings.EBAY_TOKEN_URL,
        scope: str = settings.EBAY_SCOPE,
        refresh_margin: float = settings.TOKEN_REFRESH_MARGIN,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.app_id = app_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.scope = scope
        self.refresh_margin = refresh_margin
        self.clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.app_id and self.client_secret)

    def is_valid(self) -> bool:
        return self._token is not None and self.clock() < self._expires_at - self.refresh_margin

    def invalidate(self):
        self._token = None
        self._expires_at = 0.0

    async def get_token(self) -> str:
        if self.is_valid():
            return self._token
        return await self._exchange()

    async def _exchange(self) -> str:
        if not self.has_credentials:
            raise AuthError(
                "Missing OAuth client credentials",
                context={"token_url": self.token_url, "required": "EBAY_APP_ID, EBAY_CLIENT_SECRET"}
            )

        logger.info("Requesting OAuth access token")
        try:
            response = await self.client.post(
                self.token_url,
                auth=(self.app_id, self.client_secret),
                data={"grant_type": "client_credentials", "scope": self.scope},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TransportError as e:
            raise AuthError(
                "Token exchange failed",
                context={"token_url": self.token_url},
                original_exception=e
            )

        if response.status_code != 200:
            raise AuthError(
                f"Token exchange rejected with HTTP {response.status_code}",
                context={
                    "token_url": self.token_url,
                    "status_code": response.status_code,
                    "response_body": response.text[:500]
                }
            )

        try:
            token = OAuthTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthError(
                "Token response did not contain an access token",
                context={"token_url": self.token_url},
                original_exception=e
            )

        self._token = token.access_token
        self._expires_at = self.clock() + token.expires_in
        logger.info(f"Got OAuth access token (expires in {token.expires_in}s)")
        return self._token


class RateLimitedFetcher:
    """
    Outbound HTTP for one harvest run.

    Every attempt, including retries, increments ``context.calls_made``.
    Once the budget is spent no further attempt is made and the call
    degrades to an empty result.

    Attributes:
        client: Shared httpx client
        context: The run's RunContext (budget counter lives here)
        token_manager: OAuth token source, or None for unauthenticated sources
        policy: Backoff policy for rate-limited and transport failures
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        context: RunContext,
        token_manager: Optional[TokenManager] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.client = client
        self.context = context
        self.token_manager = token_manager
        self.policy = policy or RetryPolicy.exponential(
            retries=settings.FETCH_MAX_RETRIES,
            base_delay=settings.FETCH_BACKOFF_BASE,
            max_delay=settings.FETCH_BACKOFF_MAX,
        )
        self.sleep = sleep

    def has_reached_api_limit(self) -> bool:
        return self.context.has_reached_api_limit()

    async def authenticate(self) -> Optional[str]:
        """Exchange (or reuse) the OAuth token. Raises AuthError."""
        if self.token_manager is None:
            return None
        return await self.token_manager.get_token()

    async def call(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        unit: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Issue one logical request.

        Returns:
            Decoded JSON body, or ``{}`` when the budget is spent or
            rate-limit/transport retries are exhausted

        Raises:
            SourceFetchError: Non-2xx, non-429 response or unparseable body
            AuthError: Token could not be obtained
        """
        unit = unit or url

        async def attempt(n: int) -> Dict[str, Any]:
            if self.context.has_reached_api_limit():
                self.context.record_refusal()
                raise BudgetExhausted(
                    self.context.calls_made,
                    self.context.call_budget,
                    context={"unit": unit}
                )
            return await self._send(method, url, params, headers, unit)

        try:
            return await with_retry(
                attempt,
                self.policy,
                retry_on=(RateLimited, NetworkError),
                description=f"Request for {unit}",
                sleep=self.sleep,
            )
        except BudgetExhausted:
            logger.warning(f"Budget exhausted before request for {unit} ({self.context.budget_label()} calls)")
            return {}
        except (RateLimited, NetworkError) as e:
            logger.warning(
                f"Giving up on {unit} after {self.policy.max_attempts} attempts: {e.message}"
            )
            return {}

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
        unit: str,
    ) -> Dict[str, Any]:
        request_headers = dict(headers or {})
        if self.token_manager is not None:
            token = await self.token_manager.get_token()
            request_headers["Authorization"] = f"Bearer {token}"

        self.context.record_call()
        logger.debug(f"API call {self.context.budget_label()}: {method} {url}")

        try:
            response = await self.client.request(
                method, url, params=params, headers=request_headers
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"Transport failure for {unit}",
                context={"url": url},
                original_exception=e
            )

        if response.status_code == 429:
            raise RateLimited(
                f"Rate limited on {unit}",
                context={"url": url, "status_code": 429},
                retry_after=_retry_after_seconds(response)
            )

        if response.status_code == 401 and self.token_manager is not None:
            self.token_manager.invalidate()

        if not response.is_success:
            raise SourceFetchError(
                f"HTTP {response.status_code} for {unit}",
                context={
                    "url": url,
                    "status_code": response.status_code,
                    "response_body": response.text[:500]
                }
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceFetchError(
                f"Failed to parse JSON response for {unit}",
                context={"url": url, "response_body": response.text[:500]},
                original_exception=e
            )

        if _payload_is_rate_limited(payload):
            raise RateLimited(f"Rate limited on {unit} (error payload)", context={"url": url})

        if not isinstance(payload, dict):
            return {"results": payload} if isinstance(payload, list) else {}
        return payload
