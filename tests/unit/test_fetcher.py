"""
Unit tests for the retry combinator, token manager and rate-limited fetcher
"""

import httpx
import pytest
from pydantic import ValidationError

from core.config import Settings
from core.exceptions import (
    AuthError,
    NetworkError,
    RateLimited,
    RetryableError,
    SourceFetchError,
    StoreWriteError,
)
from ingestion.context import RunContext
from ingestion.fetcher import RateLimitedFetcher, TokenManager
from ingestion.retry import BackoffStrategy, RetryPolicy, with_retry
from tests.helpers import EBAY_TOKEN, SleepRecorder, make_fetcher, ok, token_response

URL = "https://api.test/items"


class TestRetryPolicy:
    """Backoff arithmetic"""

    def test_exponential_delays_are_capped(self):
        policy = RetryPolicy.exponential(retries=5, base_delay=5.0, max_delay=60.0)
        assert policy.max_attempts == 6
        assert [policy.delay_for(n) for n in range(5)] == [5.0, 10.0, 20.0, 40.0, 60.0]

    def test_linear_delays(self):
        policy = RetryPolicy.linear(attempts=3, base_delay=1.0)
        assert policy.strategy == BackoffStrategy.LINEAR
        assert [policy.delay_for(n) for n in range(3)] == [1.0, 2.0, 3.0]

    def test_zero_attempts_is_rejected(self):
        with pytest.raises(ValueError, match="max_attempts"):
            RetryPolicy.linear(attempts=0, base_delay=1.0)
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=-1)

    def test_zero_retries_means_one_attempt(self):
        assert RetryPolicy.exponential(retries=0, base_delay=5.0, max_delay=60.0).max_attempts == 1

    @pytest.mark.asyncio
    async def test_single_attempt_reraises_without_sleeping(self):
        sleeps = SleepRecorder()

        async def fails(attempt):
            raise StoreWriteError("rejected")

        with pytest.raises(StoreWriteError):
            await with_retry(fails, RetryPolicy.linear(1, 1.0), sleep=sleeps)
        assert sleeps.delays == []

    def test_retry_settings_are_bounded(self):
        with pytest.raises(ValidationError):
            Settings(STORE_MAX_RETRIES=0)
        with pytest.raises(ValidationError):
            Settings(FETCH_MAX_RETRIES=-1)
        assert Settings(FETCH_MAX_RETRIES=0).FETCH_MAX_RETRIES == 0

    @pytest.mark.asyncio
    async def test_with_retry_succeeds_after_failures(self):
        sleeps = SleepRecorder()
        attempts = []

        async def flaky(attempt):
            attempts.append(attempt)
            if attempt < 2:
                raise StoreWriteError("rejected")
            return "done"

        result = await with_retry(flaky, RetryPolicy.linear(3, 1.0), sleep=sleeps)

        assert result == "done"
        assert attempts == [0, 1, 2]
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_with_retry_reraises_last_error(self):
        async def always(attempt):
            raise StoreWriteError(f"rejected {attempt}")

        with pytest.raises(StoreWriteError, match="rejected 2"):
            await with_retry(always, RetryPolicy.linear(3, 1.0), sleep=SleepRecorder())

    @pytest.mark.asyncio
    async def test_non_retryable_errors_propagate_immediately(self):
        attempts = []

        async def fails(attempt):
            attempts.append(attempt)
            raise AuthError("no credentials")

        with pytest.raises(AuthError):
            await with_retry(fails, RetryPolicy.linear(3, 1.0), sleep=SleepRecorder())
        assert attempts == [0]

    @pytest.mark.asyncio
    async def test_retry_after_extends_delay(self):
        sleeps = SleepRecorder()

        async def limited(attempt):
            if attempt == 0:
                raise RateLimited("slow down", retry_after=30)
            return "ok"

        await with_retry(limited, RetryPolicy.exponential(3, 5.0, 60.0), sleep=sleeps)
        assert sleeps.delays == [30]


class TestRateLimitedFetcher:
    """Budget accounting, backoff and degradation"""

    @pytest.mark.asyncio
    async def test_successful_call_counts_once(self):
        client, fetcher = make_fetcher(lambda request: ok({"results": [1, 2]}), budget=10)
        async with client:
            payload = await fetcher.call("GET", URL)

        assert payload == {"results": [1, 2]}
        assert fetcher.context.calls_made == 1

    @pytest.mark.asyncio
    async def test_list_body_is_wrapped_as_results(self):
        client, fetcher = make_fetcher(lambda request: ok([{"id": 1}]))
        async with client:
            assert await fetcher.call("GET", URL) == {"results": [{"id": 1}]}

    @pytest.mark.asyncio
    async def test_429_backs_off_then_succeeds(self):
        responses = iter([httpx.Response(429), ok({"results": []})])
        sleeps = SleepRecorder()
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: next(responses)))
        fetcher = RateLimitedFetcher(client, RunContext(call_budget=10), sleep=sleeps)

        async with client:
            payload = await fetcher.call("GET", URL)

        assert payload == {"results": []}
        assert fetcher.context.calls_made == 2
        assert sleeps.delays == [5.0]

    @pytest.mark.asyncio
    async def test_persistent_429_degrades_to_empty(self):
        sleeps = SleepRecorder()
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(429)))
        fetcher = RateLimitedFetcher(
            client,
            RunContext(call_budget=10),
            policy=RetryPolicy.exponential(retries=3, base_delay=5.0, max_delay=60.0),
            sleep=sleeps,
        )

        async with client:
            payload = await fetcher.call("GET", URL)

        assert payload == {}
        assert fetcher.context.calls_made == 4
        assert sleeps.delays == [5.0, 10.0, 20.0]

    @pytest.mark.asyncio
    async def test_rate_limit_error_payload_is_retried(self):
        responses = iter([
            ok({"errors": [{"message": "Too many requests. Please slow down."}]}),
            ok({"results": ["x"]}),
        ])
        client, fetcher = make_fetcher(lambda request: next(responses))
        async with client:
            assert await fetcher.call("GET", URL) == {"results": ["x"]}
        assert fetcher.context.calls_made == 2

    @pytest.mark.asyncio
    async def test_retries_count_against_budget(self):
        client, fetcher = make_fetcher(lambda request: httpx.Response(429), budget=2)
        async with client:
            payload = await fetcher.call("GET", URL)

        assert payload == {}
        assert fetcher.context.calls_made == 2
        assert fetcher.context.calls_refused == 1
        assert fetcher.has_reached_api_limit()

    @pytest.mark.asyncio
    async def test_spent_budget_makes_no_request(self):
        requests = []

        def handler(request):
            requests.append(request)
            return ok({})

        client, fetcher = make_fetcher(handler, budget=0)
        async with client:
            assert await fetcher.call("GET", URL) == {}
        assert requests == []
        assert fetcher.context.calls_refused == 1

    @pytest.mark.asyncio
    async def test_server_error_raises_source_fetch_error(self):
        client, fetcher = make_fetcher(lambda request: httpx.Response(500, text="boom"))
        async with client:
            with pytest.raises(SourceFetchError) as exc_info:
                await fetcher.call("GET", URL, unit="group 7 products")

        assert exc_info.value.context["status_code"] == 500
        assert fetcher.context.calls_made == 1

    @pytest.mark.asyncio
    async def test_unparseable_body_raises_source_fetch_error(self):
        client, fetcher = make_fetcher(lambda request: httpx.Response(200, text="<html>"))
        async with client:
            with pytest.raises(SourceFetchError):
                await fetcher.call("GET", URL)

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried_then_degrade(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, fetcher = make_fetcher(handler, budget=10)
        async with client:
            assert await fetcher.call("GET", URL) == {}
        assert fetcher.context.calls_made == 4


class TestTokenManager:
    """OAuth client-credentials caching"""

    @pytest.mark.asyncio
    async def test_token_is_reused_and_not_counted(self):
        token_requests = []
        api_requests = []

        def handler(request):
            if str(request.url) == EBAY_TOKEN:
                token_requests.append(request)
                return token_response()
            api_requests.append(request)
            return ok({"itemSummaries": []})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = TokenManager(client, "app-id", "secret", token_url=EBAY_TOKEN)
        fetcher = RateLimitedFetcher(client, RunContext(call_budget=10), token_manager=manager)

        async with client:
            await fetcher.authenticate()
            await fetcher.call("GET", URL)
            await fetcher.call("GET", URL)

        assert len(token_requests) == 1
        assert b"grant_type=client_credentials" in token_requests[0].content
        assert token_requests[0].headers["Authorization"].startswith("Basic ")
        assert all(r.headers["Authorization"] == "Bearer token-abc" for r in api_requests)
        assert fetcher.context.calls_made == 2

    @pytest.mark.asyncio
    async def test_token_refreshed_inside_margin(self):
        now = [0.0]
        exchanges = []

        def handler(request):
            exchanges.append(request)
            return token_response()

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            manager = TokenManager(
                client, "app-id", "secret", token_url=EBAY_TOKEN, refresh_margin=300, clock=lambda: now[0]
            )
            await manager.get_token()
            now[0] = 6800.0
            await manager.get_token()
            assert len(exchanges) == 1

            now[0] = 6950.0
            await manager.get_token()
            assert len(exchanges) == 2

    @pytest.mark.asyncio
    async def test_missing_credentials_raise_auth_error(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: token_response())) as client:
            manager = TokenManager(client, None, None, token_url=EBAY_TOKEN)
            with pytest.raises(AuthError, match="Missing OAuth client credentials"):
                await manager.get_token()

    @pytest.mark.asyncio
    async def test_rejected_exchange_raises_auth_error(self):
        rejected = httpx.MockTransport(lambda r: httpx.Response(401, json={"error": "invalid_client"}))
        async with httpx.AsyncClient(transport=rejected) as client:
            manager = TokenManager(client, "app-id", "wrong", token_url=EBAY_TOKEN)
            with pytest.raises(AuthError) as exc_info:
                await manager.get_token()
        assert exc_info.value.context["status_code"] == 401

    @pytest.mark.asyncio
    async def test_unauthorized_api_call_invalidates_token(self):
        def handler(request):
            if str(request.url) == EBAY_TOKEN:
                return token_response()
            return httpx.Response(401, json={"errors": [{"message": "Invalid access token"}]})

        client, fetcher = make_fetcher(handler)
        fetcher.token_manager = TokenManager(client, "app-id", "secret", token_url=EBAY_TOKEN)

        async with client:
            with pytest.raises(SourceFetchError):
                await fetcher.call("GET", URL)
        assert not fetcher.token_manager.is_valid()

    def test_transport_and_rate_limit_errors_are_retryable(self):
        assert issubclass(NetworkError, RetryableError)
        assert issubclass(RateLimited, RetryableError)
        assert not issubclass(AuthError, RetryableError)
