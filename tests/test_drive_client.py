"""
Tests for the rate-limited Drive client.

Covers:
- Call budget enforcement
- Throttling backoff (monotonic, bounded) and run-wide pacing
- Flat retries for other failures
- Gradual pace recovery after a success streak
"""

import asyncio

import httpx
import pytest

from conftest import SleepRecorder, make_client
from app.services.sync_errors import (
    CallBudgetExceeded,
    DownloadFailed,
    ErrorKind,
    ThrottlingDetected,
    TransportError,
)

URL = "https://www.googleapis.com/drive/v3/files"


def scripted(responses):
    """Handler returning the given responses in order, then 200s."""
    queue = list(responses)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return httpx.Response(200, json={"files": []})

    handler.seen = seen
    return handler


def throttled():
    return httpx.Response(403, text="We're sorry... your computer may be sending automated queries.")


class TestBudget:
    """Hard ceiling on outbound requests."""

    def test_budget_exceeded_before_request(self):
        """The call that would exceed the budget is never sent."""
        handler = scripted([])
        client = make_client(handler, max_calls=2)

        async def go():
            await client.call(URL)
            await client.call(URL)
            with pytest.raises(CallBudgetExceeded):
                await client.call(URL)

        asyncio.run(go())
        assert len(handler.seen) == 2
        assert client.calls_made == 2

    def test_exhausted_budget_skips_pacing_sleep(self):
        sleep = SleepRecorder()
        client = make_client(scripted([]), max_calls=1, sleep=sleep)

        async def go():
            await client.call(URL)
            with pytest.raises(CallBudgetExceeded):
                await client.call(URL)

        asyncio.run(go())
        assert sleep.calls == [1.0]

    def test_retries_count_against_budget(self):
        """Each retry attempt consumes budget."""
        handler = scripted([httpx.Response(500), httpx.Response(500)])
        client = make_client(handler, max_calls=2)

        with pytest.raises(CallBudgetExceeded):
            asyncio.run(client.call(URL))
        assert len(handler.seen) == 2

    def test_api_key_sent_as_query_param(self):
        handler = scripted([])
        client = make_client(handler)
        asyncio.run(client.call(URL, params={"pageSize": 10}))
        assert handler.seen[0].url.params["key"] == "test-key"
        assert handler.seen[0].url.params["pageSize"] == "10"


class TestThrottling:
    """Adaptive backoff on Drive throttling responses."""

    def test_backoff_strictly_increasing(self):
        """Three throttles in a row produce strictly growing waits."""
        sleep = SleepRecorder()
        handler = scripted([throttled(), throttled(), throttled()])
        client = make_client(handler, sleep=sleep)

        response = asyncio.run(client.call(URL))

        assert response.status_code == 200
        pace, *retry_waits = sleep.calls
        assert pace == 1.0
        assert retry_waits == [2.5, 6.5, 13.125]
        assert retry_waits[0] < retry_waits[1] < retry_waits[2]
        assert all(wait <= client.max_delay for wait in retry_waits)
        assert client.state.current_delay == pytest.approx(3.375)
        assert client.state.consecutive_errors == 0
        assert client.state.throttle_events == 3

    def test_backoff_bounded_by_ceiling(self):
        sleep = SleepRecorder()
        handler = scripted([throttled(), throttled(), throttled()])
        client = make_client(handler, sleep=sleep, max_delay=5.0)

        asyncio.run(client.call(URL))

        retry_waits = sleep.calls[1:]
        assert retry_waits == [2.5, 5.0, 5.0]
        assert client.state.current_delay <= 5.0

    def test_throttling_exhausts_retries(self):
        handler = scripted([throttled()] * 4)
        client = make_client(handler)

        with pytest.raises(ThrottlingDetected) as exc_info:
            asyncio.run(client.call(URL))
        assert exc_info.value.kind is ErrorKind.RATE_LIMIT
        assert len(handler.seen) == 4

    def test_quota_throttle_kind(self):
        handler = scripted([httpx.Response(403, json={"error": {"message": "Daily Limit Exceeded. quota"}})] * 4)
        client = make_client(handler)

        with pytest.raises(ThrottlingDetected) as exc_info:
            asyncio.run(client.call(URL))
        assert exc_info.value.kind is ErrorKind.QUOTA

    def test_http_429_is_throttling(self):
        sleep = SleepRecorder()
        handler = scripted([httpx.Response(429, text="Too Many Requests")])
        client = make_client(handler, sleep=sleep)

        asyncio.run(client.call(URL))
        assert client.state.throttle_events == 1
        assert client.state.current_delay == pytest.approx(1.5)

    def test_throttle_slows_later_calls(self):
        """Pace raised by one call carries over to the next call of the run."""
        sleep = SleepRecorder()
        handler = scripted([throttled()])
        client = make_client(handler, sleep=sleep)

        async def go():
            await client.call(URL)
            await client.call(URL)

        asyncio.run(go())
        # pace, retry wait, pace of the second call
        assert sleep.calls[2] == pytest.approx(1.5)

    def test_separate_clients_have_independent_state(self):
        first = make_client(scripted([throttled()]))
        second = make_client(scripted([]))

        asyncio.run(first.call(URL))
        asyncio.run(second.call(URL))
        assert first.state.current_delay == pytest.approx(1.5)
        assert second.state.current_delay == 1.0


class TestOtherFailures:
    """Flat progressive retries for non-throttling failures."""

    def test_server_error_retries_then_raises(self):
        sleep = SleepRecorder()
        handler = scripted([httpx.Response(500, text="boom")] * 4)
        client = make_client(handler, sleep=sleep)

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(client.call(URL))
        assert sleep.calls[1:] == [2.0, 4.0, 6.0]
        assert exc_info.value.kind is ErrorKind.NETWORK
        assert exc_info.value.status_code == 500
        assert client.state.current_delay == 1.0

    def test_permission_denied_kind(self):
        handler = scripted([httpx.Response(403, text="The caller does not have permission")] * 4)
        client = make_client(handler)

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(client.call(URL))
        assert exc_info.value.kind is ErrorKind.PERMISSION

    def test_connection_error_recovers(self):
        handler = scripted([httpx.ConnectError("connection refused")])
        client = make_client(handler)

        response = asyncio.run(client.call(URL))
        assert response.status_code == 200
        assert client.calls_made == 2

    def test_connection_error_exhausted(self):
        handler = scripted([httpx.ConnectError("connection refused")] * 4)
        client = make_client(handler)

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(client.call(URL))
        assert exc_info.value.kind is ErrorKind.NETWORK


class TestRecovery:
    """Pace relaxes slowly after sustained success."""

    def test_delay_reduced_after_streak(self):
        client = make_client(scripted([]))
        client.state.current_delay = 2.0

        async def go(n):
            for _ in range(n):
                await client.call(URL)

        asyncio.run(go(4))
        assert client.state.current_delay == 2.0
        asyncio.run(go(1))
        assert client.state.current_delay == pytest.approx(1.8)

    def test_delay_never_below_floor(self):
        client = make_client(scripted([]))
        client.state.current_delay = 1.05

        async def go():
            for _ in range(15):
                await client.call(URL)

        asyncio.run(go())
        assert client.state.current_delay == 1.0


class TestDownload:
    def test_download_returns_raw_bytes(self):
        handler = scripted([httpx.Response(200, content=b"# Title\r\n\xe2\x9c\x93")])
        client = make_client(handler)

        assert asyncio.run(client.download("abc")) == b"# Title\r\n\xe2\x9c\x93"
        assert handler.seen[0].url.path.endswith("/files/abc")
        assert handler.seen[0].url.params["alt"] == "media"

    def test_download_failure_keeps_kind(self):
        handler = scripted([httpx.Response(404, text="File not found")] * 4)
        client = make_client(handler)

        with pytest.raises(DownloadFailed) as exc_info:
            asyncio.run(client.download("missing"))
        assert exc_info.value.kind is ErrorKind.OTHER
        assert exc_info.value.status_code == 404

    def test_download_budget_passes_through(self):
        client = make_client(scripted([]), max_calls=0)

        with pytest.raises(CallBudgetExceeded):
            asyncio.run(client.download("abc"))
