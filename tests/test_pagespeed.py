import asyncio
from unittest.mock import AsyncMock

import pytest

from services.errors import TIMEOUT_MESSAGE, AnalysisFailedError
from services.pagespeed import PageSpeedClient, extract_metrics


class TestExtractMetrics:
    def test_rounds_score_and_timings(self, pagespeed_payload):
        metrics = extract_metrics(pagespeed_payload)

        assert metrics.performance_score == 87
        assert metrics.fcp_time == 1234
        assert metrics.lcp_time == 2501
        assert metrics.speed_index == 3100
        assert metrics.total_blocking_time == 150
        assert metrics.cumulative_layout_shift == 0.123

    def test_score_rounds_half_up(self, pagespeed_payload):
        pagespeed_payload["lighthouseResult"]["categories"]["performance"]["score"] = 0.125

        assert extract_metrics(pagespeed_payload).performance_score == 13

    def test_missing_audit_is_none(self, pagespeed_payload):
        del pagespeed_payload["lighthouseResult"]["audits"]["first-contentful-paint"]

        metrics = extract_metrics(pagespeed_payload)

        assert metrics.fcp_time is None
        assert metrics.lcp_time == 2501

    def test_empty_payload_has_no_metrics(self):
        metrics = extract_metrics({})

        assert metrics.performance_score is None
        assert metrics.cumulative_layout_shift is None
        assert metrics.stored_values()["performance_score"] == 0


def test_attempt_timeouts_grow_by_step():
    client = PageSpeedClient(base_timeout=6, timeout_step=2)

    assert [client.attempt_timeout(attempt) for attempt in (1, 2, 3)] == [6, 8, 10]


@pytest.mark.asyncio
async def test_fetch_succeeds_on_first_attempt(fake_upstream, pagespeed_payload):
    sleep = AsyncMock()
    async with fake_upstream(("json", pagespeed_payload, 200)) as api:
        client = PageSpeedClient(endpoint=api.url, api_key="", sleep=sleep)
        try:
            result = await client.fetch("https://example.com")
        finally:
            await client.close()

    assert result.attempts == 1
    assert result.metrics.performance_score == 87
    assert len(api.requests) == 1
    query = api.requests[0]["query"]
    assert query["url"] == "https://example.com"
    assert query["strategy"] == "mobile"
    assert query["category"] == "performance"
    assert "key" not in query
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_sends_api_key_when_configured(fake_upstream, pagespeed_payload):
    async with fake_upstream(("json", pagespeed_payload, 200)) as api:
        client = PageSpeedClient(endpoint=api.url, api_key="secret-key", sleep=AsyncMock())
        try:
            await client.fetch("https://example.com")
        finally:
            await client.close()

    assert api.requests[0]["query"]["key"] == "secret-key"


@pytest.mark.asyncio
async def test_fetch_retries_after_server_error(fake_upstream, pagespeed_payload):
    sleep = AsyncMock()
    async with fake_upstream(("text", "upstream exploded", 500), ("json", pagespeed_payload, 200)) as api:
        client = PageSpeedClient(endpoint=api.url, api_key="", base_delay=1, sleep=sleep)
        try:
            result = await client.fetch("https://example.com")
        finally:
            await client.close()

    assert result.attempts == 2
    assert len(api.requests) == 2
    assert [call.args[0] for call in sleep.await_args_list] == [1]


@pytest.mark.asyncio
async def test_fetch_gives_up_after_three_timeouts(fake_upstream):
    sleep = AsyncMock()
    async with fake_upstream(("sleep", 0.3)) as api:
        client = PageSpeedClient(
            endpoint=api.url,
            api_key="",
            max_attempts=3,
            base_timeout=0.05,
            timeout_step=0.05,
            base_delay=1,
            sleep=sleep,
        )
        try:
            with pytest.raises(AnalysisFailedError) as exc_info:
                await client.fetch("https://slow.example.com")
        finally:
            await client.close()

    assert len(api.requests) == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1, 2]
    assert exc_info.value.message == TIMEOUT_MESSAGE
    assert exc_info.value.error_code == "TIMEOUT"
    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_fetch_reports_quota_exhaustion_as_429(fake_upstream):
    async with fake_upstream(("json", {"error": {"code": 429}}, 429)) as api:
        client = PageSpeedClient(endpoint=api.url, api_key="", sleep=AsyncMock())
        try:
            with pytest.raises(AnalysisFailedError) as exc_info:
                await client.fetch("https://example.com")
        finally:
            await client.close()

    assert len(api.requests) == 3
    assert exc_info.value.status == 429
    assert exc_info.value.error_code == "QUOTA_EXCEEDED"


@pytest.mark.asyncio
async def test_fetch_surfaces_embedded_error(fake_upstream):
    payload = {"error": {"code": 400, "message": "Lighthouse returned error: NO_FCP"}}
    async with fake_upstream(("json", payload, 200)) as api:
        client = PageSpeedClient(endpoint=api.url, api_key="", sleep=AsyncMock())
        try:
            with pytest.raises(AnalysisFailedError) as exc_info:
                await client.fetch("https://example.com")
        finally:
            await client.close()

    assert "Lighthouse returned error: NO_FCP" in exc_info.value.message
    assert exc_info.value.error_code == "INVALID_URL"
    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_fetch_rejects_invalid_json(fake_upstream, pagespeed_payload):
    async with fake_upstream(("text", "<html>oops</html>", 200), ("json", pagespeed_payload, 200)) as api:
        client = PageSpeedClient(endpoint=api.url, api_key="", sleep=AsyncMock())
        try:
            result = await client.fetch("https://example.com")
        finally:
            await client.close()

    assert result.attempts == 2


class TimingOutSession:
    """Records the timeout of every request and lets each one time out."""

    def __init__(self) -> None:
        self.timeouts: list[float] = []

    def get(self, url, *, params, timeout):
        self.timeouts.append(timeout.total)
        return _TimedOutResponse()


class _TimedOutResponse:
    async def __aenter__(self):
        raise asyncio.TimeoutError

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_each_attempt_gets_a_longer_timeout():
    session = TimingOutSession()
    client = PageSpeedClient(
        session,
        api_key="",
        max_attempts=3,
        base_timeout=6,
        timeout_step=2,
        sleep=AsyncMock(),
    )

    with pytest.raises(AnalysisFailedError):
        await client.fetch("https://example.com")

    assert session.timeouts == [6, 8, 10]


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [{"value": 500}, [400], "429", True])
async def test_fetch_tolerates_malformed_error_code(fake_upstream, code):
    payload = {"error": {"code": code, "message": "Something odd"}}
    async with fake_upstream(("json", payload, 200)) as api:
        client = PageSpeedClient(endpoint=api.url, api_key="", sleep=AsyncMock())
        try:
            with pytest.raises(AnalysisFailedError) as exc_info:
                await client.fetch("https://example.com")
        finally:
            await client.close()

    assert len(api.requests) == 3
    assert exc_info.value.error_code == "UPSTREAM_ERROR"
    assert exc_info.value.status == 500
