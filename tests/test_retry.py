"""
Retry Tests
Purpose: backoff schedule, error classification, telemetry events and the tracker.
"""

import pytest

from stockmeta.errors import ProviderError
from stockmeta.models import RetryEvent
from stockmeta.retry import (
    RetryTracker,
    backoff_delay,
    call_with_telemetry,
    classify_error,
    is_quota_error,
    retry_with_backoff,
)


def scripted(*outcomes):
    """Coroutine function returning or raising the given outcomes in turn."""
    calls = []

    async def fn():
        outcome = outcomes[len(calls)]
        calls.append(outcome)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    fn.calls = calls
    return fn


def make_event(request_id, filename="a.jpg", status="retrying", timestamp=0.0):
    return RetryEvent(request_id=request_id, filename=filename, attempt=1, max_attempts=5,
                      error_type="server-error", delay=2.0, status=status, timestamp=timestamp)


class TestClassification:

    def test_retryable_statuses(self):
        assert ProviderError("Server error", 500).retryable
        assert ProviderError("Too many requests", 429).retryable
        assert ProviderError("Connection error: reset").retryable

    def test_non_retryable(self):
        assert not ProviderError("Unauthorized", 401).retryable
        assert not ProviderError("Bad request", 400).retryable
        assert not ProviderError("API key not valid", 500).retryable
        assert not ProviderError("I'm a teapot", 418).retryable

    def test_unknown_status_with_overload_wording(self):
        assert ProviderError("Model is overloaded", 418).retryable

    def test_quota_detection(self):
        assert is_quota_error(429, "Quota exceeded for metric")
        assert is_quota_error(429, "free_tier requests limit")
        assert not is_quota_error(429, "Too many requests")
        assert not is_quota_error(500, "quota exceeded")

    def test_error_types(self):
        assert classify_error(ProviderError("Service unavailable", 503)) == "overloaded"
        assert classify_error(ProviderError("Too many requests", 429)) == "rate-limit"
        assert classify_error(ProviderError("Bad gateway", 502)) == "server-error"

    def test_backoff_delay(self):
        assert [backoff_delay(a) for a in range(4)] == [2.0, 4.0, 8.0, 16.0]
        assert backoff_delay(1, overloaded=True) == 8.0


class TestRetryWithBackoff:

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self, no_sleep):
        fn = scripted(ProviderError("Server error", 500), ProviderError("Server error", 500), "ok")
        assert await retry_with_backoff(fn, sleep=no_sleep) == "ok"
        assert no_sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_overload_doubles_delay(self, no_sleep):
        fn = scripted(ProviderError("Service unavailable", 503), "ok")
        await retry_with_backoff(fn, sleep=no_sleep)
        assert no_sleep.delays == [4.0]

    @pytest.mark.asyncio
    async def test_non_retryable_fails_at_once(self, no_sleep):
        fn = scripted(ProviderError("Unauthorized", 401), "ok")
        with pytest.raises(ProviderError):
            await retry_with_backoff(fn, sleep=no_sleep)
        assert len(fn.calls) == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, no_sleep):
        errors = [ProviderError(f"Server error {i}", 500) for i in range(3)]
        fn = scripted(*errors)
        with pytest.raises(ProviderError) as exc:
            await retry_with_backoff(fn, max_attempts=3, sleep=no_sleep)
        assert exc.value is errors[-1]
        assert no_sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self, no_sleep):
        fn = scripted(ValueError("boom"))
        with pytest.raises(ValueError):
            await retry_with_backoff(fn, sleep=no_sleep)
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_stop_flag_prevents_new_attempts(self, no_sleep):
        fn = scripted(ProviderError("Server error", 500), "ok")
        with pytest.raises(ProviderError):
            await retry_with_backoff(fn, should_stop=lambda: True, sleep=no_sleep)
        assert len(fn.calls) == 1

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, no_sleep):
        seen = []
        fn = scripted(ProviderError("Server error", 500), "ok")
        await retry_with_backoff(fn, on_retry=lambda a, e, d: seen.append((a, e.status, d)), sleep=no_sleep)
        assert seen == [(1, 500, 2.0)]


class TestCallWithTelemetry:

    @pytest.mark.asyncio
    async def test_retry_then_success_events(self, no_sleep):
        events = []
        fn = scripted(ProviderError("Too many requests", 429), "ok")
        result = await call_with_telemetry(fn, "a.jpg", events.append, request_id="req-1", sleep=no_sleep)

        assert result == "ok"
        assert [e.status for e in events] == ["retrying", "success"]
        assert events[0].error_type == "rate-limit"
        assert events[0].delay == 2.0
        assert events[1].attempt == 2
        assert all(e.request_id == "req-1" for e in events)

    @pytest.mark.asyncio
    async def test_success_without_retry_still_reported(self, no_sleep):
        events = []
        await call_with_telemetry(scripted("ok"), "a.jpg", events.append, sleep=no_sleep)
        assert [(e.status, e.attempt) for e in events] == [("success", 1)]
        assert events[0].request_id.startswith("a.jpg-")

    @pytest.mark.asyncio
    async def test_failure_event(self, no_sleep):
        events = []
        with pytest.raises(ProviderError):
            await call_with_telemetry(scripted(ProviderError("Unauthorized", 401)), "a.jpg",
                                      events.append, sleep=no_sleep)
        assert [e.status for e in events] == ["failed"]


class TestRetryTracker:

    def test_subscribe_and_unsubscribe(self):
        tracker = RetryTracker()
        seen = []
        unsubscribe = tracker.subscribe(seen.append)
        tracker.emit(make_event("r1"))
        unsubscribe()
        tracker.emit(make_event("r2"))
        assert [e.request_id for e in seen] == ["r1"]
        assert set(tracker.get_state()) == {"r1", "r2"}

    def test_failing_listener_does_not_block_others(self):
        tracker = RetryTracker()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        tracker.subscribe(broken)
        tracker.subscribe(seen.append)
        tracker.emit(make_event("r1"))
        assert len(seen) == 1

    def test_latest_event_per_request(self):
        tracker = RetryTracker()
        tracker.emit(make_event("r1"))
        tracker.emit(make_event("r1", status="success"))
        assert tracker.get_state()["r1"].status == "success"
        assert tracker.active_retries("a.jpg") == []

    def test_clear_for_filename(self):
        tracker = RetryTracker()
        tracker.emit(make_event("r1", filename="a.jpg"))
        tracker.emit(make_event("r2", filename="b.jpg"))
        tracker.clear_for_filename("a.jpg")
        assert list(tracker.get_state()) == ["r2"]

    def test_cleanup_drops_old_events(self):
        tracker = RetryTracker()
        tracker.emit(make_event("old", timestamp=0.0))
        tracker.emit(make_event("fresh", timestamp=900.0))
        tracker.cleanup(max_age=300.0, now=1000.0)
        assert list(tracker.get_state()) == ["fresh"]
