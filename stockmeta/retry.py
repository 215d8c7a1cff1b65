"""
StockMeta - Retry
Exponential backoff around a single model call, plus the in-memory tracker
that fans retry events out to whoever is watching (CLI progress, tests).
"""

import asyncio
import logging
import random
import time

from stockmeta.config import BASE_DELAY, MAX_ATTEMPTS
from stockmeta.errors import ProviderError
from stockmeta.models import RetryEvent

logger = logging.getLogger(__name__)


# ─── Classification ───────────────────────────────────────────────────────────

def is_quota_error(status, message):
    """A 429 whose wording says the key's quota (not just the rate) is used up."""
    if status != 429:
        return False
    text = (message or '').lower()
    return any(marker in text for marker in ('quota', 'exceeded', 'free_tier', 'rate limit exceeded'))


def classify_error(error):
    """Map a provider failure to the error_type carried by a RetryEvent."""
    if error.overloaded:
        return 'overloaded'
    if error.status == 429:
        return 'rate-limit'
    return 'server-error'


def backoff_delay(attempt, base_delay=BASE_DELAY, overloaded=False):
    """Seconds to wait after the zero-based ``attempt`` failed."""
    delay = base_delay * (2 ** attempt)
    return delay * 2 if overloaded else delay


# ─── Backoff Loop ─────────────────────────────────────────────────────────────

async def retry_with_backoff(fn, max_attempts=MAX_ATTEMPTS, base_delay=BASE_DELAY,
                             on_retry=None, should_stop=None, sleep=asyncio.sleep):
    """
    Await ``fn()`` until it succeeds, retrying transient provider errors.

    Args:
        fn: Zero-argument coroutine function performing one attempt.
        max_attempts: Total attempts, the first one included.
        base_delay: Delay after the first failure; doubles per attempt.
        on_retry: Callback(attempt, error, delay) run before each sleep.
        should_stop: Callable returning True when no new attempt may start.
        sleep: Awaitable sleep, replaced in tests.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        ProviderError: the last error once attempts run out, or at once
            for non-retryable errors. Other exceptions propagate untouched.
    """
    last_error = None
    for attempt in range(max_attempts):
        if attempt and should_stop is not None and should_stop():
            break
        try:
            return await fn()
        except ProviderError as e:
            last_error = e
            if not e.retryable:
                raise
            if attempt == max_attempts - 1:
                break
            delay = backoff_delay(attempt, base_delay, e.overloaded)
            logger.warning("Attempt %d/%d failed (%s), retrying in %.1fs",
                           attempt + 1, max_attempts, e.message[:200], delay)
            if on_retry is not None:
                on_retry(attempt + 1, e, delay)
            await sleep(delay)
    raise last_error


async def call_with_telemetry(fn, filename, emit, request_id=None, max_attempts=MAX_ATTEMPTS,
                              base_delay=BASE_DELAY, should_stop=None, sleep=asyncio.sleep):
    """Run ``retry_with_backoff`` and report every retry and the outcome as RetryEvents.

    ``emit`` receives each event; exactly one terminal event (success or
    failed) is sent per call.
    """
    request_id = request_id or RetryTracker.new_request_id(filename)
    state = {'attempt': 0, 'error_type': 'server-error'}

    def on_retry(attempt, error, delay):
        state['attempt'] = attempt
        state['error_type'] = classify_error(error)
        emit(RetryEvent(
            request_id=request_id, filename=filename, attempt=attempt,
            max_attempts=max_attempts, error_type=state['error_type'],
            delay=delay, status='retrying', timestamp=time.time(),
        ))

    try:
        result = await retry_with_backoff(fn, max_attempts, base_delay, on_retry, should_stop, sleep)
    except ProviderError as e:
        emit(RetryEvent(
            request_id=request_id, filename=filename, attempt=state['attempt'] + 1,
            max_attempts=max_attempts, error_type=classify_error(e),
            status='failed', timestamp=time.time(),
        ))
        raise

    emit(RetryEvent(
        request_id=request_id, filename=filename, attempt=state['attempt'] + 1,
        max_attempts=max_attempts, error_type=state['error_type'],
        status='success', timestamp=time.time(),
    ))
    return result


# ─── Tracker ──────────────────────────────────────────────────────────────────

class RetryTracker:
    """Latest RetryEvent per request, with listener fan-out.

    Purely observational: nothing in the pipeline reads it back.
    """

    def __init__(self):
        self._events = {}
        self._listeners = []

    @staticmethod
    def new_request_id(filename):
        return f"{filename}-{int(time.time() * 1000)}-{random.randint(0, 0xFFFFFF):06x}"

    def emit(self, event):
        self._events[event.request_id] = event
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Retry listener failed for %s", event.filename)

    def subscribe(self, listener):
        """Register ``listener(event)``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def get_state(self):
        return dict(self._events)

    def active_retries(self, filename):
        return [e for e in self._events.values() if e.filename == filename and e.status == 'retrying']

    def clear_for_filename(self, filename):
        for request_id in [rid for rid, e in self._events.items() if e.filename == filename]:
            del self._events[request_id]

    def cleanup(self, max_age=300.0, now=None):
        """Forget events older than ``max_age`` seconds."""
        now = time.time() if now is None else now
        for request_id in [rid for rid, e in self._events.items() if now - e.timestamp > max_age]:
            del self._events[request_id]
