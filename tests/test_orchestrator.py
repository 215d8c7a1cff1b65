"""
Orchestrator Tests
Purpose: per-key workers, quota isolation, run stop, sequential mode and regeneration.
"""

import pytest

from stockmeta.errors import ConfigError, ProviderError
from stockmeta.key_pool import KeyPool, RunContext, mask_key
from stockmeta.orchestrator import failed_filenames, regenerate, run_parallel, run_sequential


KEY_A = "key-a-aaaaaaaaaaaa"
KEY_B = "key-b-bbbbbbbbbbbb"


def quota_error():
    return ProviderError("Quota exceeded for metric generate_content", 429)


@pytest.fixture
def jobs(make_job):
    return [make_job(f"asset_{i}.jpg") for i in range(4)]


class TestKeyPool:

    def test_dedupes_and_masks(self):
        pool = KeyPool([KEY_A, f" {KEY_A} ", KEY_B, ""])
        assert len(pool) == 2
        assert mask_key(KEY_A) == "key-a-aa...aaaa"
        assert mask_key("short") == "***"

    def test_exhaustion(self):
        pool = KeyPool([KEY_A, KEY_B])
        pool.mark_exhausted(KEY_A)
        assert pool.is_exhausted(KEY_A)
        assert pool.available_count == 1
        pool.reset()
        assert pool.available_count == 2

    def test_claim_next(self):
        context = RunContext(KeyPool([KEY_A]))
        assert [context.claim_next(2) for _ in range(3)] == [0, 1, None]


class TestRunParallel:

    @pytest.mark.asyncio
    async def test_every_file_gets_a_row(self, jobs, make_request, fake_caller, no_sleep):
        seen = []
        context = RunContext(KeyPool([KEY_A, KEY_B]))
        result = await run_parallel(jobs, make_request(), fake_caller, context, on_row=seen.append,
                                    sleep=no_sleep)

        assert sorted(row.filename for row in result.rows) == [job.filename for job in jobs]
        assert result.failed == []
        assert len(seen) == 4
        assert {credential for _, credential in fake_caller.calls} == {KEY_A, KEY_B}

    @pytest.mark.asyncio
    async def test_quota_stops_only_that_worker(self, jobs, make_request, caller_factory, no_sleep):
        caller = caller_factory(errors={KEY_A: quota_error()})
        context = RunContext(KeyPool([KEY_A, KEY_B]))
        result = await run_parallel(jobs, make_request(), caller, context, sleep=no_sleep)

        assert len(result.rows) == 4
        assert len(result.failed) == 1
        failed = result.failed[0]
        assert failed.filename == "asset_0.jpg"
        assert failed.error.startswith("API quota exceeded for Worker 1 (key: key-a-aa...)")
        assert context.pool.available_count == 1
        assert not context.stop_requested
        assert sum(1 for _, credential in caller.calls if credential == KEY_B) == 3

    @pytest.mark.asyncio
    async def test_all_keys_exhausted_stops_run(self, jobs, make_request, caller_factory, no_sleep):
        caller = caller_factory(errors={KEY_A: quota_error(), KEY_B: quota_error()})
        context = RunContext(KeyPool([KEY_A, KEY_B]))
        result = await run_parallel(jobs, make_request(), caller, context, sleep=no_sleep)

        assert context.stop_requested
        assert context.pool.available_count == 0
        assert len(result.rows) == 2
        assert all(row.is_error for row in result.rows)

    @pytest.mark.asyncio
    async def test_empty_pool_raises(self, jobs, make_request, fake_caller):
        with pytest.raises(ConfigError):
            await run_parallel(jobs, make_request(), fake_caller, RunContext(KeyPool([])))

    @pytest.mark.asyncio
    async def test_no_jobs(self, make_request, fake_caller):
        result = await run_parallel([], make_request(), fake_caller, RunContext(KeyPool([KEY_A])))
        assert result.rows == []


class TestRunSequential:

    @pytest.mark.asyncio
    async def test_single_worker_on_first_key(self, jobs, make_request, fake_caller, no_sleep):
        context = RunContext(KeyPool([KEY_A, KEY_B]))
        result = await run_sequential(jobs, make_request(), fake_caller, context, sleep=no_sleep)

        assert [row.filename for row in result.rows] == [job.filename for job in jobs]
        assert {credential for _, credential in fake_caller.calls} == {KEY_A}


class TestRegenerate:

    @pytest.mark.asyncio
    async def test_failed_rows_replaced_in_place(self, jobs, make_request, caller_factory, no_sleep):
        context = RunContext(KeyPool([KEY_A, KEY_B]))
        first = await run_parallel(jobs, make_request(), caller_factory(errors={KEY_A: quota_error()}),
                                   context, sleep=no_sleep)
        assert failed_filenames(first.rows) == ["asset_0.jpg"]

        retry_caller = caller_factory()
        result = await regenerate(jobs, make_request(), retry_caller, context, sleep=no_sleep)

        assert [call[0] for call in retry_caller.calls] == ["asset_0.jpg"]
        assert len(result.rows) == 4
        assert result.failed == []
        assert [row.filename for row in result.rows] == [row.filename for row in first.rows]

    @pytest.mark.asyncio
    async def test_regenerate_all(self, jobs, make_request, fake_caller, no_sleep):
        context = RunContext(KeyPool([KEY_A]))
        await run_sequential(jobs, make_request(), fake_caller, context, sleep=no_sleep)
        result = await regenerate(jobs, make_request(), fake_caller, context, selection="all",
                                  sleep=no_sleep)
        assert len(result.rows) == 4
        assert len(fake_caller.calls) == 8

    @pytest.mark.asyncio
    async def test_unknown_selection(self, jobs, make_request, fake_caller):
        with pytest.raises(ValueError):
            await regenerate(jobs, make_request(), fake_caller, RunContext(KeyPool([KEY_A])),
                             selection="some")
