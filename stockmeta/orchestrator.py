"""
StockMeta - Orchestrator
Runs the pipeline over a batch of files with one asyncio worker per API key.
A worker whose key runs out of quota stops alone; the run only halts once
every key is exhausted.
"""

import asyncio
import logging

from stockmeta.config import MAX_WORKERS
from stockmeta.errors import ConfigError, QuotaExhaustedError
from stockmeta.key_pool import mask_key
from stockmeta.models import BatchResult, Row
from stockmeta.pipeline import process_file
from stockmeta.retry import is_quota_error

logger = logging.getLogger(__name__)

__all__ = ['run_parallel', 'run_sequential', 'failed_filenames', 'regenerate', 'is_quota_error']


def _quota_row(request, job, worker_id, key):
    message = (f"API quota exceeded for Worker {worker_id + 1} (key: {key[:8]}...). "
               f"This worker has stopped.")
    return Row.failure(request.for_file(job), message)


async def _process_job(job, request, caller, context, worker_id, key, on_retry, sleep):
    try:
        return await process_file(job, request, caller, key, on_retry=on_retry,
                                  should_stop=lambda: context.stop_requested, sleep=sleep)
    except QuotaExhaustedError as e:
        logger.warning("Worker %d: quota exhausted for key %s (%s)", worker_id + 1, mask_key(key), e)
        context.pool.mark_exhausted(key)
        if context.pool.available_count == 0:
            logger.error("All API keys exhausted, stopping run")
            context.request_stop()
        return _quota_row(request, job, worker_id, key)


async def _worker(worker_id, jobs, request, caller, context, on_row, on_retry, sleep, record):
    key = context.pool.key_for_worker(worker_id)
    logger.info("Worker %d started with key %s", worker_id + 1, mask_key(key))
    processed = 0
    while True:
        if context.stop_requested:
            break
        if context.pool.is_exhausted(key):
            break
        index = context.claim_next(len(jobs))
        if index is None:
            break
        row = await _process_job(jobs[index], request, caller, context, worker_id, key, on_retry, sleep)
        record(row)
        processed += 1
        if on_row is not None:
            on_row(row)
    logger.info("Worker %d finished after %d file(s)", worker_id + 1, processed)


async def _run(jobs, request, caller, context, workers, on_row, on_retry, sleep, record):
    if not jobs:
        return
    if len(context.pool) == 0:
        raise ConfigError("No API keys available")
    workers = min(workers, len(jobs), len(context.pool))
    logger.info("Processing %d file(s) with %d worker(s)", len(jobs), workers)
    await asyncio.gather(*(
        _worker(i, jobs, request, caller, context, on_row, on_retry, sleep, record)
        for i in range(workers)
    ))


async def run_parallel(jobs, request, caller, context, max_workers=MAX_WORKERS, on_row=None,
                       on_retry=None, sleep=asyncio.sleep):
    """
    Generate metadata for every job, one worker per key.

    Args:
        jobs: FileJob list.
        request: GenerationRequest with the batch options.
        caller: Vision model caller (see HttpVisionCaller).
        context: RunContext holding the key pool; reset here.
        max_workers: Ceiling on concurrent workers.
        on_row: Callback(row) for each finished file, in completion order.
        on_retry: Callback(RetryEvent) for retry telemetry.

    Returns:
        BatchResult with one Row per processed file.

    Raises:
        ConfigError: when the pool has no keys.
    """
    context.reset()
    await _run(jobs, request, caller, context, max_workers, on_row, on_retry, sleep, context.record)
    return BatchResult(rows=context.rows)


async def run_sequential(jobs, request, caller, context, on_row=None, on_retry=None,
                         sleep=asyncio.sleep):
    """Single mode: one worker on the first key, files strictly one by one."""
    return await run_parallel(jobs, request, caller, context, max_workers=1,
                              on_row=on_row, on_retry=on_retry, sleep=sleep)


def failed_filenames(rows):
    return [row.filename for row in rows if row.is_error]


async def regenerate(jobs, request, caller, context, selection='failed', max_workers=MAX_WORKERS,
                     on_row=None, on_retry=None, sleep=asyncio.sleep):
    """
    Re-run a subset of a finished batch and swap the new rows in by filename.

    Args:
        selection: 'failed' for error rows only, or 'all'.

    Returns:
        BatchResult with the full, updated row list.
    """
    if selection not in ('failed', 'all'):
        raise ValueError(f"Unknown selection: {selection}")
    if selection == 'failed':
        wanted = set(failed_filenames(context.rows))
        jobs = [job for job in jobs if job.filename in wanted]

    logger.info("Regenerating %d file(s) (%s)", len(jobs), selection)
    context.reset(keep_rows=True)
    await _run(jobs, request, caller, context, max_workers, on_row, on_retry, sleep, context.replace)
    return BatchResult(rows=context.rows)
