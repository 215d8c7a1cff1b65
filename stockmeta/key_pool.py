"""
StockMeta - Key Pool
API keys shared by the workers of one run, and the per-run state
(stop flag, file cursor, result rows) the workers coordinate through.
"""

import logging

logger = logging.getLogger(__name__)


def mask_key(api_key):
    """Show only the first 8 and last 4 characters of a key."""
    return f"{api_key[:8]}...{api_key[-4:]}" if len(api_key) > 12 else "***"


class KeyPool:
    """Ordered API keys plus the set of keys whose quota ran out this run."""

    def __init__(self, keys):
        self.keys = []
        for key in keys or ():
            key = key.strip()
            if key and key not in self.keys:
                self.keys.append(key)
        self._exhausted = set()

    def __len__(self):
        return len(self.keys)

    def key_for_worker(self, worker_id):
        return self.keys[worker_id % len(self.keys)]

    def mark_exhausted(self, key):
        if key not in self._exhausted:
            self._exhausted.add(key)
            logger.warning("API key %s exhausted (%d remaining)", mask_key(key), self.available_count)

    def is_exhausted(self, key):
        return key in self._exhausted

    @property
    def available_count(self):
        return sum(1 for key in self.keys if key not in self._exhausted)

    def reset(self):
        self._exhausted.clear()


class RunContext:
    """
    Shared mutable state of one generation run.

    Workers are asyncio tasks on a single loop, so claiming a file index is
    safe as long as no await sits between the read and the increment.
    """

    def __init__(self, pool):
        self.pool = pool
        self.stop_requested = False
        self._cursor = 0
        self._rows = []

    def reset(self, keep_rows=False):
        """Start a fresh run: clear exhaustion, the stop flag and the cursor."""
        self.pool.reset()
        self.stop_requested = False
        self._cursor = 0
        if not keep_rows:
            self._rows = []

    def request_stop(self):
        self.stop_requested = True

    def claim_next(self, total):
        """Claim the next unprocessed file index, or None when all are taken."""
        index = self._cursor
        self._cursor += 1
        if index >= total:
            return None
        return index

    def record(self, row):
        self._rows.append(row)

    def replace(self, row):
        """Swap in a regenerated row for the same filename, or append it."""
        for i, existing in enumerate(self._rows):
            if existing.filename == row.filename:
                self._rows[i] = row
                return
        self._rows.append(row)

    @property
    def rows(self):
        return list(self._rows)
