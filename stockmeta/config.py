"""
StockMeta - Configuration
Run constants, API key discovery, per-platform smart defaults and a small
SQLite store for the user's last-used options.
"""

import logging
import os
import sqlite3

from stockmeta.errors import ConfigError
from stockmeta.policy import DESCRIPTION_LIMIT, VECTOR_EXTENSIONS, VIDEO_EXTENSIONS

logger = logging.getLogger(__name__)


# ─── Run Constants ────────────────────────────────────────────────────────────

MAX_WORKERS = 5
MAX_ATTEMPTS = 5
BASE_DELAY = 2.0
REQUEST_TIMEOUT = 60
AUTO_KEYWORD_CAP = 35
MAX_KEYWORD_COUNT = 49

__all__ = [
    'MAX_WORKERS', 'MAX_ATTEMPTS', 'BASE_DELAY', 'REQUEST_TIMEOUT',
    'AUTO_KEYWORD_CAP', 'DESCRIPTION_LIMIT', 'MAX_KEYWORD_COUNT',
    'load_api_keys', 'smart_defaults', 'SettingsStore',
]

PLATFORM_DEFAULTS = {
    'adobe': {'title_len': 70, 'keyword_count': 30},
    'shutterstock': {'title_len': 120, 'keyword_count': 49},
    'general': {'title_len': 100, 'keyword_count': 35},
}

_NARROW_KEYWORD_TYPES = {'vector', 'illustration', '3d', 'icon'}


# ─── API Keys ─────────────────────────────────────────────────────────────────

def load_api_keys(provider, explicit=None):
    """
    Collect API keys for a provider.

    Explicit keys win. Otherwise ``<PROVIDER>_API_KEYS`` (comma separated)
    is read, then ``<PROVIDER>_API_KEY``.

    Args:
        provider: Provider name, e.g. "Gemini" or "OpenRouter".
        explicit: Keys passed on the command line, if any.

    Returns:
        list[str]: Non-empty, de-duplicated keys in their original order.

    Raises:
        ConfigError: when no key can be found.
    """
    raw = list(explicit or [])
    if not raw:
        prefix = provider.upper().replace(' ', '_')
        multi = os.environ.get(f"{prefix}_API_KEYS", "")
        raw = multi.split(",") if multi.strip() else [os.environ.get(f"{prefix}_API_KEY", "")]

    keys = []
    for key in raw:
        key = key.strip()
        if key and key not in keys:
            keys.append(key)

    if not keys:
        raise ConfigError(f"No API keys configured for {provider}")
    logger.info("Loaded %d API key(s) for %s", len(keys), provider)
    return keys


# ─── Smart Defaults ───────────────────────────────────────────────────────────

def detect_asset_type(extensions):
    """Vector if any vector file is present, else video, else photo."""
    exts = {e.lower().lstrip('.') for e in extensions}
    if exts & VECTOR_EXTENSIONS:
        return 'vector'
    if exts & VIDEO_EXTENSIONS:
        return 'video'
    return 'photo'


def smart_defaults(extensions, platform, asset_type=None):
    """
    Suggest a title length and keyword count for a batch.

    Args:
        extensions: File extensions in the batch.
        platform: "adobe", "shutterstock" or "general".
        asset_type: Overrides the type detected from the extensions.

    Returns:
        dict with title_len, keyword_count and asset_type.
    """
    defaults = PLATFORM_DEFAULTS.get(platform, PLATFORM_DEFAULTS['general'])
    asset_type = asset_type or detect_asset_type(extensions)
    keyword_count = defaults['keyword_count']

    if asset_type in _NARROW_KEYWORD_TYPES:
        keyword_count = min(keyword_count, 30)
    elif asset_type == 'video':
        keyword_count = min(max(keyword_count, 40), MAX_KEYWORD_COUNT)

    return {
        'title_len': defaults['title_len'],
        'keyword_count': keyword_count,
        'asset_type': asset_type,
    }


# ─── Settings Store ───────────────────────────────────────────────────────────

def default_settings_path():
    """Per-user location used by the CLI when no path is given."""
    base = os.environ.get("APPDATA", os.path.expanduser("~"))
    return os.path.join(base, "StockMeta", "settings.db")


class SettingsStore:
    """Key/value settings persisted in a SQLite ``settings`` table."""

    def __init__(self, path):
        self.path = path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = self._connect()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT DEFAULT ''
            )
        """)
        conn.commit()
        conn.close()

    def _connect(self):
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def save(self, key, value):
        conn = self._connect()
        conn.execute("""
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """, (key, str(value)))
        conn.commit()
        conn.close()

    def get(self, key, default=""):
        conn = self._connect()
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        conn.close()
        return row["value"] if row else default
