"""
StockMeta - Core Package
Metadata normalization, platform compliance and per-key worker orchestration.
"""

from stockmeta.ai_providers import HttpVisionCaller, build_user_prompt
from stockmeta.errors import (
    ConfigError,
    ContentIntegrityError,
    ProviderError,
    QuotaExhaustedError,
    StockMetaError,
)
from stockmeta.key_pool import KeyPool, RunContext
from stockmeta.models import BatchResult, FileJob, GenerationRequest, RawModelOutput, RetryEvent, Row
from stockmeta.orchestrator import failed_filenames, regenerate, run_parallel, run_sequential
from stockmeta.pipeline import process_file
from stockmeta.retry import RetryTracker

__version__ = "1.0.0"

__all__ = [
    "HttpVisionCaller", "build_user_prompt",
    "StockMetaError", "ConfigError", "ContentIntegrityError", "ProviderError", "QuotaExhaustedError",
    "KeyPool", "RunContext",
    "BatchResult", "FileJob", "GenerationRequest", "RawModelOutput", "RetryEvent", "Row",
    "run_parallel", "run_sequential", "regenerate", "failed_filenames",
    "process_file", "RetryTracker",
]
