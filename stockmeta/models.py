"""
StockMeta - Data Models
Request, raw model output, finished row and retry telemetry records.
"""

import os
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockmeta.config import AUTO_KEYWORD_CAP
from stockmeta.policy import PLATFORM_LABELS, infer_asset_type


Platform = Literal['general', 'adobe', 'shutterstock']
AssetType = Literal['auto', 'photo', 'illustration', 'vector', '3d', 'icon', 'video']


class GenerationRequest(BaseModel):
    """Everything the pipeline needs to know to produce one Row."""

    model_config = ConfigDict(frozen=True)

    platform: Platform = 'general'
    title_len: int = Field(default=70, ge=20, le=200)
    desc_len: Literal[150] = 150
    keyword_mode: Literal['auto', 'fixed'] = 'fixed'
    keyword_count: int = Field(default=30, ge=5, le=49)
    asset_type: AssetType = 'auto'
    prefix: str = ''
    suffix: str = ''
    negative_title: List[str] = []
    negative_keywords: List[str] = []
    isolated_on_transparent_background: bool = False
    isolated_on_white_background: bool = False
    is_vector: bool = False
    is_illustration: bool = False
    filename: str = ''
    extension: str = ''
    video_hints: Dict[str, List[str]] = {}

    @field_validator('negative_title', 'negative_keywords')
    @classmethod
    def _clean_terms(cls, terms):
        return [t.strip() for t in terms if t and t.strip()]

    @property
    def file_extension(self):
        if self.extension:
            return self.extension.lower().lstrip('.')
        return os.path.splitext(self.filename)[1].lower().lstrip('.')

    @property
    def target_keyword_count(self):
        return self.keyword_count if self.keyword_mode == 'fixed' else AUTO_KEYWORD_CAP

    @property
    def fixed_keyword_count(self):
        """Exact keyword count to hit, or None in auto mode."""
        return self.keyword_count if self.keyword_mode == 'fixed' else None

    @property
    def effective_asset_type(self):
        if self.asset_type != 'auto':
            return self.asset_type
        return infer_asset_type(self.file_extension)

    @property
    def platform_label(self):
        return PLATFORM_LABELS[self.platform]

    @property
    def transparent_background(self):
        return self.isolated_on_transparent_background

    @property
    def white_background(self):
        return self.isolated_on_white_background and not self.isolated_on_transparent_background

    def for_file(self, job):
        """Copy of this request bound to one queued file."""
        return self.model_copy(update={'filename': job.filename, 'extension': job.extension})


class RawModelOutput(BaseModel):
    """Untrusted title/description/keywords as returned by a vision model."""

    title: str = ''
    description: str = ''
    keywords: List[str] = []
    error: Optional[str] = None

    @field_validator('title', 'description', mode='before')
    @classmethod
    def _coerce_text(cls, value):
        return str(value).strip() if value is not None else ''

    @field_validator('keywords', mode='before')
    @classmethod
    def _coerce_keywords(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(',')
        keywords = (str(k).strip().lower() for k in value if k is not None)
        return [k for k in keywords if k]


class Row(BaseModel):
    """One finished record: either a success or an error, never both."""

    filename: str
    platform: str
    title: str
    description: str
    keywords: List[str] = []
    asset_type: str
    extension: str
    error: Optional[str] = None

    @property
    def is_error(self):
        return self.error is not None

    @classmethod
    def success(cls, request, title, description, keywords):
        return cls(
            filename=request.filename,
            platform=request.platform_label,
            title=title,
            description=description,
            keywords=list(keywords),
            asset_type=request.effective_asset_type,
            extension=request.file_extension,
        )

    @classmethod
    def failure(cls, request, message, title=None, description=None):
        return cls(
            filename=request.filename,
            platform=request.platform_label,
            title=title or f'[ERROR] {message}',
            description=description or message,
            keywords=[],
            asset_type=request.effective_asset_type,
            extension=request.file_extension,
            error=message,
        )


class RetryEvent(BaseModel):
    request_id: str
    filename: str
    attempt: int
    max_attempts: int
    error_type: Literal['overloaded', 'rate-limit', 'server-error']
    delay: Optional[float] = None
    status: Literal['retrying', 'success', 'failed']
    timestamp: float = 0.0


class FileJob(BaseModel):
    """One queued file: its name and, when available, a data-URL preview."""

    filename: str
    image_data: Optional[str] = None
    path: Optional[str] = None

    @property
    def extension(self):
        return os.path.splitext(self.filename)[1].lower().lstrip('.')


class BatchResult(BaseModel):
    rows: List[Row] = []

    @property
    def failed(self):
        return [row for row in self.rows if row.is_error]

    @property
    def succeeded(self):
        return [row for row in self.rows if not row.is_error]
