"""
StockMeta - Assembly Pipeline
Per-file state machine that turns one model reply into a finished Row.

Stage order:
    invoke -> validate_not_filename_based -> clean_title -> append_attributes
    -> apply_user_overrides -> enforce_length -> filter_negative_title
    -> seed_keywords -> merge_keywords -> enrich -> filter_keywords -> finalize

Every stage after ``invoke`` is a pure function of the state; blocking
failures raise ContentIntegrityError and become error Rows in process_file.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from stockmeta.ai_providers import fallback_output
from stockmeta.compliance import score_keyword_quality, score_title_quality, validate_response
from stockmeta.errors import (
    ContentIntegrityError,
    ProviderError,
    QuotaExhaustedError,
    ResponseParseError,
)
from stockmeta.keyword_enrichment import run_enrichment
from stockmeta.keyword_normalizer import (
    build_blocklist,
    is_acceptable_keyword,
    normalize_keywords,
    split_combined_phrases,
    stem_lite,
    title_words,
)
from stockmeta.models import RawModelOutput, Row
from stockmeta.policy import (
    BACKFILL_KEYWORDS,
    COLORED_BACKGROUND,
    DESCRIPTION_LIMIT,
    FALLBACK_TITLE,
    TRANSPARENT_PHRASE,
    VISUAL_EXTENSIONS,
    WHITE_PHRASE,
)
from stockmeta.retry import call_with_telemetry, is_quota_error
from stockmeta.text_sanitizer import (
    collapse_whitespace,
    filename_hints,
    filter_filename_based_keywords,
    is_filename_based,
    is_keyword_from_filename,
    remove_background_colors,
    remove_negative_terms,
    strict_trim_title_to_max,
    strip_banned_words,
    strip_dangling_tail,
    strip_style_references,
    truncate_to_limit,
)

logger = logging.getLogger(__name__)

TOP_WINDOW = 10

MISSING_PREVIEW_TITLE = '[ERROR] Image analysis failed: No image data available for visual analysis.'
MISSING_PREVIEW_DESCRIPTION = ('No preview image was available for the AI to analyze. '
                               'Please re-upload, or provide a supported preview/format.')
PROVIDER_FAILURE_DESCRIPTION = 'Image analysis failed. Please check your API key and try again.'


@dataclass(frozen=True)
class PipelineState:
    request: object
    job: object
    raw: Optional[RawModelOutput] = None
    title: str = ''
    description: str = ''
    keywords: Tuple[str, ...] = ()
    title_words: Tuple[str, ...] = ()
    seeds: Tuple[str, ...] = ()
    reserve: Tuple[str, ...] = ()

    @property
    def has_image(self):
        return bool(self.job.image_data)

    @property
    def filename(self):
        return self.request.filename


def _fallback_title(filename):
    return ' '.join(filename_hints(filename)) or FALLBACK_TITLE


# ─── Invoking ─────────────────────────────────────────────────────────────────

async def invoke(state, caller, credential, on_retry=None, should_stop=None, sleep=asyncio.sleep):
    """
    Call the vision model for one file, with retries.

    Raises:
        ContentIntegrityError: no preview for a visual file, or an empty
            title although an image was supplied.
        QuotaExhaustedError: the credential's quota is used up.
        ProviderError: any other upstream failure after retries.
    """
    request = state.request
    if request.file_extension in VISUAL_EXTENSIONS and not state.has_image:
        raise ContentIntegrityError('Image analysis failed: Missing imageData',
                                    title=MISSING_PREVIEW_TITLE,
                                    description=MISSING_PREVIEW_DESCRIPTION)

    async def attempt():
        return await asyncio.to_thread(caller.generate, request, state.job.image_data, credential)

    emit = on_retry if on_retry is not None else (lambda event: None)
    try:
        raw = await call_with_telemetry(attempt, request.filename, emit,
                                        should_stop=should_stop, sleep=sleep)
    except ProviderError as e:
        if is_quota_error(e.status, e.message):
            raise QuotaExhaustedError(e.message, e.status)
        raise
    except ResponseParseError as e:
        if state.has_image:
            raise ContentIntegrityError(f'Image analysis failed: {e}',
                                        description=PROVIDER_FAILURE_DESCRIPTION)
        logger.warning("Unparseable reply for %s, using filename fallback", request.filename)
        raw = fallback_output(request)

    if raw.error:
        raise ContentIntegrityError(raw.error, description=PROVIDER_FAILURE_DESCRIPTION)

    title = raw.title
    if not title:
        if state.has_image:
            raise ContentIntegrityError(
                'Image analysis failed: Empty title returned',
                title='[ERROR] Image analysis failed: No title generated.',
                description='The AI did not generate a title despite image being provided. '
                            'Please check your API key.',
            )
        title = _fallback_title(request.filename)

    return replace(state, raw=raw, title=title, description=raw.description)


# ─── Title Stages ─────────────────────────────────────────────────────────────

def validate_not_filename_based(state):
    if state.has_image and is_filename_based(state.title, state.filename):
        logger.warning("Title %r for %s appears to be filename-based", state.title, state.filename)
        raise ContentIntegrityError(
            'Image analysis failed: Title appears filename-based',
            title='[ERROR] Image analysis failed: Generated title appears to be based on filename, '
                  'not image content.',
            description='The AI may not have analyzed the image properly. '
                        'Please check your API key and image format.',
        )
    return state


def clean_title(state):
    """Strip AI model names, and for Adobe any style reference."""
    title = strip_banned_words(state.title)
    if not title:
        logger.warning("All words in title were banned for %s, using fallback", state.filename)
        title = _fallback_title(state.filename)
    elif title != state.title:
        logger.warning("Auto-removed banned words from title: %r -> %r", state.title, title)

    if state.request.platform == 'adobe':
        stripped = strip_style_references(title)
        if stripped != title:
            logger.warning("Auto-removed style reference from title for %s", state.filename)
            title = stripped or title
    return replace(state, title=title)


def _append_if_fits(title, phrase, limit):
    candidate = f"{title} {phrase}".strip()
    return candidate if len(candidate) <= limit else title


def append_attributes(state):
    """Apply the background and vector/illustration toggles to the title.

    Phrases are appended only when the result still fits ``title_len``.
    """
    request = state.request
    title = state.title
    phrases = []

    if request.transparent_background:
        cleaned = remove_background_colors(title)
        if cleaned != title:
            logger.warning("Removed background colour from title for %s: %r -> %r",
                           state.filename, title, cleaned)
            title = cleaned
        if not re.search(r'isolated\s+on\s+transparent\s+background', title, re.IGNORECASE):
            phrases.append(TRANSPARENT_PHRASE)
    elif request.white_background:
        if not re.search(r'isolated\s+on\s+white\s+background', title, re.IGNORECASE):
            phrases.append(WHITE_PHRASE)

    asset_type = request.effective_asset_type
    if request.is_vector and asset_type == 'vector' and 'vector' not in title.lower():
        phrases.append('vector')
    if request.is_illustration and asset_type == 'illustration' and 'illustration' not in title.lower():
        phrases.append('illustration')

    if phrases:
        appended = _append_if_fits(title, ' '.join(phrases), request.title_len)
        if appended == title:
            logger.debug("Skipped %r for %s: would exceed %d chars",
                         ' '.join(phrases), state.filename, request.title_len)
        title = appended

    if request.transparent_background:
        title = collapse_whitespace(COLORED_BACKGROUND.sub('transparent background', title))
        if not re.search(r'isolated|transparent\s+background', title, re.IGNORECASE):
            title = _append_if_fits(title, TRANSPARENT_PHRASE, request.title_len)

    return replace(state, title=title)


def apply_user_overrides(state):
    title = state.title
    prefix = state.request.prefix.strip()
    suffix = state.request.suffix.strip()
    if prefix and not title.lower().startswith(prefix.lower()):
        title = f"{prefix} {title}".strip()
    if suffix and not title.lower().endswith(suffix.lower()):
        title = f"{title} {suffix}".strip()
    return replace(state, title=title)


def enforce_length(state):
    title = state.title
    if len(title) > state.request.title_len:
        logger.warning("Title length %d exceeds limit %d for %s, trimming",
                       len(title), state.request.title_len, state.filename)
        title = strict_trim_title_to_max(title, state.request.title_len)

    description = state.description
    if len(description) > DESCRIPTION_LIMIT:
        description = strip_dangling_tail(
            truncate_to_limit(description, DESCRIPTION_LIMIT, 0, DESCRIPTION_LIMIT))
    return replace(state, title=title, description=description)


def filter_negative_title(state):
    return replace(state, title=remove_negative_terms(state.title, state.request.negative_title))


# ─── Keyword Stages ───────────────────────────────────────────────────────────

def seed_keywords(state):
    words = title_words(state.title)
    seeds = words + [h for h in filename_hints(state.filename) if h not in words]
    return replace(state, title_words=tuple(words), seeds=tuple(seeds))


def merge_keywords(state):
    request = state.request
    raw_keywords = list(state.raw.keywords) if state.raw else []
    if request.platform == 'adobe':
        raw_keywords = split_combined_phrases(raw_keywords)

    keywords = normalize_keywords(raw_keywords, request.target_keyword_count,
                                  state.seeds, request.negative_keywords)
    # Everything else that passed the rules, kept for fixed-count padding
    everything = normalize_keywords(raw_keywords, None, state.seeds, request.negative_keywords)
    reserve = [k for k in everything if k not in keywords]
    return replace(state, keywords=tuple(keywords), reserve=tuple(reserve))


def enrich(state):
    if not state.keywords:
        return state
    request = state.request
    keywords = run_enrichment(list(state.keywords), state.title, request.platform,
                              request.target_keyword_count, state.seeds, request.negative_keywords)
    return replace(state, keywords=tuple(keywords))


def _purge_filename_keywords(keywords, state, target):
    if not state.has_image or not keywords:
        return keywords
    kept = filter_filename_based_keywords(keywords, state.filename)
    removed = [k for k in keywords if k not in kept]
    if removed:
        logger.warning("Removed filename-based keywords for %s: %s", state.filename, removed)
        if len(kept) < target:
            present = {k.lower() for k in kept}
            backfill = [w for w in state.title_words
                        if w not in present and not is_keyword_from_filename(w, state.filename)]
            kept = (kept + backfill)[:target]
    return kept


def _ensure_title_words(keywords, state, target):
    stems = {stem_lite(k) for k in keywords}
    missing = [w for w in state.title_words if w not in keywords and stem_lite(w) not in stems]
    if not missing:
        return keywords

    if state.request.platform == 'adobe':
        # Title words must land inside the top window where Adobe weighs them most
        insert = missing[:TOP_WINDOW]
        head = max(0, TOP_WINDOW - len(insert))
        merged = keywords[:head] + insert + keywords[head:]
    else:
        merged = missing + keywords

    out = []
    for keyword in merged:
        if keyword not in out:
            out.append(keyword)
    return out[:target]


def filter_keywords(state):
    """Filename purge, title-word insurance, negative filter, second purge."""
    target = state.request.target_keyword_count
    keywords = list(state.keywords)

    keywords = _purge_filename_keywords(keywords, state, target)
    if state.title_words:
        keywords = _ensure_title_words(keywords, state, target)

    negatives = {t.lower() for t in state.request.negative_keywords}
    if negatives:
        keywords = [k for k in keywords if k.strip().lower() not in negatives]

    keywords = _purge_filename_keywords(keywords, state, target)
    return replace(state, keywords=tuple(keywords))


def _pad_to_count(keywords, state, count):
    """Top up a fixed-count list from unused model keywords, then safe generic terms."""
    block = build_blocklist(state.request.negative_keywords)
    stems = {stem_lite(k) for k in keywords}
    out = list(keywords)
    for candidate in list(state.reserve) + list(state.title_words) + list(BACKFILL_KEYWORDS):
        if len(out) >= count:
            break
        candidate = candidate.strip().lower()
        if not is_acceptable_keyword(candidate, block):
            continue
        if stem_lite(candidate) in stems or is_keyword_from_filename(candidate, state.filename):
            continue
        stems.add(stem_lite(candidate))
        out.append(candidate)
    return out


def finalize(state):
    """Hit the exact count in fixed mode, then log compliance findings."""
    request = state.request
    keywords = list(state.keywords)
    count = request.fixed_keyword_count

    if count is not None:
        if len(keywords) < count:
            padded = _pad_to_count(keywords, state, count)
            logger.info("Padded keywords for %s: %d -> %d", state.filename, len(keywords), len(padded))
            keywords = padded
        keywords = keywords[:count]

    validation = validate_response(state.title, state.description, keywords, count,
                                   state.filename, state.has_image, request.platform)
    if validation.issues:
        logger.warning("Validation issues for %s: %s", state.filename, '; '.join(validation.issues))
    if validation.warnings:
        logger.info("Compliance warnings for %s: %s", state.filename, '; '.join(validation.warnings))

    title_score = score_title_quality(state.title, state.filename, request.title_len,
                                      state.has_image, request.platform)
    keyword_score = score_keyword_quality(keywords, request.target_keyword_count, state.title)
    if title_score.score < 70:
        logger.warning("Low quality title for %s: score %d/100 (%s)",
                       state.filename, title_score.score, ', '.join(title_score.issues))
    else:
        logger.debug("Title score for %s: %d/100, keyword score %d/100",
                     state.filename, title_score.score, keyword_score.score)

    return replace(state, keywords=tuple(keywords))


STAGES = (
    validate_not_filename_based,
    clean_title,
    append_attributes,
    apply_user_overrides,
    enforce_length,
    filter_negative_title,
    seed_keywords,
    merge_keywords,
    enrich,
    filter_keywords,
    finalize,
)


def assemble(state):
    """Run every stage after invoke, in order."""
    for stage in STAGES:
        state = stage(state)
    return state


# ─── Per-file Boundary ────────────────────────────────────────────────────────

async def process_file(job, request, caller, credential, on_retry=None, should_stop=None,
                       sleep=asyncio.sleep):
    """
    Produce exactly one Row for one file.

    Every failure becomes an error Row, except quota exhaustion which is
    re-raised so the orchestrator can retire the credential.

    Args:
        job: FileJob to process.
        request: GenerationRequest with the batch options.
        caller: Object with ``generate(request, image_data, credential)``.
        credential: API key bound to the calling worker.
        on_retry: Callable receiving RetryEvents.
        should_stop: Callable returning True once the run is being stopped.

    Returns:
        Row

    Raises:
        QuotaExhaustedError
    """
    request = request.for_file(job)
    state = PipelineState(request=request, job=job)
    try:
        state = await invoke(state, caller, credential, on_retry, should_stop, sleep)
        state = assemble(state)
    except QuotaExhaustedError:
        raise
    except ContentIntegrityError as e:
        logger.error("Failed %s: %s", job.filename, e)
        return Row.failure(request, str(e), title=e.title, description=e.description)
    except ProviderError as e:
        message = f"Image analysis failed: {e.message}" if state.has_image else e.message
        logger.error("Failed %s: %s", job.filename, message)
        return Row.failure(request, message, description=PROVIDER_FAILURE_DESCRIPTION)
    except Exception as e:
        logger.exception("Unexpected error while processing %s", job.filename)
        return Row.failure(request, f"Processing failed: {e}")

    return Row.success(request, state.title, state.description, state.keywords)
