"""
StockMeta - Text Sanitizer
Length-bounded truncation, filename token extraction and the checks that
catch titles or keywords copied from the filename instead of the image.
"""

import re

from stockmeta.policy import (
    BACKGROUND_COLOR_PATTERNS,
    BANNED_PROVIDER_WORDS,
    COLORED_BACKGROUND,
    DANGLING_TAIL_WORDS,
    FILENAME_JUNK_TOKENS,
    MAX_FILENAME_HINTS,
    PROVIDER_NAME_PATTERN,
    STYLE_REFERENCE_PATTERNS,
    TITLE_CONNECTOR_WORDS,
)


SENTENCE_END = '.!?'
ELLIPSIS = '…'

_WHITESPACE = re.compile(r'\s+')
_EXTENSION = re.compile(r'\.[^.]+$')
_FILENAME_SPLIT = re.compile(r'[\s._-]+')
_TRAILING_PUNCT = re.compile(r'[,\-–—:;]+$')
_TRAILING_CONNECTOR = re.compile(
    r'\b(' + '|'.join(TITLE_CONNECTOR_WORDS) + r')$', re.IGNORECASE
)
_HEX_ID = re.compile(r'\b[0-9a-f]{8,}-?[0-9a-f]{4,}', re.IGNORECASE)
_LONG_NUMBER = re.compile(r'\b[0-9]{10,}\b')


def collapse_whitespace(text):
    return _WHITESPACE.sub(' ', text or '').strip()


def _round_half_up(value):
    return int(value + 0.5)


# ─── Truncation ───────────────────────────────────────────────────────────────

def truncate_to_limit(text, base_limit, flexible_slack=None, hard_cap=200):
    """Shorten text to about ``base_limit`` characters at a clean boundary.

    Text may run past ``base_limit`` by a small flexible allowance so a
    sentence can finish; it never runs past ``hard_cap``.

    Args:
        text: The string to shorten.
        base_limit: Preferred maximum length.
        flexible_slack: Extra characters allowed for a clean ending.
            Defaults to 13% of base_limit, at least 17.
        hard_cap: Absolute maximum, ellipsis included.

    Returns:
        The shortened string.
    """
    text = text or ''
    if len(text) <= base_limit:
        return text

    if flexible_slack is None:
        flexible_slack = max(_round_half_up(base_limit * 0.13), 17)
    flexible_max = min(base_limit + flexible_slack, hard_cap)
    floor = max(base_limit, 1)

    if len(text) <= flexible_max:
        end = min(len(text), flexible_max)
        for i in range(end, floor - 1, -1):
            if text[i - 1] in SENTENCE_END and (i == len(text) or text[i].isspace()):
                return text[:i].rstrip()
        for i in range(end, floor - 1, -1):
            if i < len(text) and text[i] == ' ' and i >= base_limit * 0.7:
                return text[:i].rstrip()
        # Within the flexible range an unbroken run is acceptable as-is
        return text

    truncated = text[:flexible_max]
    for i in range(flexible_max, floor - 1, -1):
        if truncated[i - 1] in SENTENCE_END:
            return truncated[:i].rstrip()

    last_space = truncated.rfind(' ')
    if last_space > base_limit * 0.7:
        return truncated[:last_space].rstrip() + ELLIPSIS

    # Leave room for the ellipsis inside the cap
    return truncated[:flexible_max - 1].rstrip() + ELLIPSIS


def strict_trim_title_to_max(text, max_len):
    """Trim a title so it never exceeds ``max_len`` and ends cleanly.

    Prefers a sentence end, then the last word boundary, then strips
    trailing punctuation and dangling connector words.
    """
    title = collapse_whitespace(text)
    if len(title) <= max_len:
        return title

    sliced = title[:max_len].rstrip()

    for i in range(len(sliced), max(1, int(max_len * 0.7)) - 1, -1):
        if sliced[i - 1] in SENTENCE_END:
            return sliced[:i].rstrip()

    last_space = sliced.rfind(' ')
    title = (sliced[:last_space] if last_space > int(max_len * 0.6) else sliced).rstrip()

    for _ in range(5):
        before = title
        title = _TRAILING_PUNCT.sub('', title).rstrip()
        title = _TRAILING_CONNECTOR.sub('', title).rstrip()
        if title == before:
            break

    if len(title) > max_len:
        title = title[:max_len].rstrip()
    return title


def strip_dangling_tail(text):
    """Remove trailing articles/prepositions/conjunctions that make no sense at the end."""
    if not text:
        return text
    text = text.rstrip()
    while text:
        words = text.rsplit(None, 1)
        if len(words) < 2:
            break  # Single word left, keep it
        last_word = words[-1].rstrip('.,;:!?…').lower()
        if last_word in DANGLING_TAIL_WORDS:
            text = words[0].rstrip()
        else:
            break
    # Remove trailing comma/semicolon but keep period
    return text.rstrip(',;: ')


# ─── Filename Tokens ──────────────────────────────────────────────────────────

def _filename_stem(filename):
    return _EXTENSION.sub('', (filename or '').lower())


def filename_hints(filename):
    """Extract compact, meaningful tokens from a filename."""
    tokens = _FILENAME_SPLIT.split(_filename_stem(filename))
    hints = [
        token for token in tokens
        if token and token not in FILENAME_JUNK_TOKENS and not token.isdigit()
    ]
    return hints[:MAX_FILENAME_HINTS]


def is_filename_based(title, filename):
    """Return True when a title looks derived from the filename rather than the image."""
    if not title or not filename:
        return False
    title_lower = title.lower()
    stem = _filename_stem(filename)

    if collapse_whitespace(_FILENAME_SPLIT.sub(' ', title_lower)) == collapse_whitespace(
            _FILENAME_SPLIT.sub(' ', stem)):
        return True

    if PROVIDER_NAME_PATTERN.search(title_lower):
        return True

    if any(number in title_lower for number in re.findall(r'\d{3,}', stem)):
        return True

    filename_words = [
        w for w in _FILENAME_SPLIT.split(stem) if len(w) > 2 and not w.isdigit()
    ]
    if any(len(w) > 3 and title_lower == w for w in filename_words):
        return True

    title_words = [w for w in title_lower.split() if len(w) > 2]
    if title_words:
        matching = [
            tw for tw in title_words
            if any(tw == fw or fw in tw or tw in fw for fw in filename_words)
        ]
        if len(matching) / len(title_words) > 0.5:
            return True

    if _HEX_ID.search(title_lower) or _LONG_NUMBER.search(title_lower):
        return True

    if len(title) < 20 and any(len(w) > 4 and w in title_lower for w in filename_words):
        return True

    return False


def is_keyword_from_filename(keyword, filename):
    """Return True when a single keyword was lifted from the filename."""
    if not keyword or not filename:
        return False
    keyword_lower = keyword.lower().strip()
    stem = _filename_stem(filename)
    parts = _FILENAME_SPLIT.split(stem)

    if keyword_lower in parts:
        return True
    if any(h in keyword_lower for h in re.findall(r'[0-9a-f]{8,}', stem)):
        return True
    if any(n in keyword_lower for n in re.findall(r'\d{10,}', stem)):
        return True
    return any(len(p) >= 4 and p in keyword_lower for p in parts)


def filter_filename_based_keywords(keywords, filename):
    if not keywords or not filename:
        return list(keywords or [])
    return [k for k in keywords if not is_keyword_from_filename(k, filename)]


# ─── Title Cleaning ───────────────────────────────────────────────────────────

def escape_for_regex(term):
    return re.escape(str(term).strip())


def build_negative_pattern(terms):
    """Compile a case-insensitive whole-word pattern from user-supplied terms.

    Returns None when no usable term is given.
    """
    cleaned = [str(t).strip() for t in terms or []]
    cleaned = [t for t in cleaned if t]
    if not cleaned:
        return None
    return re.compile(r'\b(' + '|'.join(escape_for_regex(t) for t in cleaned) + r')\b', re.IGNORECASE)


def remove_negative_terms(title, terms):
    """Strip negative title terms; the title is kept unchanged if nothing would remain."""
    pattern = build_negative_pattern(terms)
    if pattern is None:
        return title
    cleaned = collapse_whitespace(pattern.sub(' ', title))
    return cleaned or title


def strip_banned_words(title):
    """Drop AI model names from a title, comparing words without punctuation."""
    kept = [
        word for word in (title or '').split()
        if re.sub(r'[^\w]', '', word.lower()) not in BANNED_PROVIDER_WORDS
    ]
    return ' '.join(kept).strip()


def has_style_reference(text):
    return any(p.search(text or '') for p in STYLE_REFERENCE_PATTERNS)


def strip_style_references(title):
    for pattern in STYLE_REFERENCE_PATTERNS:
        if pattern.search(title):
            title = collapse_whitespace(pattern.sub('', title))
    return title


def remove_background_colors(title):
    """Rewrite stated background colours for a transparent asset.

    A colour mention is dropped when the title already says "isolated",
    otherwise it becomes "transparent background".
    """
    for pattern in BACKGROUND_COLOR_PATTERNS:
        if pattern.search(title):
            if re.search(r'\bisolated\b', title, re.IGNORECASE):
                title = collapse_whitespace(pattern.sub('', title))
            else:
                title = pattern.sub('transparent background', title)
    title = COLORED_BACKGROUND.sub('transparent background', title)
    return collapse_whitespace(title)
