"""
StockMeta - Keyword Normalizer
Turns an arbitrary list of candidate strings into a deduplicated,
stem-aware, policy-filtered keyword list.
"""

import re

from stockmeta.policy import (
    BANNED_PROVIDER_WORDS,
    KEYWORD_CEILING,
    MIN_KEYWORD_LENGTH,
    STOPWORDS,
)


_STEM_SUFFIX = re.compile(r'(ing|ers|es|s)$')
_LATIN_LETTER = re.compile(r'[a-z]')


def stem_lite(word):
    """Light suffix strip used only to spot near-duplicates ('cats' -> 'cat')."""
    return _STEM_SUFFIX.sub('', word, count=1)


def is_acceptable_keyword(keyword, blocklist=BANNED_PROVIDER_WORDS):
    """Check a lowercased, trimmed keyword against the basic keyword rules."""
    if not keyword or len(keyword) < MIN_KEYWORD_LENGTH:
        return False
    if keyword in blocklist or keyword in STOPWORDS:
        return False
    return bool(_LATIN_LETTER.search(keyword))


def build_blocklist(extra_blocklist=()):
    block = set(BANNED_PROVIDER_WORDS)
    block.update(str(term).strip().lower() for term in extra_blocklist or ())
    block.discard('')
    return block


def normalize_keywords(candidates, target_count=None, seeds=(), extra_blocklist=()):
    """
    Deduplicate and filter keyword candidates, backfilling from seeds.

    Candidates are consumed first, then seeds, until the target is reached.
    The first keyword seen for each stem wins; later forms are dropped.

    Args:
        candidates: Raw keyword strings, in priority order.
        target_count: Exact cap for fixed mode, or None for auto mode
            (bounded only by the generous ceiling, never padded).
        seeds: Fallback candidates (title words, filename hints).
        extra_blocklist: User negative keywords, matched case-insensitively.

    Returns:
        List of lowercase keywords.
    """
    block = build_blocklist(extra_blocklist)
    cap = target_count if target_count is not None else KEYWORD_CEILING
    seen = set()
    out = []

    def push(raw):
        keyword = ' '.join(str(raw).lower().split())
        if not is_acceptable_keyword(keyword, block):
            return
        stem = stem_lite(keyword)
        if stem in seen:
            return
        seen.add(stem)
        out.append(keyword)

    for raw in candidates or ():
        if len(out) >= cap:
            break
        push(raw)
    for seed in seeds or ():
        if len(out) >= cap:
            break
        push(seed)
    return out[:cap]


def split_combined_phrases(keywords):
    """Split keywords of three or more words into single-word keywords.

    Shorter keywords are lowercased with punctuation turned into spaces.
    """
    out = []
    for raw in keywords or ():
        text = str(raw).strip()
        words = text.lower().split()
        if len(words) >= 3:
            for word in words:
                clean = re.sub(r'[^\w]', '', word)
                if len(clean) >= MIN_KEYWORD_LENGTH:
                    out.append(clean)
        else:
            out.append(re.sub(r'[^\w\s]', ' ', text.lower()).strip())
    return out


def title_words(title):
    """Meaningful lowercase words of a title, in order, without repeats."""
    words = re.sub(r'[^\w\s]', ' ', (title or '').lower()).split()
    out = []
    for word in words:
        if len(word) < MIN_KEYWORD_LENGTH:
            continue
        if word in BANNED_PROVIDER_WORDS or word in STOPWORDS:
            continue
        if word not in out:
            out.append(word)
    return out
