"""
StockMeta - Platform Compliance
Adobe Stock title/keyword rules, general response checks and quality scores.
Nothing here changes a title or keyword list; it only reports findings.
"""

import re
from typing import List

from pydantic import BaseModel

from stockmeta.policy import (
    ADOBE_RECOMMENDED_TITLE_LENGTH,
    ADVISORY_ONLY_CHECKS,
    BANNED_PROVIDER_WORDS,
    BRAND_NAMES,
    DESCRIPTION_LIMIT,
    FILLER_KEYWORDS,
    GENERIC_KEYWORDS,
    GENERIC_TITLE_WORDS,
    HARD_TITLE_LIMIT,
    LOW_VALUE_KEYWORDS,
)
from stockmeta.text_sanitizer import has_style_reference, is_filename_based


_NAME_WORD = re.compile(r'^[A-Z][a-z]+$')
_PERSON_NAME = re.compile(r'^[A-Z][a-z]+\s+[A-Z][a-z]+$')
_NON_ASCII = re.compile(r'[^\x00-\x7F]')

_ADOBE_TITLE_PENALTIES = {
    'title_length': 5,
    'comma_density': 15,
    'style_reference': 20,
    'brand_name': 25,
    'name_like_title': 15,
}


class ComplianceReport(BaseModel):
    warnings: List[str] = []
    errors: List[str] = []
    failed_checks: List[str] = []

    @property
    def ok(self):
        return not self.errors

    def add(self, check, message, advisory_checks=ADVISORY_ONLY_CHECKS):
        self.failed_checks.append(check)
        if check in advisory_checks:
            self.warnings.append(message)
        else:
            self.errors.append(message)



class ValidationResult(BaseModel):
    valid: bool
    issues: List[str] = []
    warnings: List[str] = []


class QualityScore(BaseModel):
    score: int
    issues: List[str] = []
    strengths: List[str] = []


def _brand_tokens(text):
    return [w for w in re.split(r'\W+', text.lower()) if len(w) > 2 and w in BRAND_NAMES]


# ─── Adobe Rules ──────────────────────────────────────────────────────────────

def validate_adobe_title(title, advisory_checks=ADVISORY_ONLY_CHECKS):
    """
    Check a title against Adobe Stock's content rules.

    Args:
        title: Final title text.
        advisory_checks: Rule names reported as warnings instead of errors.

    Returns:
        ComplianceReport with warnings and errors.
    """
    report = ComplianceReport()

    if len(title) > ADOBE_RECOMMENDED_TITLE_LENGTH:
        report.add('title_length',
                   f"Title exceeds Adobe's recommended {ADOBE_RECOMMENDED_TITLE_LENGTH} characters "
                   f"({len(title)} chars).", advisory_checks)

    if title.count(',') > 3 or title.count(';') > 1:
        report.add('comma_density',
                   'Title appears to be a keyword list (too many commas/semicolons). '
                   'Use no more than 3 commas and at most 1 semicolon.', advisory_checks)

    if has_style_reference(title):
        report.add('style_reference',
                   'Title contains style reference (e.g., "in the style of", "inspired by"). '
                   'Adobe prohibits referencing other creative works.', advisory_checks)

    brands = _brand_tokens(title)
    if brands:
        report.add('brand_name',
                   f"Title contains third-party IP/brand names: {', '.join(brands)}.",
                   advisory_checks)

    capitalized = [w for w in title.split() if _NAME_WORD.match(w) and len(w) > 3]
    if len(capitalized) > 2 and not re.match(r'^[A-Z]', title):
        report.add('name_like_title',
                   'Title may contain person/artist names. Adobe prohibits names of real people, '
                   'artists, or fictional characters.', advisory_checks)

    return report


def validate_adobe_keywords(keywords, advisory_checks=ADVISORY_ONLY_CHECKS):
    """Check a keyword list against Adobe Stock's keyword rules."""
    report = ComplianceReport()
    if not keywords:
        return report

    combined = [k for k in keywords if len(k.split()) >= 3]
    if combined:
        report.add('combined_phrase',
                   f"Found combined phrases in keywords (should be split): {', '.join(combined[:3])}.",
                   advisory_checks)

    generic_count = sum(1 for k in keywords[:10] if k.lower() in GENERIC_KEYWORDS)
    if generic_count > 3:
        report.add('generic_density',
                   f'First 10 keywords contain too many generic terms ({generic_count}).',
                   advisory_checks)

    branded = [k.lower() for k in keywords if any(w in BRAND_NAMES for w in re.split(r'\W+', k.lower()))]
    if branded:
        report.add('brand_name',
                   f"Keywords contain third-party IP/brand names: {', '.join(branded)}.",
                   advisory_checks)

    names = [k for k in keywords if _PERSON_NAME.match(k)]
    if names:
        report.add('person_name',
                   f"Keywords may contain person names: {', '.join(names)}.", advisory_checks)

    has_non_ascii = any(_NON_ASCII.search(k) for k in keywords)
    all_non_ascii = all(_NON_ASCII.search(k) for k in keywords)
    if has_non_ascii and not all_non_ascii:
        report.add('mixed_language',
                   'Keywords appear to contain mixed languages. Adobe requires all metadata '
                   'in one language.', advisory_checks)

    return report


# ─── Response Validation ──────────────────────────────────────────────────────

def validate_response(title, description, keywords, expected_keyword_count, filename,
                      has_image, platform, advisory_checks=ADVISORY_ONLY_CHECKS):
    """
    Run every check on a finished title/description/keyword triple.

    Used for logging only; a failing result never blocks a row.

    Args:
        expected_keyword_count: Exact count in fixed mode, None in auto mode.
        has_image: Whether visual input was supplied for this file.
        platform: Adobe rules apply only when this is 'adobe'.

    Returns:
        ValidationResult
    """
    issues = []
    warnings = []

    if not title or not title.strip():
        issues.append('Title is empty')
    else:
        if len(title) > HARD_TITLE_LIMIT:
            issues.append(f'Title too long: {len(title)} chars (max {HARD_TITLE_LIMIT})')
        if len(title) < 5:
            issues.append(f'Title too short: {len(title)} chars (min 5)')
        words = set(w for w in re.split(r'\W+', title.lower()) if w)
        for banned in sorted(BANNED_PROVIDER_WORDS & words):
            issues.append(f'Title contains banned word: "{banned}"')
        if platform == 'adobe':
            report = validate_adobe_title(title, advisory_checks)
            warnings.extend(report.warnings)
            issues.extend(report.errors)

    if not description or not description.strip():
        issues.append('Description is empty')
    elif len(description) > DESCRIPTION_LIMIT:
        issues.append(f'Description too long: {len(description)} chars (max {DESCRIPTION_LIMIT})')

    if expected_keyword_count is not None and len(keywords) != expected_keyword_count:
        issues.append(f'Keyword count mismatch: {len(keywords)} (expected {expected_keyword_count})')
    banned_keywords = [k for k in keywords if k.lower() in BANNED_PROVIDER_WORDS]
    if banned_keywords:
        issues.append(f"Keywords contain banned words: {', '.join(banned_keywords)}")
    lowered = [k.lower() for k in keywords]
    duplicates = sorted({k for i, k in enumerate(lowered) if k in lowered[:i]})
    if duplicates:
        issues.append(f"Duplicate keywords found: {', '.join(duplicates)}")
    if platform == 'adobe':
        report = validate_adobe_keywords(keywords, advisory_checks)
        warnings.extend(report.warnings)
        issues.extend(report.errors)

    if has_image and title and is_filename_based(title, filename):
        issues.append('Title appears filename-based despite image being provided')

    return ValidationResult(valid=not issues, issues=issues, warnings=warnings)


# ─── Quality Scores ───────────────────────────────────────────────────────────

def score_title_quality(title, filename, expected_length, has_image, platform=None):
    """Score a title from 0 to 100 for monitoring."""
    issues = []
    strengths = []
    score = 100

    flexible_max = min(expected_length + max(int(expected_length * 0.13 + 0.5), 17), HARD_TITLE_LIMIT)
    if len(title) > HARD_TITLE_LIMIT:
        issues.append(f'Title exceeds hard limit of {HARD_TITLE_LIMIT} characters ({len(title)} chars)')
        score -= 20
    elif len(title) > flexible_max:
        issues.append(f'Title exceeds flexible limit: {len(title)} chars (flexible: {flexible_max})')
        score -= 10
    elif len(title) > expected_length:
        strengths.append(f'Title within flexible range ({len(title)} chars, base limit: {expected_length})')
    elif len(title) < 10:
        issues.append('Title is too short (less than 10 characters)')
        score -= 15
    else:
        strengths.append(f'Title length appropriate ({len(title)} chars)')

    title_lower = title.lower()
    for banned in sorted(BANNED_PROVIDER_WORDS):
        if banned in title_lower:
            issues.append(f'Contains banned word: "{banned}"')
            score -= 10

    words = title_lower.split()
    generic_count = sum(1 for w in words if w in GENERIC_TITLE_WORDS)
    if generic_count > 2:
        issues.append(f'Too many generic words ({generic_count})')
        score -= 10
    elif generic_count == 0:
        strengths.append('No generic filler words')

    if has_image and is_filename_based(title, filename):
        issues.append('Title appears to be based on filename, not image content')
        score -= 25

    unique_words = {w for w in words if len(w) > 3}
    if len(unique_words) < 3:
        issues.append('Title lacks specificity (too few unique descriptive words)')
        score -= 15
    else:
        strengths.append(f'Good specificity ({len(unique_words)} unique descriptive words)')

    if platform == 'adobe':
        adobe = validate_adobe_title(title, advisory_checks=frozenset())
        for message in adobe.errors:
            issues.append(f'Adobe Stock: {message}')
        score -= sum(_ADOBE_TITLE_PENALTIES.get(check, 0) for check in adobe.failed_checks)

    if re.search(r'(\.\.\.|…|,)$', title):
        issues.append('Title appears to be truncated or incomplete')
        score -= 20

    if title and title[0] == title[0].lower() and title[0] != title[0].upper():
        issues.append('Title should start with capital letter')
        score -= 5

    return QualityScore(score=max(0, min(100, score)), issues=issues, strengths=strengths)


def score_keyword_quality(keywords, expected_count, title=None):
    """Score a keyword list from 0 to 100 for monitoring."""
    if not keywords:
        return QualityScore(score=0, issues=['No keywords provided'])

    issues = []
    strengths = []
    score = 100

    if len(keywords) != expected_count:
        issues.append(f'Keyword count mismatch: {len(keywords)} (expected {expected_count})')
        score -= 15
    else:
        strengths.append(f'Correct keyword count ({len(keywords)})')

    lowered = [k.lower() for k in keywords]
    if len(set(lowered)) != len(lowered):
        issues.append('Duplicate keywords')
        score -= 10
    else:
        strengths.append('No duplicate keywords')

    low_value = [k for k in keywords if k.lower() in LOW_VALUE_KEYWORDS]
    if low_value:
        issues.append(f"Banned keywords: {', '.join(low_value)}")
        score -= 15
    else:
        strengths.append('No banned keywords')

    if any(len(k) < 2 for k in keywords):
        issues.append('Too short keywords')
        score -= 5
    if any(len(k) > 30 for k in keywords):
        issues.append('Too long keywords')
        score -= 5

    if title:
        words = [w for w in re.sub(r'[^\w\s]', ' ', title.lower()).split() if len(w) >= 3]
        matching = [w for w in words if w in set(lowered)]
        if matching:
            strengths.append(f'Title words in keywords ({len(matching)})')
        elif words:
            issues.append('Title words not found in keywords')
            score -= 5

    filler = sum(1 for k in lowered if k in FILLER_KEYWORDS)
    if filler > len(keywords) * 0.3:
        issues.append(f'Too many generic keywords ({filler})')
        score -= 10

    return QualityScore(score=max(0, min(100, score)), issues=issues, strengths=strengths)
