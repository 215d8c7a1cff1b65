"""
Compliance Tests
Purpose: Adobe title/keyword rules, response validation and quality scores.
"""

from stockmeta.compliance import (
    score_keyword_quality,
    score_title_quality,
    validate_adobe_keywords,
    validate_adobe_title,
    validate_response,
)


GOOD_TITLE = "Red apple on a wooden kitchen table"


class TestAdobeTitle:

    def test_clean_title_passes(self):
        report = validate_adobe_title("Fresh pear on a wooden kitchen table")
        assert report.ok
        assert report.warnings == []

    def test_style_reference_blocks(self):
        report = validate_adobe_title("Portrait in the style of a famous painter")
        assert not report.ok
        assert "style_reference" in report.failed_checks

    def test_brand_name_blocks(self):
        report = validate_adobe_title("Nike shoes on a wooden shelf")
        assert not report.ok
        assert "brand_name" in report.failed_checks

    def test_comma_density_is_advisory(self):
        report = validate_adobe_title("Pear, plum, fig, kiwi and lime, fresh fruit")
        assert report.ok
        assert "comma_density" in report.failed_checks
        assert len(report.warnings) == 1

    def test_long_title_is_advisory(self):
        report = validate_adobe_title("Golden " * 12 + "retriever")
        assert report.ok
        assert "title_length" in report.failed_checks

    def test_advisory_set_is_configurable(self):
        report = validate_adobe_title("Golden " * 12 + "retriever", advisory_checks=frozenset())
        assert not report.ok


class TestAdobeKeywords:

    def test_combined_and_generic_are_advisory(self):
        keywords = ["white fluffy fox", "design", "graphic", "element", "icon", "fox"]
        report = validate_adobe_keywords(keywords)
        assert report.ok
        assert "combined_phrase" in report.failed_checks
        assert "generic_density" in report.failed_checks

    def test_person_name_blocks(self):
        report = validate_adobe_keywords(["portrait", "John Smith"])
        assert not report.ok
        assert "person_name" in report.failed_checks

    def test_mixed_language_warns(self):
        report = validate_adobe_keywords(["pear", "café"])
        assert report.ok
        assert "mixed_language" in report.failed_checks

    def test_empty_list(self):
        assert validate_adobe_keywords([]).failed_checks == []


class TestValidateResponse:

    def test_valid_response(self):
        result = validate_response(GOOD_TITLE, "Fresh apple.", ["apple", "red"], 2,
                                   "asset.jpg", True, "general")
        assert result.valid
        assert result.issues == []

    def test_collects_issues(self):
        result = validate_response("Gemini apple on table", "", ["apple", "apple", "gemini"], 5,
                                   "asset.jpg", False, "general")
        assert not result.valid
        text = " | ".join(result.issues)
        assert 'banned word: "gemini"' in text
        assert "Description is empty" in text
        assert "Keyword count mismatch" in text
        assert "Duplicate keywords found: apple" in text

    def test_auto_mode_skips_count(self):
        result = validate_response(GOOD_TITLE, "Fresh apple.", ["apple"], None,
                                   "asset.jpg", True, "general")
        assert result.valid

    def test_adobe_warnings_do_not_invalidate(self):
        result = validate_response("Pear, plum, fig, kiwi and lime, fresh fruit", "Fruit.",
                                   ["plum", "pear"], 2, "asset.jpg", True, "adobe")
        assert result.valid
        assert result.warnings


class TestQualityScores:

    def test_good_title_scores_full(self):
        assert score_title_quality(GOOD_TITLE, "asset.jpg", 70, True).score == 100

    def test_truncated_title_penalised(self):
        assert score_title_quality(GOOD_TITLE + ",", "asset.jpg", 70, True).score == 80

    def test_adobe_brand_penalty(self):
        score = score_title_quality("Nike running shoes on wooden floor", "x.jpg", 70, True, "adobe")
        assert score.score == 75
        assert any(issue.startswith("Adobe Stock:") for issue in score.issues)

    def test_keywords_empty(self):
        assert score_keyword_quality([], 10).score == 0

    def test_keywords_full_score(self):
        assert score_keyword_quality(["apple", "red", "table", "wooden"], 4, "Red apple").score == 100
