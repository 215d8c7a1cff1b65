"""
Pipeline Tests
Purpose: per-stage behaviour of the assembly pipeline and the per-file error boundary.
"""

import pytest

from stockmeta.errors import ProviderError, QuotaExhaustedError, ResponseParseError
from stockmeta.models import RawModelOutput
from stockmeta.pipeline import (
    MISSING_PREVIEW_TITLE,
    PROVIDER_FAILURE_DESCRIPTION,
    PipelineState,
    append_attributes,
    apply_user_overrides,
    clean_title,
    enforce_length,
    filter_keywords,
    merge_keywords,
    process_file,
)


@pytest.fixture
def make_state(make_request, make_job):
    def _make(filename="asset.jpg", image=True, request=None, **fields):
        request = request or make_request(filename=filename)
        job = make_job(filename) if image else make_job(filename, image_data=None)
        return PipelineState(request=request.for_file(job), job=job, **fields)
    return _make


# ─── Title Stages ─────────────────────────────────────────────────────────────

class TestTitleStages:

    def test_clean_title_keeps_ordinary_words(self, make_state, make_request):
        state = clean_title(make_state(request=make_request(title_len=60), title="My Photo Final Export 2024"))
        assert state.title == "My Photo Final Export 2024"

    def test_clean_title_strips_model_names(self, make_state):
        assert clean_title(make_state(title="Gemini sunset over mountains")).title == "sunset over mountains"

    def test_adobe_style_reference_removed(self, make_state, make_request):
        state = make_state(request=make_request(platform="adobe"),
                           title="Portrait in the style of old masters")
        assert "style of" not in clean_title(state).title

    def test_transparent_replaces_background_colour(self, make_state, make_request):
        request = make_request(isolated_on_transparent_background=True, title_len=120)
        state = append_attributes(make_state("fox.png", request=request,
                                             title="Cute cartoon fox on green background"))
        assert "green" not in state.title.lower()
        assert "isolated" in state.title.lower()
        assert "transparent background" in state.title.lower()

    def test_transparent_phrase_skipped_when_too_long(self, make_state, make_request):
        request = make_request(isolated_on_transparent_background=True, title_len=45)
        state = append_attributes(make_state("fox.png", request=request,
                                             title="Cute cartoon fox on green background"))
        assert state.title == "Cute cartoon fox on transparent background"

    def test_white_phrase_not_duplicated(self, make_state, make_request):
        request = make_request(isolated_on_white_background=True)
        state = append_attributes(make_state(request=request, title="Red apple isolated on white background"))
        assert state.title == "Red apple isolated on white background"

    def test_white_phrase_appended(self, make_state, make_request):
        request = make_request(isolated_on_white_background=True)
        state = append_attributes(make_state(request=request, title="Coffee cup on a saucer"))
        assert state.title == "Coffee cup on a saucer isolated on white background"

    def test_vector_word_for_vector_assets_only(self, make_state, make_request):
        request = make_request(is_vector=True)
        vector = append_attributes(make_state("icon.svg", request=request, title="Flat mountain landscape icon"))
        photo = append_attributes(make_state("shot.jpg", request=request, title="Flat mountain landscape icon"))
        assert vector.title == "Flat mountain landscape icon vector"
        assert photo.title == "Flat mountain landscape icon"

    def test_prefix_and_suffix(self, make_state, make_request):
        request = make_request(prefix="Summer", suffix="at noon")
        state = apply_user_overrides(make_state(request=request, title="Beach umbrella on sand"))
        assert state.title == "Summer Beach umbrella on sand at noon"

    def test_enforce_length(self, make_state, make_request):
        request = make_request(title_len=30)
        state = enforce_length(make_state(
            request=request,
            title="Golden retriever puppy playing with a red ball in the park",
            description="A playful golden retriever puppy chasing a bright red ball across the green "
                        "grass of a sunny city park on a warm summer afternoon with friends and family",
        ))
        assert len(state.title) <= 30
        assert len(state.description) <= 150
        assert state.description.endswith("afternoon with friends")


# ─── Keyword Stages ───────────────────────────────────────────────────────────

class TestKeywordStages:

    def test_adobe_splits_long_keywords(self, make_state, make_request):
        raw = RawModelOutput(keywords=["modern minimalist home office desk setup", "laptop"])
        state = merge_keywords(make_state(request=make_request(platform="adobe"), raw=raw))
        assert all(len(k.split()) < 3 for k in state.keywords)
        assert {"modern", "minimalist", "home", "office", "desk", "setup", "laptop"} <= set(state.keywords)

    def test_merge_keeps_reserve(self, make_state, make_request):
        raw = RawModelOutput(keywords=[f"term{i}x" for i in range(8)])
        state = merge_keywords(make_state(request=make_request(keyword_count=5), raw=raw))
        assert len(state.keywords) == 5
        assert state.reserve == ("term5x", "term6x", "term7x")

    def test_adobe_title_words_land_in_top_window(self, make_state, make_request):
        keywords = tuple(f"term{i}x" for i in range(12))
        state = make_state(request=make_request(platform="adobe"), keywords=keywords,
                           title_words=("fox", "snow"))
        result = filter_keywords(state).keywords
        assert "fox" in result[:10]
        assert "snow" in result[:10]

    def test_general_title_words_prepended(self, make_state):
        state = make_state(keywords=("meadow", "grass"), title_words=("fox", "snow"))
        assert filter_keywords(state).keywords[:2] == ("fox", "snow")

    def test_negative_keywords_beat_title_words(self, make_state, make_request):
        state = make_state(request=make_request(negative_keywords=["Snow"]),
                           keywords=("meadow",), title_words=("fox", "snow"))
        assert "snow" not in filter_keywords(state).keywords

    def test_filename_keywords_purged_and_backfilled(self, make_state):
        state = make_state("sunset_beach.jpg", keywords=("sunset", "ocean"), title_words=("ocean", "waves"))
        result = filter_keywords(state).keywords
        assert "sunset" not in result
        assert set(result) == {"ocean", "waves"}


# ─── process_file ─────────────────────────────────────────────────────────────

class TestProcessFile:

    @pytest.mark.asyncio
    async def test_success_row(self, make_request, make_job, fake_caller, no_sleep):
        row = await process_file(make_job(), make_request(), fake_caller, "key", sleep=no_sleep)
        assert not row.is_error
        assert row.title == "Red apple on a wooden kitchen table"
        assert row.platform == "General"
        assert fake_caller.calls == [("asset.jpg", "key")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [5, 20, 45])
    async def test_fixed_count_is_exact(self, make_request, make_job, fake_caller, no_sleep, count):
        row = await process_file(make_job(), make_request(keyword_count=count), fake_caller, "key",
                                 sleep=no_sleep)
        assert len(row.keywords) == count
        assert len(set(row.keywords)) == count
        assert "asset" not in row.keywords

    @pytest.mark.asyncio
    async def test_auto_mode_is_not_padded(self, make_request, make_job, caller_factory, no_sleep):
        caller = caller_factory({"title": "Red apple on a wooden kitchen table", "description": "Apple.",
                                 "keywords": ["apple"]})
        row = await process_file(make_job(), make_request(keyword_mode="auto"), caller, "key", sleep=no_sleep)
        assert 0 < len(row.keywords) <= 35

    @pytest.mark.asyncio
    async def test_negative_terms_enforced(self, make_request, make_job, fake_caller, no_sleep):
        request = make_request(negative_title=["red"], negative_keywords=["fruit", "Kitchen"])
        row = await process_file(make_job(), request, fake_caller, "key", sleep=no_sleep)
        assert "red" not in row.title.lower().split()
        assert "fruit" not in row.keywords
        assert "kitchen" not in row.keywords
        assert len(row.keywords) == 20

    @pytest.mark.asyncio
    async def test_white_background_title(self, make_request, make_job, caller_factory, no_sleep):
        caller = caller_factory({"title": "Coffee cup isolated on white background",
                                 "description": "A coffee cup.", "keywords": ["coffee", "cup"]})
        row = await process_file(make_job(), make_request(isolated_on_white_background=True), caller,
                                 "key", sleep=no_sleep)
        assert row.title.lower().count("isolated on white background") == 1

    @pytest.mark.asyncio
    async def test_filename_based_title_is_error(self, make_request, make_job, caller_factory, no_sleep):
        caller = caller_factory({"title": "Sunset beach paradise", "description": "Beach.",
                                 "keywords": ["beach"]})
        row = await process_file(make_job("sunset_beach_paradise.jpg"), make_request(), caller, "key",
                                 sleep=no_sleep)
        assert row.is_error
        assert row.title.startswith("[ERROR] Image analysis failed: Generated title appears")
        assert row.keywords == []

    @pytest.mark.asyncio
    async def test_missing_preview_is_error(self, make_request, make_job, fake_caller, no_sleep):
        row = await process_file(make_job("photo.png", image_data=None), make_request(), fake_caller,
                                 "key", sleep=no_sleep)
        assert row.is_error
        assert row.title == MISSING_PREVIEW_TITLE
        assert fake_caller.calls == []

    @pytest.mark.asyncio
    async def test_empty_title_with_image_is_error(self, make_request, make_job, caller_factory, no_sleep):
        caller = caller_factory({"title": "", "description": "", "keywords": []})
        row = await process_file(make_job(), make_request(), caller, "key", sleep=no_sleep)
        assert row.title == "[ERROR] Image analysis failed: No title generated."

    @pytest.mark.asyncio
    async def test_text_only_parse_failure_uses_filename(self, make_request, make_job, caller_factory,
                                                         no_sleep):
        caller = caller_factory(errors={"key": ResponseParseError("not json")})
        row = await process_file(make_job("golden_retriever_puppy.gif", image_data=None), make_request(),
                                 caller, "key", sleep=no_sleep)
        assert not row.is_error
        assert "retriever" in row.title

    @pytest.mark.asyncio
    async def test_provider_error_row(self, make_request, make_job, caller_factory, no_sleep):
        caller = caller_factory(errors={"key": ProviderError("Unauthorized", 401)})
        row = await process_file(make_job(), make_request(), caller, "key", sleep=no_sleep)
        assert row.error == "Image analysis failed: Unauthorized"
        assert row.description == PROVIDER_FAILURE_DESCRIPTION
        assert len(caller.calls) == 1

    @pytest.mark.asyncio
    async def test_model_reported_error(self, make_request, make_job, caller_factory, no_sleep):
        caller = caller_factory(RawModelOutput(error="Content blocked"))
        row = await process_file(make_job(), make_request(), caller, "key", sleep=no_sleep)
        assert row.error == "Content blocked"

    @pytest.mark.asyncio
    async def test_unexpected_exception_row(self, make_request, make_job, caller_factory, no_sleep):
        caller = caller_factory(errors={"key": RuntimeError("boom")})
        row = await process_file(make_job(), make_request(), caller, "key", sleep=no_sleep)
        assert row.error == "Processing failed: boom"

    @pytest.mark.asyncio
    async def test_quota_error_propagates(self, make_request, make_job, caller_factory, no_sleep):
        events = []
        caller = caller_factory(errors={"key": ProviderError("Quota exceeded for metric", 429)})
        with pytest.raises(QuotaExhaustedError):
            await process_file(make_job(), make_request(), caller, "key", on_retry=events.append,
                               sleep=no_sleep)
        assert len(caller.calls) == 5
        assert [e.status for e in events] == ["retrying"] * 4 + ["failed"]
