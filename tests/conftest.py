"""
Pytest Configuration and Shared Fixtures
Purpose: request factory, a scripted vision caller and a fake image payload.
"""

import threading

import pytest

from stockmeta.models import FileJob, GenerationRequest, RawModelOutput


IMAGE_DATA = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD"


class FakeCaller:
    """
    Vision caller returning canned output.

    Args:
        output: RawModelOutput (or dict) returned for every call, or a
            callable(request, image_data, credential) producing one.
        errors: Mapping of credential -> exception raised for that key.
    """

    def __init__(self, output=None, errors=None):
        self.output = output if output is not None else RawModelOutput(
            title="Red apple on a wooden kitchen table",
            description="Fresh red apple resting on a rustic wooden table.",
            keywords=["apple", "red", "fruit", "fresh", "table", "wooden", "kitchen"],
        )
        self.errors = errors or {}
        self.calls = []
        self._lock = threading.Lock()

    def generate(self, request, image_data, credential):
        with self._lock:
            self.calls.append((request.filename, credential))
        if credential in self.errors:
            raise self.errors[credential]
        output = self.output
        if callable(output):
            output = output(request, image_data, credential)
        if isinstance(output, dict):
            output = RawModelOutput(**output)
        return output


@pytest.fixture
def make_request():
    """Factory for GenerationRequest with test-friendly defaults."""
    def _make(**overrides):
        values = {
            "platform": "general",
            "title_len": 70,
            "keyword_mode": "fixed",
            "keyword_count": 20,
            "filename": "asset.jpg",
        }
        values.update(overrides)
        return GenerationRequest(**values)
    return _make


@pytest.fixture
def make_job():
    def _make(filename="asset.jpg", image_data=IMAGE_DATA):
        return FileJob(filename=filename, image_data=image_data)
    return _make


@pytest.fixture
def fake_caller():
    return FakeCaller()


@pytest.fixture
def caller_factory():
    return FakeCaller


@pytest.fixture
def no_sleep():
    """Awaitable sleep that records delays instead of waiting."""
    delays = []

    async def _sleep(delay):
        delays.append(delay)

    _sleep.delays = delays
    return _sleep
