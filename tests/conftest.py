"""
Shared pytest fixtures for the VideoRelay test suite.

Provides an in-memory resolver and upstream stream so the relay can be
exercised end to end without touching the network.
"""

import pytest

from app import create_app
from resolver import ResourceMetadata
from variant_selector import Variant

YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def make_variant(format_id, height, video=True, audio=True, container="mp4", content_length=None):
    return Variant(
        format_id=str(format_id),
        container=container,
        has_video=video,
        has_audio=audio,
        height=height,
        url=f"https://media.example.com/{format_id}",
        content_length=content_length,
        http_headers={},
    )


class FakeStream:
    """Upstream stand-in that records how far it was read and whether it was closed."""

    def __init__(self, chunks, fail_after=None, content_length=None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.content_length = content_length
        self.read = 0
        self.closed = False

    def __iter__(self):
        for i, chunk in enumerate(self.chunks):
            if self.closed:
                return
            if self.fail_after is not None and i >= self.fail_after:
                raise ConnectionResetError("connection reset by peer")
            self.read += 1
            yield chunk

    def close(self):
        self.closed = True


class FakeResolver:
    def __init__(self, metadata=None, stream=None, resolve_error=None, open_error=None):
        self.metadata = metadata
        self.stream = stream
        self.resolve_error = resolve_error
        self.open_error = open_error
        self.resolve_calls = []
        self.open_calls = []

    def is_valid_identifier(self, url):
        return url.startswith("https://www.youtube.com/")

    def resolve(self, url, options):
        self.resolve_calls.append((url, dict(options)))
        if self.resolve_error:
            raise self.resolve_error
        return self.metadata

    def open_stream(self, variant, options):
        self.open_calls.append((variant, dict(options)))
        if self.open_error:
            raise self.open_error
        return self.stream


@pytest.fixture
def youtube_url():
    return YOUTUBE_URL


@pytest.fixture
def sample_metadata():
    return ResourceMetadata(
        title="Never Gonna Give You Up",
        variants=(
            make_variant("22", 720, content_length=2048),
            make_variant("18", 360, content_length=1024),
            make_variant("137", 1080, audio=False),
        ),
    )


@pytest.fixture
def fake_stream():
    return FakeStream([b"abc", b"def", b"ghi"])


@pytest.fixture
def fake_resolver(sample_metadata, fake_stream):
    return FakeResolver(metadata=sample_metadata, stream=fake_stream)


@pytest.fixture
def cookies_path(tmp_path):
    return tmp_path / "cookies.txt"


@pytest.fixture
def flask_app(fake_resolver, cookies_path):
    app = create_app({"TESTING": True, "COOKIES_PATH": cookies_path}, resolver=fake_resolver)
    return app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()
