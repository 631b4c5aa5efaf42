import pytest

from app import create_app
from streamrelay.config import RelayConfig
from streamrelay.errors import ResolutionError
from streamrelay.models import FormatDescriptor

VIDEO_ID = 'abc123XYZ_-'


def make_format(format_id, quality=720, audio=True, video=True, ext='mp4'):
    return FormatDescriptor(
        format_id=format_id,
        url=f'https://upstream.test/{format_id}',
        ext=ext,
        has_audio=audio,
        has_video=video,
        quality=quality,
        protocol='https',
    )


class StubByteSource:
    def __init__(self, chunks, error=None, fail_after=None):
        self.chunks = list(chunks)
        self.error = error
        self.fail_after = fail_after
        self.reads = 0
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        if self.closed:
            raise StopIteration
        if self.error is not None and self.reads == (self.fail_after or 0):
            raise self.error
        if self.reads >= len(self.chunks):
            raise StopIteration
        chunk = self.chunks[self.reads]
        self.reads += 1
        return chunk

    def close(self):
        self.closed = True


class StubResolver:
    def __init__(self, formats=None, chunks=(b'video-bytes',), resolve_error=None, source=None):
        self.formats = [make_format('18')] if formats is None else formats
        self.chunks = chunks
        self.resolve_error = resolve_error
        self.fixed_source = source
        self.sources = []
        self.resolved = []
        self.opened = []

    @property
    def source(self):
        return self.sources[-1] if self.sources else None

    def resolve_formats(self, video_id):
        self.resolved.append(video_id)
        if self.resolve_error is not None:
            raise self.resolve_error
        return list(self.formats)

    def open_byte_source(self, descriptor, high_water_mark):
        self.opened.append((descriptor, high_water_mark))
        source = self.fixed_source or StubByteSource(self.chunks)
        self.sources.append(source)
        return source


@pytest.fixture
def resolver():
    return StubResolver()


@pytest.fixture
def config():
    return RelayConfig(high_water_mark=1024, trust_proxy=False)


@pytest.fixture
def app(config, resolver):
    app = create_app(config, resolver=resolver)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def failing_resolver():
    return StubResolver(resolve_error=ResolutionError('Video unavailable'))
