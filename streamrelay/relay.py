import logging
import re
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Protocol

from .errors import InvalidIdentifier, NoSuitableFormat, RelayError, StreamError
from .models import FormatDescriptor

logger = logging.getLogger(__name__)

VIDEO_ID_RE = re.compile(r'[A-Za-z0-9_-]{11}')


class FormatResolver(Protocol):
    """What the relay needs from a video platform."""

    def resolve_formats(self, video_id: str) -> List[FormatDescriptor]:
        ...

    def open_byte_source(self, descriptor: FormatDescriptor, high_water_mark: int) -> Iterator[bytes]:
        """Return an iterator of byte chunks with a ``close()`` method."""
        ...


class SessionState(Enum):
    CREATED = 'created'
    VALIDATING = 'validating'
    RESOLVING = 'resolving'
    SELECTING = 'selecting'
    STREAMING = 'streaming'
    COMPLETED = 'completed'
    FAILED = 'failed'


_TRANSITIONS = {
    SessionState.CREATED: {SessionState.VALIDATING, SessionState.FAILED},
    SessionState.VALIDATING: {SessionState.RESOLVING, SessionState.FAILED},
    SessionState.RESOLVING: {SessionState.SELECTING, SessionState.FAILED},
    SessionState.SELECTING: {SessionState.STREAMING, SessionState.FAILED},
    SessionState.STREAMING: {SessionState.COMPLETED, SessionState.FAILED},
    SessionState.COMPLETED: set(),
    SessionState.FAILED: set(),
}


class RelaySession:
    """Lifecycle of one client request."""

    def __init__(self, video_id):
        self.video_id = video_id
        self.state = SessionState.CREATED
        self.descriptor = None
        self.bytes_sent = 0
        self.error = None

    @classmethod
    def for_descriptor(cls, descriptor, video_id=None):
        """A session for a format chosen by the caller, ready to stream."""
        session = cls(video_id)
        for state in (SessionState.VALIDATING, SessionState.RESOLVING, SessionState.SELECTING):
            session.advance(state)
        session.descriptor = descriptor
        session.advance(SessionState.STREAMING)
        return session

    @property
    def finished(self):
        return self.state in (SessionState.COMPLETED, SessionState.FAILED)

    def advance(self, state):
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal session transition {self.state.value} -> {state.value}")
        logger.debug(f"[{self.video_id}] {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, error):
        self.error = error
        self.advance(SessionState.FAILED)


def select_format(descriptors: Iterable[FormatDescriptor]) -> Optional[FormatDescriptor]:
    """Pick the highest quality descriptor carrying both audio and video.

    Ties go to whichever the resolver listed first.
    """
    best = None
    for descriptor in descriptors:
        if not descriptor.is_audio_and_video:
            continue
        if best is None or descriptor.quality > best.quality:
            best = descriptor
    return best


def _close(source):
    close = getattr(source, 'close', None)
    if close is not None:
        close()


class RelayBody:
    """Response body for one session; closing it tears down the upstream."""

    def __init__(self, source, first, session):
        self.source = source
        self.session = session
        self._chunks = self._pipe(first)

    def __iter__(self):
        return self

    def __next__(self):
        return next(self._chunks)

    def _pipe(self, first):
        session = self.session
        try:
            if first is not None:
                session.bytes_sent += len(first)
                yield first
            for chunk in self.source:
                session.bytes_sent += len(chunk)
                yield chunk
        except Exception as e:
            error = e if isinstance(e, StreamError) else StreamError(detail=str(e))
            logger.error(f"Error in stream for {session.video_id}: {error.detail or error.message}")
            session.fail(error)
            if error is e:
                raise
            raise error from e
        else:
            logger.info(f"Finished streaming {session.video_id}: {session.bytes_sent} bytes")
            session.advance(SessionState.COMPLETED)
        finally:
            _close(self.source)

    def close(self):
        self._chunks.close()
        _close(self.source)
        if self.session.state is SessionState.STREAMING:
            logger.info(f"Client disconnected from {self.session.video_id} after {self.session.bytes_sent} bytes")
            self.session.fail(StreamError('Client disconnected'))


class StreamRelay:
    def __init__(self, resolver: FormatResolver, high_water_mark: int):
        self.resolver = resolver
        self.high_water_mark = high_water_mark

    @staticmethod
    def validate_identifier(video_id) -> bool:
        return bool(video_id) and VIDEO_ID_RE.fullmatch(video_id) is not None

    def resolve_formats(self, video_id) -> List[FormatDescriptor]:
        return list(self.resolver.resolve_formats(video_id))

    select_format = staticmethod(select_format)

    def relay(self, descriptor, session=None):
        """Open the upstream for ``descriptor`` and return the response body.

        The first chunk is read here, before any response headers go out, so
        a source that fails immediately still surfaces as a StreamError the
        caller can report with a status code.
        """
        if session is None:
            session = RelaySession.for_descriptor(descriptor)
        source = self.resolver.open_byte_source(descriptor, high_water_mark=self.high_water_mark)
        try:
            first = next(source, None)
        except Exception as e:
            _close(source)
            if isinstance(e, StreamError):
                raise
            raise StreamError(detail=str(e)) from e
        logger.info(f"Streaming format found. Piping stream for {session.video_id}")
        return RelayBody(source, first, session)

    def start(self, video_id):
        """Validate, resolve, select and open the stream for ``video_id``.

        Returns ``(session, body)``. Raises a RelayError subclass for any
        failure that happens before the body starts.
        """
        session = RelaySession(video_id)
        try:
            session.advance(SessionState.VALIDATING)
            if not self.validate_identifier(video_id):
                logger.info(f"Validation failed for ID: {video_id}")
                raise InvalidIdentifier()

            session.advance(SessionState.RESOLVING)
            descriptors = self.resolve_formats(video_id)

            session.advance(SessionState.SELECTING)
            descriptor = self.select_format(descriptors)
            if descriptor is None:
                logger.error(f"No suitable audio/video format found for {video_id}")
                raise NoSuitableFormat()
            session.descriptor = descriptor
            logger.info(f"Selected format {descriptor.format_id} ({descriptor.quality}p) for {video_id}")

            session.advance(SessionState.STREAMING)
            body = self.relay(descriptor, session)
        except Exception as e:
            session.fail(e)
            raise
        return session, body
