import logging
import threading
from collections import deque

from .errors import StreamError

logger = logging.getLogger(__name__)


class BufferedPipe:
    """Byte-bounded read-ahead buffer between an upstream and a consumer.

    A daemon thread pulls chunks from ``chunks`` and queues them until
    ``high_water_mark`` bytes are waiting, then blocks until the consumer
    drains some. An empty buffer always admits the next chunk, so a single
    chunk larger than the mark cannot stall the pipe.

    Iterating yields chunks in upstream order. An upstream failure is raised
    as :class:`StreamError` once the chunks read before it have been
    consumed. ``close()`` stops the reader and calls ``on_close`` exactly
    once. The hook must make a reader blocked in the upstream return, for
    example by shutting down its socket.
    """

    def __init__(self, chunks, high_water_mark, on_close=None):
        if high_water_mark <= 0:
            raise ValueError('high_water_mark must be positive')
        self._chunks = chunks
        self.high_water_mark = high_water_mark
        self._on_close = on_close
        self._buffer = deque()
        self._buffered = 0
        self._done = False
        self._closed = False
        self._error = None
        self._cond = threading.Condition()
        self._reader = threading.Thread(target=self._fill, name='buffered-pipe', daemon=True)
        self._reader.start()

    @property
    def buffered(self):
        with self._cond:
            return self._buffered

    @property
    def closed(self):
        return self._closed

    def _fill(self):
        try:
            for chunk in self._chunks:
                if not chunk:
                    continue
                with self._cond:
                    while self._buffer and self._buffered >= self.high_water_mark and not self._closed:
                        self._cond.wait()
                    if self._closed:
                        return
                    self._buffer.append(chunk)
                    self._buffered += len(chunk)
                    self._cond.notify_all()
        except Exception as e:
            with self._cond:
                if not self._closed:
                    self._error = e
        finally:
            with self._cond:
                self._done = True
                self._cond.notify_all()

    def __iter__(self):
        return self

    def __next__(self):
        with self._cond:
            while not self._buffer and not self._done and not self._closed:
                self._cond.wait()
            if self._closed:
                raise StopIteration
            if self._buffer:
                chunk = self._buffer.popleft()
                self._buffered -= len(chunk)
                self._cond.notify_all()
                return chunk
            error, self._error = self._error, None
        if error is not None:
            logger.error(f"Upstream read failed: {error}")
            raise StreamError(detail=str(error)) from error
        raise StopIteration

    def close(self):
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._buffer.clear()
            self._buffered = 0
            self._cond.notify_all()
        if self._on_close is not None:
            try:
                self._on_close()
            except Exception as e:
                logger.warning(f"Error closing upstream: {e}")

    def join(self, timeout=None):
        """Wait for the reader thread to exit. Returns True if it did."""
        self._reader.join(timeout)
        return not self._reader.is_alive()
