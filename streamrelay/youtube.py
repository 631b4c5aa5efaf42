import logging
import random

import requests
import yt_dlp

from .errors import ResolutionError, StreamError
from .models import FormatDescriptor
from .pipe import BufferedPipe

logger = logging.getLogger(__name__)

WATCH_URL = 'https://www.youtube.com/watch?v={video_id}'

# Rotating user agents to prevent bot detection
USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0',
    'Mozilla/5.0 (iPhone; CPU iPhone OS 16_6 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1'
]

# Only formats served as a single plain HTTP body can be piped through
DIRECT_PROTOCOLS = ('http', 'https')


def get_random_user_agent():
    return random.choice(USER_AGENTS)


def get_ytdl_options():
    """Get yt-dlp options with anti-bot measures"""
    return {
        'quiet': True,
        'no_warnings': True,
        'noplaylist': True,
        'extract_flat': False,
        'referer': 'https://www.youtube.com/',
        'http_headers': {
            'User-Agent': get_random_user_agent(),
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
            'Sec-Fetch-Mode': 'navigate',
        },
        'cookiefile': None,  # Explicitly disable cookies
        'extractor_args': {
            'youtube': {
                'skip': ['hls', 'dash', 'translated_subs']
            }
        }
    }


def is_streamable(fmt):
    url = fmt.get('url')
    if not url or 'manifest.googlevideo.com' in url:
        return False
    return (fmt.get('protocol') or 'https') in DIRECT_PROTOCOLS


def close_upstream(upstream):
    """Close a streamed response, waking any thread blocked reading it.

    The socket is shut down first: urllib3 only releases the response once
    the reader holding it returns from recv.
    """
    upstream.raw.shutdown()
    upstream.close()


class YtDlpResolver:
    """Resolve YouTube formats with yt-dlp and fetch their bytes with requests."""

    def __init__(self, session=None, chunk_size=64 * 1024, connect_timeout=10.0, read_timeout=30.0):
        self.session = session or requests.Session()
        self.chunk_size = chunk_size
        self.timeout = (connect_timeout, read_timeout)

    @classmethod
    def from_config(cls, config):
        return cls(
            chunk_size=config.chunk_size,
            connect_timeout=config.upstream_connect_timeout,
            read_timeout=config.upstream_read_timeout,
        )

    def extract_info(self, video_id):
        with yt_dlp.YoutubeDL(get_ytdl_options()) as ydl:
            return ydl.extract_info(WATCH_URL.format(video_id=video_id), download=False)

    def resolve_formats(self, video_id):
        try:
            info = self.extract_info(video_id)
        except yt_dlp.utils.YoutubeDLError as e:
            logger.error(f"Error fetching video info for {video_id}: {e}")
            raise ResolutionError(str(e)) from e

        if not isinstance(info, dict) or not isinstance(info.get('formats'), list):
            logger.error(f"Malformed metadata for {video_id}")
            raise ResolutionError('Malformed metadata response')

        formats = [FormatDescriptor.from_ytdlp(fmt) for fmt in info['formats'] if is_streamable(fmt)]
        logger.info(f"Resolved {len(formats)} direct formats for {video_id}")
        return formats

    def open_byte_source(self, descriptor, high_water_mark):
        headers = dict(descriptor.http_headers)
        headers.setdefault('User-Agent', get_random_user_agent())
        try:
            upstream = self.session.get(descriptor.url, headers=headers, stream=True, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Could not open upstream for format {descriptor.format_id}: {e}")
            raise StreamError(detail=str(e)) from e

        try:
            upstream.raise_for_status()
        except requests.exceptions.HTTPError as e:
            upstream.close()
            logger.error(f"Upstream refused format {descriptor.format_id}: {e}")
            raise StreamError(detail=str(e)) from e

        chunks = upstream.iter_content(chunk_size=self.chunk_size)
        return BufferedPipe(chunks, high_water_mark, on_close=lambda: close_upstream(upstream))
