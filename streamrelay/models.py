from dataclasses import dataclass, field
from typing import Optional


def _has_track(codec):
    # yt-dlp reports an absent track as the string 'none'
    return bool(codec) and codec != 'none'


@dataclass(frozen=True)
class FormatDescriptor:
    """One encoding of a video as reported by the resolver."""

    format_id: str
    url: str
    ext: Optional[str] = None
    has_audio: bool = False
    has_video: bool = False
    quality: int = 0
    protocol: Optional[str] = None
    filesize: Optional[int] = None
    http_headers: dict = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_audio_and_video(self):
        return self.has_audio and self.has_video

    @classmethod
    def from_ytdlp(cls, fmt):
        """Build a descriptor from a single entry of yt-dlp's ``formats`` list."""
        return cls(
            format_id=str(fmt.get('format_id')),
            url=fmt.get('url'),
            ext=fmt.get('ext'),
            has_audio=_has_track(fmt.get('acodec')),
            has_video=_has_track(fmt.get('vcodec')),
            quality=fmt.get('height') or 0,
            protocol=fmt.get('protocol'),
            filesize=fmt.get('filesize') or fmt.get('filesize_approx'),
            http_headers=dict(fmt.get('http_headers') or {}),
        )
