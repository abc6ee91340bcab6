# recipe_import/services/ids.py
import mimetypes
import re
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlsplit

from recipe_import.app.domain.models import SourceKind

_YT_RE = re.compile(
    r"(?:v=|/v/|youtu\.be/|/embed/|/shorts/|/live/)([A-Za-z0-9_-]{11})"
)

_IG_RE = re.compile(
    r"instagram\.com/(?:[A-Za-z0-9_.]+/)?(p|reel|reels|tv)/([A-Za-z0-9_-]+)"
)

# First match wins: platform domains before file extensions before the web default.
# Patterns are matched against the host name only.
_DOMAIN_PATTERNS: tuple[tuple[re.Pattern[str], SourceKind], ...] = (
    (re.compile(r"(?:^|\.)(?:instagram\.com|instagr\.am)$"), SourceKind.INSTAGRAM),
    (re.compile(r"(?:^|\.)(?:youtube\.com|youtube-nocookie\.com|youtu\.be)$"), SourceKind.YOUTUBE),
    (re.compile(r"(?:^|\.)tiktok\.com$"), SourceKind.TIKTOK),
    (re.compile(r"(?:^|\.)(?:x\.com|twitter\.com|threads\.net|threads\.com)$"), SourceKind.SOCIAL_POST),
    (re.compile(r"(?:^|\.)(?:pinterest\.[a-z.]+|pin\.it|facebook\.com|fb\.watch|fb\.com)$"), SourceKind.LINK_BOARD),
    (re.compile(r"(?:^|\.)(?:reddit\.com|redd\.it)$"), SourceKind.DISCUSSION),
)

_EXTENSION_KINDS: dict[str, SourceKind] = {
    ".pdf": SourceKind.PDF,
    ".json": SourceKind.JSON,
    ".xml": SourceKind.XML,
    ".rss": SourceKind.XML,
    ".atom": SourceKind.XML,
    ".txt": SourceKind.PLAIN_TEXT,
    ".md": SourceKind.PLAIN_TEXT,
    ".jpg": SourceKind.IMAGE,
    ".jpeg": SourceKind.IMAGE,
    ".png": SourceKind.IMAGE,
    ".gif": SourceKind.IMAGE,
    ".webp": SourceKind.IMAGE,
    ".heic": SourceKind.IMAGE,
    ".heif": SourceKind.IMAGE,
    ".bmp": SourceKind.IMAGE,
    ".mp4": SourceKind.VIDEO_FILE,
    ".mov": SourceKind.VIDEO_FILE,
    ".m4v": SourceKind.VIDEO_FILE,
    ".webm": SourceKind.VIDEO_FILE,
    ".mkv": SourceKind.VIDEO_FILE,
    ".avi": SourceKind.VIDEO_FILE,
    ".mp3": SourceKind.AUDIO_FILE,
    ".m4a": SourceKind.AUDIO_FILE,
    ".wav": SourceKind.AUDIO_FILE,
    ".aac": SourceKind.AUDIO_FILE,
    ".ogg": SourceKind.AUDIO_FILE,
    ".flac": SourceKind.AUDIO_FILE,
}

# Local references are only ever classified as media files.
_LOCAL_KINDS = frozenset({SourceKind.IMAGE, SourceKind.VIDEO_FILE, SourceKind.AUDIO_FILE})

_FALLBACK_MIME_TYPES = {
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".webp": "image/webp",
    ".m4a": "audio/mp4",
    ".m4v": "video/mp4",
    ".mkv": "video/x-matroska",
    ".md": "text/markdown",
}


def is_local_reference(value: str) -> bool:
    """True for absolute paths, home-relative paths and file:// URIs."""
    stripped = value.strip()
    if stripped.lower().startswith("file://"):
        return True
    if stripped.startswith(("/", "~")):
        return True
    # Windows drive paths such as C:\recipes\page.jpg
    return bool(re.match(r"^[A-Za-z]:[\\/]", stripped))


def to_local_path(value: str) -> Path:
    stripped = value.strip()
    if stripped.lower().startswith("file://"):
        return Path(unquote(urlsplit(stripped).path))
    return Path(stripped).expanduser()


def _split_url(value: str):
    stripped = value.strip()
    # Scheme-less input such as "instagram.com/p/abc" still has a host
    return urlsplit(stripped if "://" in stripped else f"//{stripped}")


def _host(value: str) -> str:
    try:
        return (_split_url(value).hostname or "").lower()
    except ValueError:
        return ""


def _path_extension(value: str) -> str:
    if is_local_reference(value):
        return to_local_path(value).suffix.lower()
    try:
        path = _split_url(value).path
    except ValueError:
        return ""
    return Path(unquote(path)).suffix.lower()


def detect_source_kind(url: str) -> SourceKind:
    """Classify a URL or local path. Total: unknown inputs map to ``WEB``."""
    if not isinstance(url, str) or not url.strip():
        return SourceKind.WEB

    if is_local_reference(url):
        kind = _EXTENSION_KINDS.get(_path_extension(url))
        return kind if kind in _LOCAL_KINDS else SourceKind.WEB

    host = _host(url)
    for pattern, kind in _DOMAIN_PATTERNS:
        if host and pattern.search(host):
            return kind

    return _EXTENSION_KINDS.get(_path_extension(url), SourceKind.WEB)


def extract_youtube_video_id(url: str) -> Optional[str]:
    m = _YT_RE.search(url)
    return m.group(1) if m else None


def extract_instagram_shortcode(url: str) -> Optional[tuple[str, bool]]:
    """Return ``(shortcode, is_reel)`` for Instagram post/reel URLs."""
    m = _IG_RE.search(url)
    if not m:
        return None
    return m.group(2), m.group(1) in ("reel", "reels")


def guess_mime_type(path_or_url: str) -> Optional[str]:
    extension = _path_extension(path_or_url)
    if extension in _FALLBACK_MIME_TYPES:
        return _FALLBACK_MIME_TYPES[extension]
    mime_type, _ = mimetypes.guess_type(f"file{extension}")
    return mime_type
