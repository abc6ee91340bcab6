from __future__ import annotations

import html as html_lib
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx

from recipe_import.app.domain.models import SourceKind

logger = logging.getLogger(__name__)

MOBILE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
DEFAULT_STRUCTURED_DATA_MAX_CHARS = 8000

_META_TAG_NAMES = r"og:[^\"']+|twitter:[^\"']+|description"
_META_FORWARD_PATTERN = re.compile(
    r"<meta[^>]*(?:property|name)=[\"'](" + _META_TAG_NAMES + r")[\"'][^>]*content=[\"']([^\"']*)[\"']",
    re.IGNORECASE,
)
_META_REVERSE_PATTERN = re.compile(
    r"<meta[^>]*content=[\"']([^\"']*)[\"'][^>]*(?:property|name)=[\"'](" + _META_TAG_NAMES + r")[\"']",
    re.IGNORECASE,
)
_TITLE_PATTERN = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)
_NOISE_BLOCK_PATTERN = re.compile(
    r"<(script|style|nav|header|footer|noscript)\b[^>]*>[\s\S]*?</\1>",
    re.IGNORECASE,
)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_LD_JSON_PATTERN = re.compile(
    r"<script[^>]*type=[\"']application/ld\+json[\"'][^>]*>([\s\S]*?)</script>",
    re.IGNORECASE,
)
_RECIPE_HINT_PATTERN = re.compile(r"recipe|ingredient", re.IGNORECASE)
_JSON_ESCAPE_PATTERN = re.compile(r"\\u([0-9a-fA-F]{4})")

# InvalidURL is not an HTTPError subclass.
FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass(frozen=True)
class OEmbedData:
    title: Optional[str] = None
    author: Optional[str] = None
    thumbnail: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class MediaProbe:
    final_url: str
    content_type: str
    content_length: Optional[int]


def clean_string(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def safe_numeric(value: object, default: int | float = 0) -> int | float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


def safe_json_loads(text: str | bytes | None) -> Any:
    """Parse JSON, returning ``None`` instead of raising."""
    if not text:
        return None
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return None


def decode_html_entities(text: str) -> str:
    return html_lib.unescape(text)


def unescape_json_url(value: str) -> str:
    """Undo the escaping used for URLs embedded in inline JSON blobs."""
    decoded = _JSON_ESCAPE_PATTERN.sub(lambda m: chr(int(m.group(1), 16)), value)
    return decoded.replace("\\/", "/").replace("\\", "").replace("&amp;", "&")


def extract_meta_tags(html: str) -> dict[str, str]:
    """Collect Open Graph, Twitter card and description meta tags plus <title>.

    Both attribute orders are accepted (``property`` before ``content`` and
    the reverse).
    """
    tags: dict[str, str] = {}
    if not html:
        return tags

    for m in _META_FORWARD_PATTERN.finditer(html):
        tags[m.group(1).lower()] = decode_html_entities(m.group(2))
    for m in _META_REVERSE_PATTERN.finditer(html):
        tags.setdefault(m.group(2).lower(), decode_html_entities(m.group(1)))

    title_match = _TITLE_PATTERN.search(html)
    if title_match:
        title = decode_html_entities(title_match.group(1)).strip()
        if title:
            tags["title"] = title

    return tags


def html_to_text(html: str) -> str:
    if not html:
        return ""
    text = _NOISE_BLOCK_PATTERN.sub(" ", html)
    text = _TAG_PATTERN.sub(" ", text)
    text = decode_html_entities(text).replace("\xa0", " ")
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def extract_structured_data(
    html: str,
    max_chars: int = DEFAULT_STRUCTURED_DATA_MAX_CHARS,
) -> Optional[str]:
    """Return the first recipe-looking ld+json block, serialized and capped."""
    if not html:
        return None

    for m in _LD_JSON_PATTERN.finditer(html):
        parsed = safe_json_loads(m.group(1).strip())
        if parsed is None:
            continue
        serialized = json.dumps(parsed, ensure_ascii=False)
        if _RECIPE_HINT_PATTERN.search(serialized):
            return serialized[:max_chars]

    return None


def _browser_headers(user_agent: str) -> dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": HTML_ACCEPT,
        "Accept-Language": "en-US,en;q=0.9",
    }


async def fetch_html(
    client: httpx.AsyncClient,
    url: str,
    user_agent: str = MOBILE_UA,
) -> Optional[str]:
    """GET a page with the given client identity. Never raises."""
    try:
        response = await client.get(url, headers=_browser_headers(user_agent), follow_redirects=True)
    except FETCH_ERRORS as error:
        logger.debug("HTML fetch failed for %s: %s", url, error)
        return None

    if not response.is_success:
        logger.debug("HTML fetch for %s returned HTTP %d", url, response.status_code)
        return None
    return response.text


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    """GET and decode a JSON document. Never raises."""
    request_headers = {"Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    try:
        response = await client.get(url, headers=request_headers, follow_redirects=True)
    except FETCH_ERRORS as error:
        logger.debug("JSON fetch failed for %s: %s", url, error)
        return None

    if not response.is_success:
        logger.debug("JSON fetch for %s returned HTTP %d", url, response.status_code)
        return None
    return safe_json_loads(response.content)


async def fetch_bytes(
    client: httpx.AsyncClient,
    url: str,
    user_agent: str = DESKTOP_UA,
    max_bytes: Optional[int] = None,
) -> Optional[bytes]:
    """GET a small binary resource (thumbnails, text files). Never raises."""
    try:
        async with client.stream(
            "GET", url, headers={"User-Agent": user_agent}, follow_redirects=True
        ) as response:
            if not response.is_success:
                return None
            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if max_bytes is not None and received > max_bytes:
                    logger.debug("Binary fetch for %s exceeded %d bytes", url, max_bytes)
                    return None
                chunks.append(chunk)
            return b"".join(chunks)
    except FETCH_ERRORS as error:
        logger.debug("Binary fetch failed for %s: %s", url, error)
        return None


async def probe_media(
    client: httpx.AsyncClient,
    url: str,
    user_agent: str = MOBILE_UA,
) -> Optional[MediaProbe]:
    """HEAD a media URL, following redirects. Never raises."""
    try:
        response = await client.head(url, headers={"User-Agent": user_agent}, follow_redirects=True)
    except FETCH_ERRORS as error:
        logger.debug("HEAD failed for %s: %s", url, error)
        return None

    if not response.is_success:
        return None

    length_header = response.headers.get("content-length")
    content_length = int(length_header) if length_header and length_header.isdigit() else None
    return MediaProbe(
        final_url=str(response.url),
        content_type=response.headers.get("content-type", ""),
        content_length=content_length,
    )


def _oembed_endpoints(url: str, kind: SourceKind) -> list[str]:
    encoded = quote(url, safe="")
    endpoints: list[str] = []

    if kind is SourceKind.YOUTUBE:
        endpoints.append(f"https://www.youtube.com/oembed?url={encoded}&format=json")
    elif kind is SourceKind.TIKTOK:
        endpoints.append(f"https://www.tiktok.com/oembed?url={encoded}")
    elif kind is SourceKind.INSTAGRAM:
        endpoints.append(f"https://api.instagram.com/oembed/?url={encoded}&omitscript=true")

    endpoints.append(f"https://noembed.com/embed?url={encoded}")
    return endpoints


async def fetch_oembed(
    client: httpx.AsyncClient,
    url: str,
    kind: SourceKind,
) -> Optional[OEmbedData]:
    """Try the platform oEmbed endpoint, then the universal noembed fallback."""
    for endpoint in _oembed_endpoints(url, kind):
        data = await fetch_json(client, endpoint)
        if not isinstance(data, dict) or data.get("error"):
            continue
        return OEmbedData(
            title=clean_string(data.get("title")),
            author=clean_string(data.get("author_name")) or clean_string(data.get("author")),
            thumbnail=clean_string(data.get("thumbnail_url")),
            description=clean_string(data.get("description")),
        )
    return None


def find_best_thumbnail(thumbnails: list | None) -> str | None:
    """Pick the highest preference/resolution entry from a thumbnail list."""
    if not isinstance(thumbnails, list):
        return None

    scored_thumbnails = [
        (_score_thumbnail(entry), clean_string(entry.get("url")))
        for entry in thumbnails
        if isinstance(entry, dict) and clean_string(entry.get("url"))
    ]

    if not scored_thumbnails:
        return None

    scored_thumbnails.sort(reverse=True, key=lambda x: x[0])
    return scored_thumbnails[0][1]


def _score_thumbnail(entry: dict) -> tuple[int | float, int | float, int | float]:
    return (
        safe_numeric(entry.get("preference")),
        safe_numeric(entry.get("width")),
        safe_numeric(entry.get("height")),
    )
