"""
Short-text social posts: X/Twitter and Threads.

X is read through the public fxtwitter/vxtwitter JSON mirrors with the post
page as the last resort. Threads has no public API, so the page is scraped
with both client identities.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional

import httpx

from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.fallback import Technique, first_success
from recipe_import.services.fetcher import (
    DESKTOP_UA,
    MOBILE_UA,
    clean_string,
    extract_meta_tags,
    fetch_html,
    fetch_json,
    fetch_oembed,
    html_to_text,
    unescape_json_url,
)

logger = logging.getLogger(__name__)

PLATFORM = SourceKind.SOCIAL_POST
BODY_TEXT_MIN_CHARS = 50
BODY_TEXT_MAX_CHARS = 5000

_X_HOST_PATTERN = re.compile(r"^https?://(?:www\.|mobile\.)?(?:x|twitter)\.com", re.IGNORECASE)
_THREADS_HOST_PATTERN = re.compile(r"threads\.(?:net|com)", re.IGNORECASE)
_THREADS_VIDEO_PATTERNS = (
    re.compile(r'"video_url"\s*:\s*"([^"]+)"'),
    re.compile(r'"playback_url"\s*:\s*"([^"]+)"'),
)


def is_threads_url(url: str) -> bool:
    return bool(_THREADS_HOST_PATTERN.search(url))


def _post_title(name: Optional[str]) -> str:
    return f"{name}'s post" if name else "X Post"


def mirror_url(url: str, api_host: str) -> Optional[str]:
    if not _X_HOST_PATTERN.search(url):
        return None
    return _X_HOST_PATTERN.sub(f"https://{api_host}", url, count=1)


def parse_fxtwitter(data: Any) -> Optional[PlatformContent]:
    tweet = data.get("tweet") if isinstance(data, dict) else None
    if not isinstance(tweet, dict):
        return None

    author = tweet.get("author") or {}
    name = clean_string(author.get("name"))
    media = tweet.get("media") or {}
    videos = media.get("videos") or []
    photos = media.get("photos") or []
    first_photo = clean_string(photos[0].get("url")) if photos else None

    video_url = thumbnail_url = None
    if videos:
        video_url = clean_string(videos[0].get("url"))
        thumbnail_url = clean_string(videos[0].get("thumbnail_url")) or first_photo
    else:
        thumbnail_url = first_photo

    return PlatformContent(
        platform=PLATFORM,
        caption_text=clean_string(tweet.get("text")),
        author=name or clean_string(author.get("screen_name")),
        title=_post_title(name),
        video_url=video_url,
        thumbnail_url=thumbnail_url,
    )


def parse_vxtwitter(data: Any) -> Optional[PlatformContent]:
    if not isinstance(data, dict) or not clean_string(data.get("text")):
        return None

    name = clean_string(data.get("user_name"))
    video_url = thumbnail_url = None
    media_urls = data.get("mediaURLs") or []
    if media_urls:
        video = next(
            (
                m for m in data.get("media_extended") or []
                if isinstance(m, dict) and m.get("type") == "video" and m.get("url")
            ),
            None,
        )
        if video:
            video_url = clean_string(video.get("url"))
            thumbnail_url = clean_string(video.get("thumbnail_url"))
        else:
            thumbnail_url = clean_string(media_urls[0])

    return PlatformContent(
        platform=PLATFORM,
        caption_text=clean_string(data.get("text")),
        author=name,
        title=_post_title(name),
        video_url=video_url,
        thumbnail_url=thumbnail_url,
    )


def parse_x_page(html: Optional[str]) -> Optional[PlatformContent]:
    if not html:
        return None
    og = extract_meta_tags(html)
    og_video = og.get("og:video") or og.get("twitter:player:stream")
    return PlatformContent(
        platform=PLATFORM,
        title=og.get("og:title"),
        caption_text=og.get("og:description"),
        thumbnail_url=og.get("og:image"),
        video_url=og_video if og_video and ".mp4" in og_video else None,
    )


async def extract_x(client: httpx.AsyncClient, url: str) -> PlatformContent:
    async def from_mirror(api_host: str, parse) -> Optional[PlatformContent]:
        endpoint = mirror_url(url, api_host)
        return parse(await fetch_json(client, endpoint)) if endpoint else None

    async def from_page() -> Optional[PlatformContent]:
        return parse_x_page(await fetch_html(client, url, DESKTOP_UA))

    content = await first_success(
        [
            Technique("x:fxtwitter", lambda: from_mirror("api.fxtwitter.com", parse_fxtwitter)),
            Technique("x:vxtwitter", lambda: from_mirror("api.vxtwitter.com", parse_vxtwitter)),
            Technique("x:page", from_page),
        ],
        label=url,
    )
    return content or PlatformContent(platform=PLATFORM)


def parse_threads_page(html: Optional[str]) -> Optional[PlatformContent]:
    if not html:
        return None

    og = extract_meta_tags(html)
    caption = og.get("og:description") or og.get("description")
    if not caption:
        body = html_to_text(html)
        if len(body) > BODY_TEXT_MIN_CHARS:
            caption = body[:BODY_TEXT_MAX_CHARS]

    video_url = og.get("og:video") or og.get("og:video:secure_url")
    if video_url and (".mp4" in video_url or "video" in video_url):
        video_url = video_url.replace("&amp;", "&")
    else:
        video_url = None
        for pattern in _THREADS_VIDEO_PATTERNS:
            m = pattern.search(html)
            if m:
                video_url = unescape_json_url(m.group(1))
                break

    return PlatformContent(
        platform=PLATFORM,
        title=og.get("og:title") or og.get("title"),
        caption_text=caption,
        thumbnail_url=og.get("og:image"),
        video_url=video_url,
    )


async def extract_threads(client: httpx.AsyncClient, url: str) -> PlatformContent:
    mobile_html, desktop_html = await asyncio.gather(
        fetch_html(client, url, MOBILE_UA),
        fetch_html(client, url, DESKTOP_UA),
    )

    content = parse_threads_page(desktop_html or mobile_html) or PlatformContent(platform=PLATFORM)

    if not content.caption_text:
        oembed = await fetch_oembed(client, url, PLATFORM)
        if oembed:
            content = content.merge(
                PlatformContent(
                    platform=PLATFORM,
                    title=oembed.title,
                    author=oembed.author,
                    thumbnail_url=oembed.thumbnail,
                )
            )

    return content


async def extract_social_post(client: httpx.AsyncClient, url: str) -> PlatformContent:
    if is_threads_url(url):
        return await extract_threads(client, url)
    return await extract_x(client, url)
