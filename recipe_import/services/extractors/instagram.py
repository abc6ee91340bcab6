from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import replace
from typing import Optional

import httpx

from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.fallback import Technique, fill_missing, merge_in_order
from recipe_import.services.fetcher import (
    DESKTOP_UA,
    MOBILE_UA,
    OEmbedData,
    extract_meta_tags,
    fetch_html,
    fetch_oembed,
    html_to_text,
    probe_media,
    unescape_json_url,
)
from recipe_import.services.ids import extract_instagram_shortcode

logger = logging.getLogger(__name__)

PLATFORM = SourceKind.INSTAGRAM
EMBED_CAPTION_MIN_CHARS = 50
EMBED_CAPTION_MAX_CHARS = 5000

_VIDEO_JSON_PATTERNS = (
    re.compile(r'"video_url"\s*:\s*"([^"]+)"'),
    re.compile(r'"video_versions"\s*:\s*\[.*?"url"\s*:\s*"([^"]+)"', re.DOTALL),
)


def _embed_url(shortcode: str) -> str:
    return f"https://www.instagram.com/p/{shortcode}/embed/captioned/"


def _is_expiring_thumbnail(url: Optional[str]) -> bool:
    # Signed CDN links expire quickly and often answer with HTML instead of an image
    return bool(url) and "cdninstagram.com" in url


def parse_oembed(oembed: Optional[OEmbedData]) -> Optional[PlatformContent]:
    if oembed is None:
        return None
    return PlatformContent(
        platform=PLATFORM,
        title=oembed.title,
        author=oembed.author,
        thumbnail_url=oembed.thumbnail,
    )


def parse_page(html: Optional[str]) -> Optional[PlatformContent]:
    if not html:
        return None

    og = extract_meta_tags(html)
    video_url = None
    og_video = og.get("og:video") or og.get("og:video:secure_url") or og.get("twitter:player:stream")
    if og_video and ".mp4" in og_video:
        video_url = og_video.replace("&amp;", "&")

    if not video_url:
        for pattern in _VIDEO_JSON_PATTERNS:
            m = pattern.search(html)
            if m:
                video_url = unescape_json_url(m.group(1))
                break

    return PlatformContent(
        platform=PLATFORM,
        title=og.get("og:title"),
        caption_text=og.get("og:description"),
        thumbnail_url=og.get("og:image"),
        video_url=video_url,
    )


def parse_embed(html: Optional[str]) -> Optional[PlatformContent]:
    if not html:
        return None

    caption = html_to_text(html)
    if len(caption) <= EMBED_CAPTION_MIN_CHARS:
        caption = None
    else:
        caption = caption[:EMBED_CAPTION_MAX_CHARS]

    return PlatformContent(
        platform=PLATFORM,
        caption_text=caption,
        thumbnail_url=extract_meta_tags(html).get("og:image"),
    )


async def _ddinstagram_page(client: httpx.AsyncClient, shortcode: str) -> Optional[PlatformContent]:
    html = await fetch_html(client, f"https://ddinstagram.com/reel/{shortcode}/", DESKTOP_UA)
    if not html:
        return None

    og = extract_meta_tags(html)
    video_url = og.get("og:video") or og.get("og:video:secure_url")
    if video_url and not (".mp4" in video_url or "instagram" in video_url):
        video_url = None

    return PlatformContent(
        platform=PLATFORM,
        video_url=video_url.replace("&amp;", "&") if video_url else None,
        thumbnail_url=og.get("og:image"),
    )


async def _ddinstagram_direct(client: httpx.AsyncClient, shortcode: str) -> Optional[PlatformContent]:
    probe = await probe_media(client, f"https://d.ddinstagram.com/reel/{shortcode}/", MOBILE_UA)
    if probe is None or "video" not in probe.content_type:
        return None
    # The final redirect target is the video itself
    return PlatformContent(platform=PLATFORM, video_url=probe.final_url)


async def _none() -> None:
    return None


async def extract_instagram(client: httpx.AsyncClient, url: str) -> PlatformContent:
    content = PlatformContent(platform=PLATFORM)
    shortcode_info = extract_instagram_shortcode(url)
    shortcode = shortcode_info[0] if shortcode_info else None

    page_html, oembed, embed_html = await asyncio.gather(
        fetch_html(client, url, MOBILE_UA),
        fetch_oembed(client, url, PLATFORM),
        fetch_html(client, _embed_url(shortcode), DESKTOP_UA) if shortcode else _none(),
    )

    embed = parse_embed(embed_html)
    content = merge_in_order(content, [parse_oembed(oembed), parse_page(page_html), embed])

    # The captioned embed carries the full caption; og:description is a truncated teaser
    if embed and embed.caption_text:
        content = replace(content, caption_text=embed.caption_text)

    expiring_thumbnail = content.thumbnail_url if _is_expiring_thumbnail(content.thumbnail_url) else None
    if expiring_thumbnail:
        content = replace(content, thumbnail_url=None)

    if shortcode:
        # Instagram blocks most direct scraping; mirrors only for what is still missing
        content = await fill_missing(
            content,
            "video_url",
            [
                Technique("instagram:ddinstagram-page", lambda: _ddinstagram_page(client, shortcode)),
                Technique("instagram:ddinstagram-direct", lambda: _ddinstagram_direct(client, shortcode)),
            ],
            label=url,
        )

    content = content.merge(
        PlatformContent(platform=PLATFORM, thumbnail_url=embed.thumbnail_url if embed else None)
    )
    content = content.merge(PlatformContent(platform=PLATFORM, thumbnail_url=expiring_thumbnail))
    if shortcode:
        content = content.merge(
            PlatformContent(
                platform=PLATFORM,
                thumbnail_url=f"https://www.instagram.com/p/{shortcode}/media/?size=l",
            )
        )

    return content
