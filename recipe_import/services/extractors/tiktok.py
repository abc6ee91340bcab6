from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import replace
from typing import Any, Optional
from urllib.parse import quote

import httpx

from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.fallback import Technique, fill_missing, first_success, merge_in_order
from recipe_import.services.fetcher import (
    MOBILE_UA,
    OEmbedData,
    clean_string,
    extract_meta_tags,
    fetch_html,
    fetch_json,
    fetch_oembed,
    safe_json_loads,
    unescape_json_url,
)

logger = logging.getLogger(__name__)

PLATFORM = SourceKind.TIKTOK

UNIVERSAL_DATA_PATTERN = re.compile(
    r'<script[^>]*id="__UNIVERSAL_DATA_FOR_REHYDRATION__"[^>]*>([\s\S]*?)</script>',
    re.IGNORECASE,
)
SIGI_STATE_PATTERN = re.compile(
    r'<script[^>]*id="SIGI_STATE"[^>]*>([\s\S]*?)</script>',
    re.IGNORECASE,
)
VIDEO_ADDRESS_PATTERNS = (
    re.compile(r'"playAddr"\s*:\s*"([^"]+)"'),
    re.compile(r'"downloadAddr"\s*:\s*"([^"]+)"'),
    re.compile(r"<video[^>]*src=[\"']([^\"']+)[\"']", re.IGNORECASE),
)


def _longest(*candidates: Optional[str]) -> Optional[str]:
    # Ties keep the earliest candidate so the result never depends on fetch order
    best: Optional[str] = None
    for candidate in candidates:
        if candidate and (best is None or len(candidate) > len(best)):
            best = candidate
    return best


def _rehydration_item(html: str) -> Optional[dict]:
    m = UNIVERSAL_DATA_PATTERN.search(html)
    data = safe_json_loads(m.group(1)) if m else None
    if not isinstance(data, dict):
        return None
    item = (
        data.get("__DEFAULT_SCOPE__", {})
        .get("webapp.video-detail", {})
        .get("itemInfo", {})
        .get("itemStruct")
    )
    return item if isinstance(item, dict) else None


def _sigi_item(html: str) -> Optional[dict]:
    m = SIGI_STATE_PATTERN.search(html)
    data = safe_json_loads(m.group(1)) if m else None
    items = data.get("ItemModule") if isinstance(data, dict) else None
    if not isinstance(items, dict) or not items:
        return None
    first = next(iter(items.values()))
    return first if isinstance(first, dict) else None


def _item_content(item: Optional[dict]) -> Optional[PlatformContent]:
    if not item:
        return None
    video: Any = item.get("video") or {}
    author: Any = item.get("author") or {}
    return PlatformContent(
        platform=PLATFORM,
        video_url=clean_string(video.get("playAddr")) or clean_string(video.get("downloadAddr")),
        caption_text=clean_string(item.get("desc")),
        author=clean_string(author.get("nickname")) if isinstance(author, dict) else None,
    )


def parse_oembed(oembed: Optional[OEmbedData]) -> Optional[PlatformContent]:
    if oembed is None:
        return None
    # TikTok's oEmbed title is the post caption
    return PlatformContent(
        platform=PLATFORM,
        title=oembed.title,
        caption_text=oembed.title,
        author=oembed.author,
        thumbnail_url=oembed.thumbnail,
    )


def parse_page(html: Optional[str]) -> Optional[PlatformContent]:
    if not html:
        return None
    og = extract_meta_tags(html)
    return PlatformContent(
        platform=PLATFORM,
        title=og.get("og:title"),
        caption_text=og.get("og:description"),
        thumbnail_url=og.get("og:image"),
    )


def video_techniques(html: Optional[str]) -> list[Technique[PlatformContent]]:
    """First-party page techniques, most structured first."""

    async def rehydration() -> Optional[PlatformContent]:
        return _item_content(_rehydration_item(html)) if html else None

    async def address_regex() -> Optional[PlatformContent]:
        if not html:
            return None
        for pattern in VIDEO_ADDRESS_PATTERNS:
            m = pattern.search(html)
            if m:
                return PlatformContent(platform=PLATFORM, video_url=unescape_json_url(m.group(1)))
        return None

    async def sigi_state() -> Optional[PlatformContent]:
        return _item_content(_sigi_item(html)) if html else None

    return [
        Technique("tiktok:rehydration-data", rehydration),
        Technique("tiktok:address-regex", address_regex),
        Technique("tiktok:sigi-state", sigi_state),
    ]


async def _tikwm(client: httpx.AsyncClient, url: str) -> Optional[PlatformContent]:
    data = await fetch_json(client, f"https://tikwm.com/api/?url={quote(url, safe='')}")
    payload = data.get("data") if isinstance(data, dict) else None
    if not isinstance(payload, dict) or not clean_string(payload.get("play")):
        return None

    author = payload.get("author") if isinstance(payload.get("author"), dict) else {}
    return PlatformContent(
        platform=PLATFORM,
        video_url=clean_string(payload.get("play")),
        caption_text=clean_string(payload.get("title")),
        thumbnail_url=clean_string(payload.get("cover")),
        author=clean_string(author.get("nickname")),
    )


async def extract_tiktok(client: httpx.AsyncClient, url: str) -> PlatformContent:
    oembed, page_html = await asyncio.gather(
        fetch_oembed(client, url, PLATFORM),
        fetch_html(client, url, MOBILE_UA),
    )

    oembed_part = parse_oembed(oembed)
    page_part = parse_page(page_html)
    item_part = await fill_missing(
        PlatformContent(platform=PLATFORM),
        "video_url",
        video_techniques(page_html),
        label=url,
    )

    content = merge_in_order(PlatformContent(platform=PLATFORM), [oembed_part, page_part, item_part])
    caption = _longest(
        oembed_part.caption_text if oembed_part else None,
        page_part.caption_text if page_part else None,
        item_part.caption_text,
    )
    if caption:
        content = replace(content, caption_text=caption)

    if not content.video_url:
        mirror = await first_success([Technique("tiktok:tikwm", lambda: _tikwm(client, url))], label=url)
        content = content.merge(mirror)

    return content
