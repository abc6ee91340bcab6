from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.fallback import merge_in_order
from recipe_import.services.fetcher import (
    DEFAULT_STRUCTURED_DATA_MAX_CHARS,
    DESKTOP_UA,
    OEmbedData,
    extract_meta_tags,
    extract_structured_data,
    fetch_html,
    fetch_oembed,
    html_to_text,
)

logger = logging.getLogger(__name__)

PLATFORM = SourceKind.LINK_BOARD
PAGE_TEXT_MIN_CHARS = 100
PAGE_TEXT_MAX_CHARS = 10000


def parse_page(html: Optional[str], structured_data_max_chars: int) -> Optional[PlatformContent]:
    if not html:
        return None

    og = extract_meta_tags(html)
    video_url = og.get("og:video") or og.get("og:video:secure_url")
    page_text = html_to_text(html)

    return PlatformContent(
        platform=PLATFORM,
        title=og.get("og:title") or og.get("title"),
        caption_text=og.get("og:description"),
        thumbnail_url=og.get("og:image"),
        video_url=video_url.replace("&amp;", "&") if video_url and ".mp4" in video_url else None,
        structured_data=extract_structured_data(html, structured_data_max_chars),
        # Pins usually link out to the source site, whose text is the recipe
        page_text=page_text[:PAGE_TEXT_MAX_CHARS] if len(page_text) > PAGE_TEXT_MIN_CHARS else None,
    )


def parse_oembed(oembed: Optional[OEmbedData]) -> Optional[PlatformContent]:
    if oembed is None:
        return None
    return PlatformContent(
        platform=PLATFORM,
        title=oembed.title,
        author=oembed.author,
        thumbnail_url=oembed.thumbnail,
    )


async def extract_link_board(
    client: httpx.AsyncClient,
    url: str,
    structured_data_max_chars: int = DEFAULT_STRUCTURED_DATA_MAX_CHARS,
) -> PlatformContent:
    """Pinterest pins and Facebook posts."""
    html, oembed = await asyncio.gather(
        fetch_html(client, url, DESKTOP_UA),
        fetch_oembed(client, url, PLATFORM),
    )

    return merge_in_order(
        PlatformContent(platform=PLATFORM),
        [parse_oembed(oembed), parse_page(html, structured_data_max_chars)],
    )
