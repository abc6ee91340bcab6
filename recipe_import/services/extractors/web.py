from __future__ import annotations

import logging
from typing import Optional

import httpx

from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.fallback import Technique, first_success
from recipe_import.services.fetcher import (
    DEFAULT_STRUCTURED_DATA_MAX_CHARS,
    DESKTOP_UA,
    MOBILE_UA,
    extract_meta_tags,
    extract_structured_data,
    fetch_html,
    html_to_text,
)

logger = logging.getLogger(__name__)

PAGE_TEXT_MIN_CHARS = 100
PAGE_TEXT_MAX_CHARS = 12000


def parse_webpage(
    html: Optional[str],
    platform: SourceKind = SourceKind.WEB,
    structured_data_max_chars: int = DEFAULT_STRUCTURED_DATA_MAX_CHARS,
) -> Optional[PlatformContent]:
    """Recipe blogs and other pages: ld+json first, then meta tags and body text."""
    if not html:
        return None

    og = extract_meta_tags(html)
    video_url = og.get("og:video") or og.get("og:video:secure_url")
    page_text = html_to_text(html)

    return PlatformContent(
        platform=platform,
        structured_data=extract_structured_data(html, structured_data_max_chars),
        title=og.get("og:title") or og.get("title"),
        caption_text=og.get("og:description") or og.get("description"),
        thumbnail_url=og.get("og:image"),
        video_url=video_url.replace("&amp;", "&") if video_url and ".mp4" in video_url else None,
        page_text=page_text[:PAGE_TEXT_MAX_CHARS] if len(page_text) > PAGE_TEXT_MIN_CHARS else None,
    )


async def extract_web(
    client: httpx.AsyncClient,
    url: str,
    structured_data_max_chars: int = DEFAULT_STRUCTURED_DATA_MAX_CHARS,
) -> PlatformContent:
    async def with_identity(user_agent: str) -> Optional[PlatformContent]:
        html = await fetch_html(client, url, user_agent)
        return parse_webpage(html, SourceKind.WEB, structured_data_max_chars)

    content = await first_success(
        [
            Technique("web:desktop", lambda: with_identity(DESKTOP_UA)),
            Technique("web:mobile", lambda: with_identity(MOBILE_UA)),
        ],
        label=url,
    )
    return content or PlatformContent(platform=SourceKind.WEB)
