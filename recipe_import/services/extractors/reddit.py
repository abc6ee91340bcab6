from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.fallback import Technique, first_success
from recipe_import.services.fetcher import (
    DESKTOP_UA,
    clean_string,
    extract_meta_tags,
    fetch_html,
    fetch_json,
)

logger = logging.getLogger(__name__)

PLATFORM = SourceKind.DISCUSSION
API_USER_AGENT = "RecipeImport/1.0"
TOP_COMMENTS = 5
COMMENTS_MAX_CHARS = 5000

_TRAILING_PATTERN = re.compile(r"/?([?#].*)?$")


def json_api_url(url: str) -> str:
    return _TRAILING_PATTERN.sub(".json", url.strip(), count=1)


def _post(data: Any) -> Optional[dict]:
    try:
        post = data[0]["data"]["children"][0]["data"]
    except (KeyError, IndexError, TypeError):
        return None
    return post if isinstance(post, dict) else None


def _comments(data: Any) -> list[str]:
    try:
        children = data[1]["data"]["children"][:TOP_COMMENTS]
    except (KeyError, IndexError, TypeError):
        return []
    return [
        body
        for body in (clean_string((c.get("data") or {}).get("body")) for c in children if isinstance(c, dict))
        if body
    ]


def _thumbnail(post: dict) -> Optional[str]:
    images = (post.get("preview") or {}).get("images") or []
    preview = clean_string(((images[0] if images else {}).get("source") or {}).get("url"))
    if preview:
        return preview.replace("&amp;", "&")
    thumbnail = clean_string(post.get("thumbnail"))
    return thumbnail if thumbnail and thumbnail.startswith("http") else None


def parse_listing(data: Any) -> Optional[PlatformContent]:
    """Post and top comments from a Reddit ``.json`` listing."""
    post = _post(data)
    if post is None:
        return None

    title = clean_string(post.get("title"))
    caption = clean_string(post.get("selftext")) or title

    # Top comments often carry the full recipe
    comments = "\n\n".join(_comments(data))
    if comments:
        caption = f"{caption or ''}\n\nCOMMENTS:\n{comments[:COMMENTS_MAX_CHARS]}"

    video = (post.get("media") or {}).get("reddit_video") or {}
    return PlatformContent(
        platform=PLATFORM,
        title=title,
        author=clean_string(post.get("author")),
        caption_text=caption,
        thumbnail_url=_thumbnail(post),
        video_url=clean_string(video.get("fallback_url")) if post.get("is_video") else None,
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


async def extract_reddit(client: httpx.AsyncClient, url: str) -> PlatformContent:
    async def from_api() -> Optional[PlatformContent]:
        return parse_listing(await fetch_json(client, json_api_url(url), {"User-Agent": API_USER_AGENT}))

    async def from_page() -> Optional[PlatformContent]:
        return parse_page(await fetch_html(client, url, DESKTOP_UA))

    content = await first_success(
        [
            Technique("reddit:json-api", from_api),
            Technique("reddit:page", from_page),
        ],
        label=url,
    )
    return content or PlatformContent(platform=PLATFORM)
