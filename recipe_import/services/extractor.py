# recipe_import/services/extractor.py
"""
Platform extraction entry point.

Routes a URL to the extractor for its source kind. Every extractor returns a
``PlatformContent`` tagged with the platform, even when nothing could be
fetched; a fully empty record is a valid result.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import httpx

from recipe_import.app.config import Settings, settings as default_settings
from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.extractors.instagram import extract_instagram
from recipe_import.services.extractors.link import extract_link_board
from recipe_import.services.extractors.reddit import extract_reddit
from recipe_import.services.extractors.social import extract_social_post
from recipe_import.services.extractors.tiktok import extract_tiktok
from recipe_import.services.extractors.web import extract_web
from recipe_import.services.extractors.youtube import extract_youtube
from recipe_import.services.fallback import TECHNIQUE_ERRORS
from recipe_import.services.ids import detect_source_kind

logger = logging.getLogger(__name__)

Extractor = Callable[[httpx.AsyncClient, str, Settings], Awaitable[PlatformContent]]

EXTRACTORS: dict[SourceKind, Extractor] = {
    SourceKind.INSTAGRAM: lambda client, url, cfg: extract_instagram(client, url),
    SourceKind.YOUTUBE: lambda client, url, cfg: extract_youtube(client, url, cfg.TRANSCRIPT_MIN_CHARS),
    SourceKind.TIKTOK: lambda client, url, cfg: extract_tiktok(client, url),
    SourceKind.SOCIAL_POST: lambda client, url, cfg: extract_social_post(client, url),
    SourceKind.LINK_BOARD: lambda client, url, cfg: extract_link_board(client, url, cfg.STRUCTURED_DATA_MAX_CHARS),
    SourceKind.DISCUSSION: lambda client, url, cfg: extract_reddit(client, url),
    SourceKind.WEB: lambda client, url, cfg: extract_web(client, url, cfg.STRUCTURED_DATA_MAX_CHARS),
}


async def extract_platform_content(
    client: httpx.AsyncClient,
    url: str,
    kind: Optional[SourceKind] = None,
    config: Settings = default_settings,
) -> PlatformContent:
    kind = kind or detect_source_kind(url)
    extractor = EXTRACTORS.get(kind)
    if extractor is None:
        # File kinds have no page to scrape; they are read directly
        logger.debug("No platform extractor for %s, returning empty content", kind.value)
        return PlatformContent(platform=kind)

    logger.info("Extracting %s content from %s", kind.value, url)
    try:
        content = await extractor(client, url, config)
    except TECHNIQUE_ERRORS as error:
        logger.warning("Extractor for %s failed on %s: %s", kind.value, url, error)
        return PlatformContent(platform=kind)

    logger.info(
        "Extracted %s content: video=%s caption=%d transcript=%d page=%d structured=%s",
        kind.value,
        bool(content.video_url),
        len(content.caption_text or ""),
        len(content.transcript or ""),
        len(content.page_text or ""),
        bool(content.structured_data),
    )
    return content
