# recipe_import/services/files.py
"""
Direct file sources: documents, data files and media referenced by URL or path.

Text-like files (json/xml/plain text) are read inline and become the bundle
text. PDFs and remote media are staged later by the import pipeline; local
media paths are handed to the bundle as-is and never deleted.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

import httpx

from recipe_import.app.domain.errors import OversizedMediaError
from recipe_import.app.domain.models import ContentBundle, PlatformContent, SourceKind
from recipe_import.services.fetcher import (
    DEFAULT_STRUCTURED_DATA_MAX_CHARS,
    DESKTOP_UA,
    fetch_bytes,
    html_to_text,
    safe_json_loads,
)
from recipe_import.services.ids import guess_mime_type, is_local_reference, to_local_path

logger = logging.getLogger(__name__)

DIRECT_TEXT_MAX_CHARS = 15000
TEXT_FILE_MAX_BYTES = 5 * 1024 * 1024

_RECIPE_KEYS = ("recipeIngredient", "recipeInstructions", "ingredients", "instructions")


def _looks_like_recipe(data: object) -> bool:
    if isinstance(data, dict):
        if str(data.get("@type", "")).lower() == "recipe":
            return True
        return any(key in data for key in _RECIPE_KEYS)
    if isinstance(data, list):
        return any(_looks_like_recipe(item) for item in data)
    return False


def decode_text(data: bytes) -> str:
    # BOM-tolerant, lossy on invalid bytes
    return data.decode("utf-8-sig", errors="replace")


def read_text_source(
    raw: str,
    kind: SourceKind,
    structured_data_max_chars: int = DEFAULT_STRUCTURED_DATA_MAX_CHARS,
) -> tuple[Optional[str], Optional[str]]:
    """Return ``(direct_text, structured_data)`` for a text-like file body."""
    if kind is SourceKind.JSON:
        parsed = safe_json_loads(raw)
        if parsed is None:
            logger.debug("JSON source did not parse, using raw text")
            return raw.strip()[:DIRECT_TEXT_MAX_CHARS] or None, None
        pretty = json.dumps(parsed, indent=2, ensure_ascii=False)
        structured = pretty[:structured_data_max_chars] if _looks_like_recipe(parsed) else None
        return pretty[:DIRECT_TEXT_MAX_CHARS], structured

    if kind is SourceKind.XML:
        text = html_to_text(raw)
        return text[:DIRECT_TEXT_MAX_CHARS] or None, None

    return raw.strip()[:DIRECT_TEXT_MAX_CHARS] or None, None


async def load_file_source(
    client: httpx.AsyncClient,
    url: str,
    kind: SourceKind,
    structured_data_max_chars: int = DEFAULT_STRUCTURED_DATA_MAX_CHARS,
    max_media_bytes: Optional[int] = None,
) -> ContentBundle:
    """Build the initial bundle for a file source.

    Never raises on fetch failures; an unreadable file yields an empty bundle
    and the pipeline reports the source as unsupported.

    Raises:
        OversizedMediaError: A local media file is larger than ``max_media_bytes``.
    """
    bundle = ContentBundle(content=PlatformContent(platform=kind), source_url=url)

    if is_local_reference(url):
        path = to_local_path(url)
        if not path.is_file():
            logger.warning("Local file not found: %s", path)
            return bundle
        size = path.stat().st_size
        if max_media_bytes is not None and size > max_media_bytes:
            raise OversizedMediaError(url, size, max_media_bytes)
        bundle.media_path = path
        bundle.media_mime_type = guess_mime_type(str(path))
        return bundle

    if not kind.is_text_file:
        # Remote pdf/image/video/audio: the bytes are staged by the pipeline
        bundle.media_mime_type = guess_mime_type(url)
        return bundle

    data = await fetch_bytes(client, url, DESKTOP_UA, TEXT_FILE_MAX_BYTES)
    if data is None:
        logger.warning("Could not download %s file: %s", kind.value, url)
        return bundle

    direct_text, structured = read_text_source(decode_text(data), kind, structured_data_max_chars)
    bundle.direct_text = direct_text
    bundle.content = PlatformContent(platform=kind, structured_data=structured)
    return bundle
