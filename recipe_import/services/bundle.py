# recipe_import/services/bundle.py
"""
Content bundle assembly: what to stage, what text to send and which binary
part (video, document, photos or a thumbnail) accompanies it.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import httpx

from recipe_import.app.domain.models import (
    AttachedMedia,
    ContentBundle,
    ExtractionMethod,
    MediaPart,
    PlatformContent,
    SourceKind,
)
from recipe_import.services.extractors.youtube import has_usable_transcript
from recipe_import.services.fetcher import DESKTOP_UA, decode_html_entities, fetch_bytes
from recipe_import.services.ids import guess_mime_type, is_local_reference

logger = logging.getLogger(__name__)

TRANSCRIPT_CONTEXT_MAX_CHARS = 12000
PAGE_TEXT_CONTEXT_MAX_CHARS = 10000
CAPTION_RECIPE_MIN_CHARS = 80

_STAGED_VIDEO_PLATFORMS = (SourceKind.INSTAGRAM, SourceKind.TIKTOK)
_STAGED_FILE_KINDS = (SourceKind.PDF, SourceKind.IMAGE, SourceKind.VIDEO_FILE, SourceKind.AUDIO_FILE)

_UNITS = (
    r"cups?|tbsp|tsp|tablespoons?|teaspoons?|oz|ounces?|lbs?|pounds?|g|grams?|kg|ml|"
    r"liters?|litres?|cloves?|bunch|pinch|dash|cans?|sticks?|slices?|pieces?"
)
INGREDIENT_SIGNALS = (
    re.compile(r"\b\d+\s*(?:" + _UNITS + r")\b", re.IGNORECASE),
    re.compile(r"\bingredients?\b", re.IGNORECASE),
    re.compile(r"\b\d+/\d+\s*(?:cups?|tsp|tbsp)\b", re.IGNORECASE),
)
INSTRUCTION_SIGNALS = (
    re.compile(r"\b(?:step\s*\d|directions?|instructions?|method|how to)\b", re.IGNORECASE),
    re.compile(
        r"\b(?:preheat|saut[ée]|simmer|boil|bake|roast|fry|whisk|stir|fold|chop|dice|mince|"
        r"slice|season|marinate|drain|mix|combine|cook|heat|add|pour|place|serve|garnish|"
        r"let\s+(?:it\s+)?rest|set\s+aside|bring\s+to)\b",
        re.IGNORECASE,
    ),
)

_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


def needs_media_staging(content: PlatformContent, min_transcript_chars: int = 50) -> bool:
    if not content.video_url:
        return False
    if content.platform in _STAGED_VIDEO_PLATFORMS:
        return True
    if content.platform is SourceKind.YOUTUBE:
        return not has_usable_transcript(content, min_transcript_chars)
    return False


def media_to_stage(bundle: ContentBundle, min_transcript_chars: int = 50) -> Optional[str]:
    """Remote URL whose bytes the understanding step needs, if any."""
    if bundle.platform in _STAGED_FILE_KINDS:
        return None if is_local_reference(bundle.source_url) else bundle.source_url
    if needs_media_staging(bundle.content, min_transcript_chars):
        return bundle.content.video_url
    return None


def caption_looks_like_recipe(text: Optional[str]) -> bool:
    """A caption with both ingredient and instruction signals is a written recipe."""
    if not text or len(text) < CAPTION_RECIPE_MIN_CHARS:
        return False
    has_ingredients = any(p.search(text) for p in INGREDIENT_SIGNALS)
    has_instructions = any(p.search(text) for p in INSTRUCTION_SIGNALS)
    return has_ingredients and has_instructions


def build_context_text(bundle: ContentBundle) -> str:
    content = bundle.content
    sections: list[str] = []

    if content.structured_data:
        sections.append(f"STRUCTURED RECIPE DATA (Schema.org):\n{content.structured_data}")
    if content.title:
        sections.append(f"TITLE: {content.title}")
    if content.author:
        sections.append(f"AUTHOR: {content.author}")
    if content.caption_text:
        sections.append(f"CAPTION / DESCRIPTION:\n{content.caption_text}")
    if content.transcript:
        sections.append(f"VIDEO TRANSCRIPT:\n{content.transcript[:TRANSCRIPT_CONTEXT_MAX_CHARS]}")
    if content.page_text:
        sections.append(f"PAGE CONTENT:\n{content.page_text[:PAGE_TEXT_CONTEXT_MAX_CHARS]}")
    if bundle.direct_text:
        sections.append(f"FILE CONTENT:\n{bundle.direct_text}")
    if bundle.hint_label:
        sections.append(f"COOKBOOK: {bundle.hint_label}")
    sections.append(f"SOURCE: {bundle.platform.value} - {bundle.source_url}")

    return "\n\n".join(sections)


def sniff_image_mime(data: Optional[bytes]) -> Optional[str]:
    """MIME type from magic bytes; ``None`` when the payload is not an image."""
    if not data or len(data) < 12:
        return None
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[4:8] == b"ftyp" and data[8:12] in (b"heic", b"heix", b"mif1", b"msf1"):
        return "image/heic"
    return None


def _media_mime(path: Path, declared: Optional[str], data: bytes) -> Optional[str]:
    if data.startswith(b"%PDF"):
        return "application/pdf"
    image = sniff_image_mime(data)
    if image:
        return image
    return declared or guess_mime_type(str(path))


def _attached_kind(mime_type: Optional[str]) -> AttachedMedia:
    if not mime_type:
        return AttachedMedia.NONE
    if mime_type.startswith("video/"):
        return AttachedMedia.VIDEO
    if mime_type.startswith("audio/"):
        return AttachedMedia.AUDIO
    if mime_type == "application/pdf":
        return AttachedMedia.DOCUMENT
    if mime_type.startswith("image/"):
        return AttachedMedia.PHOTOS
    return AttachedMedia.NONE


def _read_photo(path: Path) -> Optional[MediaPart]:
    try:
        data = path.read_bytes()
    except OSError as error:
        logger.warning("Could not read photo %s: %s", path, error)
        return None
    mime_type = sniff_image_mime(data) or guess_mime_type(str(path))
    if not mime_type or not mime_type.startswith("image/"):
        logger.warning("Skipping %s: not an image", path)
        return None
    return MediaPart(data=data, mime_type=mime_type)


def _read_media_file(bundle: ContentBundle, inline_max_bytes: int) -> Optional[MediaPart]:
    path = bundle.media_path
    try:
        size = path.stat().st_size
        if size > inline_max_bytes:
            logger.info(
                "Media %s is %d bytes, above the %d byte inline limit; using text and thumbnail",
                path,
                size,
                inline_max_bytes,
            )
            return None
        data = path.read_bytes()
    except OSError as error:
        logger.warning("Could not read media file %s: %s", path, error)
        return None

    mime_type = _media_mime(path, bundle.media_mime_type, data)
    if _attached_kind(mime_type) is AttachedMedia.NONE:
        logger.warning("Unrecognized media type for %s: %s", path, mime_type)
        return None
    return MediaPart(data=data, mime_type=mime_type)


async def fetch_thumbnail_part(
    client: httpx.AsyncClient,
    thumbnail_url: str,
    max_bytes: int,
) -> Optional[MediaPart]:
    # Signed CDN thumbnails often answer with an HTML page; only real images count
    data = await fetch_bytes(client, decode_html_entities(thumbnail_url), DESKTOP_UA, max_bytes)
    mime_type = sniff_image_mime(data)
    if not mime_type:
        logger.info("Skipping invalid thumbnail %s", thumbnail_url)
        return None
    return MediaPart(data=data, mime_type=mime_type)


async def attach_media(
    bundle: ContentBundle,
    client: httpx.AsyncClient,
    inline_max_bytes: int,
) -> ContentBundle:
    """Fill ``bundle.parts``: photos, else the local media file, else the thumbnail."""
    if bundle.image_paths:
        parts = [p for p in (_read_photo(path) for path in bundle.image_paths) if p]
        if parts:
            bundle.parts = parts
            bundle.attached = AttachedMedia.PHOTOS
            return bundle

    if bundle.media_path is not None:
        part = _read_media_file(bundle, inline_max_bytes)
        if part:
            bundle.parts = [part]
            bundle.attached = _attached_kind(part.mime_type)
            return bundle

    if bundle.content.thumbnail_url:
        part = await fetch_thumbnail_part(client, bundle.content.thumbnail_url, inline_max_bytes)
        if part:
            bundle.parts = [part]
            bundle.attached = AttachedMedia.THUMBNAIL

    return bundle


def extraction_method(bundle: ContentBundle) -> ExtractionMethod:
    if bundle.image_paths or (bundle.platform is SourceKind.IMAGE and bundle.attached is AttachedMedia.PHOTOS):
        return ExtractionMethod.PHOTO
    if bundle.attached in (AttachedMedia.VIDEO, AttachedMedia.AUDIO):
        return ExtractionMethod.VIDEO
    if bundle.platform in (SourceKind.PDF, SourceKind.JSON, SourceKind.XML, SourceKind.PLAIN_TEXT):
        return ExtractionMethod.FILE
    if bundle.attached is AttachedMedia.THUMBNAIL and not bundle.has_text():
        return ExtractionMethod.VISUAL_FALLBACK
    return ExtractionMethod.TEXT
