from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Any, Optional

import httpx

from recipe_import.app.domain.models import PlatformContent, SourceKind
from recipe_import.services.fallback import Technique, first_success, merge_in_order
from recipe_import.services.fetcher import (
    DESKTOP_UA,
    FETCH_ERRORS,
    OEmbedData,
    clean_string,
    safe_numeric,
    decode_html_entities,
    extract_meta_tags,
    fetch_html,
    fetch_json,
    fetch_oembed,
    find_best_thumbnail,
    safe_json_loads,
)
from recipe_import.services.ids import extract_youtube_video_id

logger = logging.getLogger(__name__)

PLATFORM = SourceKind.YOUTUBE
DEFAULT_TRANSCRIPT_MIN_CHARS = 50
TRANSCRIPT_TRACK_MIN_CHARS = 20
TRANSCRIPT_MAX_CHARS = 15000
PRIORITY_LANGUAGES = ("en", "en-US", "en-GB")

PLAYER_RESPONSE_PATTERN = re.compile(
    r"var ytInitialPlayerResponse\s*=\s*(\{[\s\S]*?\});\s*(?:var|</script)"
)
INITIAL_DATA_PATTERN = re.compile(
    r"var ytInitialData\s*=\s*(\{[\s\S]*?\});\s*(?:var|</script|window)"
)
INITIAL_DATA_DESCRIPTION_PATTERN = re.compile(
    r'"description"\s*:\s*\{\s*"simpleText"\s*:\s*"((?:[^"\\]|\\.){20,})"'
)
XML_TEXT_PATTERN = re.compile(r"<text[^>]*>([\s\S]*?)</text>", re.IGNORECASE)
VTT_TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"\s+")
VTT_SKIP_PREFIXES = ("NOTE", "STYLE", "REGION", "WEBVTT")


@dataclass(frozen=True)
class MuxedFormat:
    url: str
    height: Optional[int]
    content_length: Optional[int]


def has_usable_transcript(content: PlatformContent, min_chars: int = DEFAULT_TRANSCRIPT_MIN_CHARS) -> bool:
    return bool(content.transcript) and len(content.transcript.strip()) > min_chars


def extract_player_response(html: Optional[str]) -> Optional[dict]:
    if not html:
        return None
    m = PLAYER_RESPONSE_PATTERN.search(html)
    data = safe_json_loads(m.group(1)) if m else None
    return data if isinstance(data, dict) else None


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _description_from_initial_data(html: str) -> Optional[str]:
    m = INITIAL_DATA_PATTERN.search(html)
    data = safe_json_loads(m.group(1)) if m else None
    if data is None:
        return None

    desc = INITIAL_DATA_DESCRIPTION_PATTERN.search(json.dumps(data, ensure_ascii=False))
    if not desc:
        return None
    return safe_json_loads(f'"{desc.group(1)}"') or desc.group(1).replace("\\n", "\n")


def parse_watch_page(html: Optional[str]) -> Optional[PlatformContent]:
    if not html:
        return None

    player = extract_player_response(html) or {}
    details = player.get("videoDetails") or {}

    description = (
        clean_string(details.get("shortDescription"))
        or clean_string(_dig(player, "microformat", "playerMicroformatRenderer", "description", "simpleText"))
        or _description_from_initial_data(html)
    )

    og = extract_meta_tags(html)
    return PlatformContent(
        platform=PLATFORM,
        title=clean_string(details.get("title")) or og.get("og:title"),
        author=clean_string(details.get("author")),
        caption_text=description or og.get("og:description"),
        thumbnail_url=find_best_thumbnail(_dig(details, "thumbnail", "thumbnails")),
    )


def pick_caption_track(player: Optional[dict]) -> Optional[dict]:
    tracks = _dig(player, "captions", "playerCaptionsTracklistRenderer", "captionTracks")
    if not isinstance(tracks, list):
        return None

    tracks = [t for t in tracks if isinstance(t, dict) and t.get("baseUrl")]
    if not tracks:
        return None

    for lang in PRIORITY_LANGUAGES:
        for track in tracks:
            if track.get("languageCode") == lang:
                return track

    for track in tracks:
        if str(track.get("languageCode", "")).startswith("en"):
            return track

    return tracks[0]


def pick_smallest_muxed_format(player: Optional[dict]) -> Optional[MuxedFormat]:
    """Smallest muxed (audio+video) stream with a direct URL.

    Only comprehension matters downstream, so the cheapest transfer wins.
    """
    formats = _dig(player, "streamingData", "formats")
    if not isinstance(formats, list):
        return None

    candidates = [
        MuxedFormat(
            url=f["url"],
            height=int(safe_numeric(f.get("height"))) or None,
            content_length=int(safe_numeric(f.get("contentLength"))) or None,
        )
        for f in formats
        if isinstance(f, dict) and clean_string(f.get("url"))
    ]
    if not candidates:
        return None

    candidates.sort(key=lambda f: (
        f.content_length if f.content_length else math.inf,
        f.height if f.height else math.inf,
    ))
    return candidates[0]


def _with_format(base_url: str, fmt: Optional[str]) -> str:
    if not fmt:
        return base_url
    return f"{base_url}{'&' if '?' in base_url else '?'}fmt={fmt}"


def json3_to_text(data: Any) -> Optional[str]:
    events = data.get("events") if isinstance(data, dict) else None
    if not isinstance(events, list):
        return None

    lines = []
    for event in events:
        segs = event.get("segs") if isinstance(event, dict) else None
        if not isinstance(segs, list):
            continue
        line = "".join(str(s.get("utf8", "")) for s in segs if isinstance(s, dict)).strip()
        if line:
            lines.append(line)

    return WHITESPACE_PATTERN.sub(" ", " ".join(lines)).strip() or None


def timedtext_xml_to_text(xml: str) -> Optional[str]:
    parts = [
        decode_html_entities(VTT_TAG_PATTERN.sub("", m.group(1))).strip()
        for m in XML_TEXT_PATTERN.finditer(xml or "")
    ]
    text = " ".join(p for p in parts if p)
    return WHITESPACE_PATTERN.sub(" ", text).strip() or None


def _is_vtt_content_line(line: str) -> bool:
    if not line:
        return False
    if line.startswith(VTT_SKIP_PREFIXES):
        return False
    if "-->" in line:
        return False
    if line.isdigit():
        return False
    return True


def vtt_to_plain_text(content: str) -> str:
    in_note_block = False
    text_lines: list[str] = []

    for raw_line in content.splitlines():
        stripped = raw_line.strip()

        if in_note_block:
            if not stripped:
                in_note_block = False
            continue

        if stripped.startswith("NOTE"):
            in_note_block = True
            continue

        if not _is_vtt_content_line(stripped):
            continue

        cleaned = VTT_TAG_PATTERN.sub("", stripped).strip()
        if cleaned:
            text_lines.append(cleaned)

    joined = " ".join(text_lines)
    return WHITESPACE_PATTERN.sub(" ", joined).strip()


def _accept_transcript(text: Optional[str]) -> Optional[str]:
    if not text or len(text) <= TRANSCRIPT_TRACK_MIN_CHARS:
        return None
    return text[:TRANSCRIPT_MAX_CHARS]


async def _fetch_text(client: httpx.AsyncClient, url: str) -> Optional[str]:
    try:
        response = await client.get(url, headers={"User-Agent": DESKTOP_UA}, follow_redirects=True)
    except FETCH_ERRORS as error:
        logger.debug("Caption fetch failed for %s: %s", url, error)
        return None
    return response.text if response.is_success else None


async def fetch_transcript(client: httpx.AsyncClient, base_url: str) -> Optional[str]:
    """Transcript from a caption track: json3, then timedtext XML, then WebVTT."""

    async def json3() -> Optional[str]:
        return _accept_transcript(json3_to_text(await fetch_json(client, _with_format(base_url, "json3"))))

    async def xml() -> Optional[str]:
        return _accept_transcript(timedtext_xml_to_text(await _fetch_text(client, base_url) or ""))

    async def vtt() -> Optional[str]:
        return _accept_transcript(vtt_to_plain_text(await _fetch_text(client, _with_format(base_url, "vtt")) or ""))

    return await first_success(
        [
            Technique("youtube:transcript-json3", json3),
            Technique("youtube:transcript-xml", xml),
            Technique("youtube:transcript-vtt", vtt),
        ],
        label=base_url,
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


async def extract_youtube(
    client: httpx.AsyncClient,
    url: str,
    min_transcript_chars: int = DEFAULT_TRANSCRIPT_MIN_CHARS,
) -> PlatformContent:
    content = PlatformContent(platform=PLATFORM)
    video_id = extract_youtube_video_id(url)
    page_url = f"https://www.youtube.com/watch?v={video_id}" if video_id else url

    oembed, page_html = await asyncio.gather(
        fetch_oembed(client, url, PLATFORM),
        fetch_html(client, page_url, DESKTOP_UA),
    )

    content = merge_in_order(content, [parse_oembed(oembed), parse_watch_page(page_html)])
    if video_id:
        content = content.merge(
            PlatformContent(
                platform=PLATFORM,
                thumbnail_url=f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg",
            )
        )

    player = extract_player_response(page_html)
    track = pick_caption_track(player)
    if track:
        transcript = await fetch_transcript(client, track["baseUrl"])
        if transcript:
            content = replace(content, transcript=transcript)

    if not has_usable_transcript(content, min_transcript_chars):
        muxed = pick_smallest_muxed_format(player)
        if muxed:
            logger.info(
                "YouTube fallback: using %sp muxed stream (%s bytes), transcript unavailable",
                muxed.height or "?",
                muxed.content_length or "?",
            )
            content = replace(content, video_url=muxed.url)

    return content
