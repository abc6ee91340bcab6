# recipe_import/app/domain/models.py
"""
Domain models for the recipe import pipeline.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from recipe_import.app.domain.errors import RecipeImportError


class SourceKind(str, Enum):
    """Closed set of source categories an import can come from."""
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    SOCIAL_POST = "social_post"
    LINK_BOARD = "link_board"
    DISCUSSION = "discussion"
    PDF = "pdf"
    JSON = "json"
    XML = "xml"
    PLAIN_TEXT = "plain_text"
    IMAGE = "image"
    VIDEO_FILE = "video_file"
    AUDIO_FILE = "audio_file"
    WEB = "web"

    @property
    def is_file(self) -> bool:
        return self in FILE_KINDS

    @property
    def is_text_file(self) -> bool:
        return self in (SourceKind.JSON, SourceKind.XML, SourceKind.PLAIN_TEXT)


FILE_KINDS = frozenset({
    SourceKind.PDF,
    SourceKind.JSON,
    SourceKind.XML,
    SourceKind.PLAIN_TEXT,
    SourceKind.IMAGE,
    SourceKind.VIDEO_FILE,
    SourceKind.AUDIO_FILE,
})


class ExtractionMethod(str, Enum):
    """Provenance of an extracted recipe, surfaced to the UI as a tag."""
    VIDEO = "video"
    TEXT = "text"
    VISUAL_FALLBACK = "visual-fallback"
    PHOTO = "photo"
    FILE = "file"

    @property
    def tag(self) -> str:
        return f"extracted:{self.value}"


class ThinkingPhase(str, Enum):
    WATCHING = "watching"
    READING = "reading"
    BUILDING = "building"
    DONE = "done"


class AttachedMedia(str, Enum):
    """Which binary input, if any, accompanies the bundle text."""
    NONE = "none"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    PHOTOS = "photos"
    THUMBNAIL = "thumbnail"


@dataclass(frozen=True)
class MediaPart:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class PlatformContent:
    """
    Common output of every platform extractor.

    Only ``platform`` is guaranteed; every content field is best-effort and
    a record with all of them empty is a valid (failed) extraction.
    """
    platform: SourceKind
    video_url: Optional[str] = None
    caption_text: Optional[str] = None
    page_text: Optional[str] = None
    transcript: Optional[str] = None
    thumbnail_url: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    structured_data: Optional[str] = None

    def merge(self, other: Optional["PlatformContent"]) -> "PlatformContent":
        """Fill fields that are still empty here from ``other``.

        Fields already set win, so merging in precedence order gives the
        same record whatever order the sources were fetched in.
        """
        if other is None:
            return self

        updates = {
            f.name: getattr(other, f.name)
            for f in fields(self)
            if f.name != "platform"
            and not getattr(self, f.name)
            and getattr(other, f.name)
        }
        return replace(self, **updates) if updates else self

    def has_text(self) -> bool:
        return any((
            self.caption_text,
            self.page_text,
            self.transcript,
            self.structured_data,
        ))

    def is_empty(self) -> bool:
        return not any(
            getattr(self, f.name) for f in fields(self) if f.name != "platform"
        )


@dataclass
class ContentBundle:
    """Everything handed to the understanding step for one import call."""
    content: PlatformContent
    source_url: str
    # Staged or user-supplied local media; the pipeline only deletes files it staged
    media_path: Optional[Path] = None
    media_mime_type: Optional[str] = None
    image_paths: list[Path] = field(default_factory=list)
    hint_label: Optional[str] = None
    direct_text: Optional[str] = None
    # Filled by the bundle builder right before the understanding step
    parts: list[MediaPart] = field(default_factory=list)
    attached: AttachedMedia = AttachedMedia.NONE

    @property
    def platform(self) -> SourceKind:
        return self.content.platform

    def has_text(self) -> bool:
        return self.content.has_text() or bool(self.direct_text)

    def has_usable_input(self) -> bool:
        return self.has_text() or bool(self.parts) or bool(self.content.title)


@dataclass
class Ingredient:
    name: str
    amount: float
    unit: str
    optional: bool = False


@dataclass
class ExtractedRecipe:
    """Canonical recipe produced by the normalizer."""
    title: str
    description: str
    source_url: str
    source_platform: str
    extraction_confidence: float
    ingredients: list[Ingredient] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    servings: int = 4
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    difficulty: Optional[str] = None
    cuisine: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    extracted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "ingredients": [
                {
                    "name": ing.name,
                    "amount": ing.amount,
                    "unit": ing.unit,
                    "optional": ing.optional,
                }
                for ing in self.ingredients
            ],
            "instructions": list(self.instructions),
            "servings": self.servings,
            "prepTime": self.prep_time,
            "cookTime": self.cook_time,
            "difficulty": self.difficulty,
            "cuisine": self.cuisine,
            "category": self.category,
            "tags": list(self.tags),
            "sourceURL": self.source_url,
            "sourcePlatform": self.source_platform,
            "extractionConfidence": self.extraction_confidence,
            "extractedAt": self.extracted_at.isoformat(),
        }


@dataclass
class ImportResult:
    """Outcome of an inbound import call: a recipe or a typed failure."""
    success: bool
    recipe: Optional[ExtractedRecipe] = None
    error: Optional[RecipeImportError] = None
    confidence: float = 0.0

    @classmethod
    def ok(cls, recipe: ExtractedRecipe) -> "ImportResult":
        return cls(success=True, recipe=recipe, confidence=recipe.extraction_confidence)

    @classmethod
    def fail(cls, error: RecipeImportError) -> "ImportResult":
        return cls(success=False, error=error, confidence=0.0)

    @property
    def reason(self) -> Optional[str]:
        return self.error.reason if self.error else None
