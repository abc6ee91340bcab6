from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

import httpx

from recipe_import.app.config import Settings, settings as default_settings
from recipe_import.app.domain.errors import RecipeImportError, UnsupportedSourceError
from recipe_import.app.domain.models import (
    ContentBundle,
    ExtractedRecipe,
    ExtractionMethod,
    ImportResult,
    PlatformContent,
    SourceKind,
)
from recipe_import.app.infra.storage.base import MediaStore
from recipe_import.app.infra.storage.local_provider import LocalMediaStore
from recipe_import.services.bundle import attach_media, extraction_method, media_to_stage
from recipe_import.services.extractor import extract_platform_content
from recipe_import.services.files import load_file_source
from recipe_import.services.gemini_client import GeminiClient
from recipe_import.services.ids import detect_source_kind
from recipe_import.services.normalizer import normalize_recipe
from recipe_import.services.staging import staged_media
from recipe_import.services.understanding import RecipeUnderstanding, ThinkingObserver, extract_json_object

logger = logging.getLogger(__name__)

PHOTO_SOURCE_PLATFORM = "cookbook_scan"

ClientFactory = Callable[[], httpx.AsyncClient]
StoreFactory = Callable[[httpx.AsyncClient], MediaStore]
PathLike = Union[str, Path]


def _photo_source_url(hint_label: Optional[str]) -> str:
    return f"cookbook://{hint_label or 'unknown'}"


class RecipeImporter:
    """Runs the import pipeline: classify, extract, stage, understand, normalize."""

    def __init__(
        self,
        understanding: Optional[RecipeUnderstanding] = None,
        client_factory: Optional[ClientFactory] = None,
        store_factory: Optional[StoreFactory] = None,
        config: Settings = default_settings,
    ) -> None:
        self.config = config
        self._understanding = understanding
        self._client_factory = client_factory or self._default_client
        self._store_factory = store_factory or self._default_store

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.HTTP_TIMEOUT_SECONDS)

    def _default_store(self, client: httpx.AsyncClient) -> MediaStore:
        return LocalMediaStore(client, self.config.MEDIA_TEMP_DIR)

    @property
    def understanding(self) -> RecipeUnderstanding:
        if self._understanding is None:
            client = GeminiClient(
                api_key=self.config.GEMINI_API_KEY.get_secret_value(),
                model_name=self.config.GEMINI_MODEL,
            )
            self._understanding = RecipeUnderstanding(client)
        return self._understanding

    async def import_from_url(
        self,
        url: str,
        *,
        observer: Optional[ThinkingObserver] = None,
    ) -> ImportResult:
        try:
            recipe = await self._import_url(url, observer)
        except RecipeImportError as error:
            logger.warning("Recipe import failed for %s: %s", url, error.reason)
            return ImportResult.fail(error)
        return ImportResult.ok(recipe)

    async def import_from_photo(
        self,
        image_path: PathLike,
        hint_label: Optional[str] = None,
    ) -> ImportResult:
        return await self.import_from_multiple_photos([image_path], hint_label)

    async def import_from_multiple_photos(
        self,
        image_paths: Sequence[PathLike],
        hint_label: Optional[str] = None,
    ) -> ImportResult:
        source_url = _photo_source_url(hint_label)
        try:
            recipe = await self._import_photos(image_paths, hint_label, source_url)
        except RecipeImportError as error:
            logger.warning("Photo import failed for %s: %s", source_url, error.reason)
            return ImportResult.fail(error)
        return ImportResult.ok(recipe)

    async def _build_bundle(self, client: httpx.AsyncClient, url: str, kind: SourceKind) -> ContentBundle:
        if kind.is_file:
            return await load_file_source(
                client,
                url,
                kind,
                self.config.STRUCTURED_DATA_MAX_CHARS,
                self.config.MEDIA_MAX_BYTES,
            )
        content = await extract_platform_content(client, url, kind, self.config)
        return ContentBundle(content=content, source_url=url)

    async def _import_url(self, url: str, observer: Optional[ThinkingObserver]) -> ExtractedRecipe:
        understanding = self.understanding
        kind = detect_source_kind(url)
        logger.info("Importing recipe from %s (kind=%s)", url, kind.value)

        async with self._client_factory() as client:
            bundle = await self._build_bundle(client, url, kind)
            store = self._store_factory(client)
            to_stage = media_to_stage(bundle, self.config.TRANSCRIPT_MIN_CHARS)

            async with staged_media(store, to_stage, self.config.MEDIA_MAX_BYTES) as staged_path:
                if staged_path is not None:
                    bundle.media_path = staged_path
                await attach_media(bundle, client, self.config.INLINE_MEDIA_MAX_BYTES)

                if not bundle.has_usable_input():
                    raise UnsupportedSourceError(url, kind.value)

                method = extraction_method(bundle)
                if observer is not None and staged_path is not None:
                    raw = await understanding.extract_with_thinking(bundle, observer)
                else:
                    raw = await understanding.extract(bundle)

        recipe = normalize_recipe(extract_json_object(raw), url, kind.value, method, self.config)
        logger.info(
            "Imported recipe %r from %s: method=%s, confidence=%.2f",
            recipe.title,
            kind.value,
            method.value,
            recipe.extraction_confidence,
        )
        return recipe

    async def _import_photos(
        self,
        image_paths: Sequence[PathLike],
        hint_label: Optional[str],
        source_url: str,
    ) -> ExtractedRecipe:
        understanding = self.understanding
        bundle = ContentBundle(
            content=PlatformContent(platform=SourceKind.IMAGE),
            source_url=source_url,
            image_paths=[Path(p).expanduser() for p in image_paths],
            hint_label=hint_label,
        )

        async with self._client_factory() as client:
            await attach_media(bundle, client, self.config.INLINE_MEDIA_MAX_BYTES)
        if not bundle.parts:
            raise UnsupportedSourceError(source_url, SourceKind.IMAGE.value)

        logger.info("Importing recipe from %d photo(s) (%s)", len(bundle.parts), source_url)
        raw = await understanding.extract(bundle)
        recipe = normalize_recipe(
            extract_json_object(raw),
            source_url,
            PHOTO_SOURCE_PLATFORM,
            ExtractionMethod.PHOTO,
            self.config,
        )
        logger.info(
            "Imported recipe %r from photos: confidence=%.2f",
            recipe.title,
            recipe.extraction_confidence,
        )
        return recipe


_default_importer: Optional[RecipeImporter] = None


def get_importer() -> RecipeImporter:
    global _default_importer
    if _default_importer is None:
        _default_importer = RecipeImporter()
    return _default_importer


async def import_from_url(url: str, *, observer: Optional[ThinkingObserver] = None) -> ImportResult:
    return await get_importer().import_from_url(url, observer=observer)


async def import_from_photo(image_path: PathLike, hint_label: Optional[str] = None) -> ImportResult:
    return await get_importer().import_from_photo(image_path, hint_label)


async def import_from_multiple_photos(
    image_paths: Sequence[PathLike],
    hint_label: Optional[str] = None,
) -> ImportResult:
    return await get_importer().import_from_multiple_photos(image_paths, hint_label)
