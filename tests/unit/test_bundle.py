from __future__ import annotations

from pathlib import Path

import pytest

from recipe_import.app.domain.models import (
    AttachedMedia,
    ContentBundle,
    ExtractionMethod,
    PlatformContent,
    SourceKind,
)
from recipe_import.services.bundle import (
    attach_media,
    build_context_text,
    caption_looks_like_recipe,
    extraction_method,
    media_to_stage,
    needs_media_staging,
    sniff_image_mime,
)
from conftest import MP4_BYTES, PNG_BYTES

RECIPE_CAPTION = (
    "Lemon garlic chicken! Ingredients: 2 chicken breasts, 3 cloves garlic, 1 lemon. "
    "Season the chicken, sear 5 minutes per side, then add garlic and lemon and simmer."
)


def bundle_for(content: PlatformContent, url: str = "https://example.com/post", **kwargs) -> ContentBundle:
    return ContentBundle(content=content, source_url=url, **kwargs)


class TestNeedsMediaStaging:
    @pytest.mark.parametrize("platform", [SourceKind.INSTAGRAM, SourceKind.TIKTOK])
    def test_short_video_platforms_with_video(self, platform: SourceKind) -> None:
        content = PlatformContent(platform=platform, video_url="https://cdn/v.mp4", caption_text="long caption")
        assert needs_media_staging(content)

    def test_youtube_only_without_usable_transcript(self) -> None:
        with_transcript = PlatformContent(
            platform=SourceKind.YOUTUBE,
            video_url="https://rr.googlevideo.com/360",
            transcript="x" * 200,
        )
        without = PlatformContent(
            platform=SourceKind.YOUTUBE,
            video_url="https://rr.googlevideo.com/360",
            transcript="too short",
        )

        assert not needs_media_staging(with_transcript)
        assert needs_media_staging(without)

    def test_no_video_means_no_staging(self) -> None:
        assert not needs_media_staging(PlatformContent(platform=SourceKind.TIKTOK))

    def test_other_platforms_are_not_staged(self) -> None:
        content = PlatformContent(platform=SourceKind.DISCUSSION, video_url="https://v.redd.it/x.mp4")
        assert not needs_media_staging(content)


class TestMediaToStage:
    def test_remote_file_sources_are_staged(self) -> None:
        bundle = bundle_for(PlatformContent(platform=SourceKind.PDF), "https://example.com/menu.pdf")
        assert media_to_stage(bundle) == "https://example.com/menu.pdf"

    def test_local_files_are_never_staged(self) -> None:
        bundle = bundle_for(PlatformContent(platform=SourceKind.VIDEO_FILE), "/home/me/clip.mp4")
        assert media_to_stage(bundle) is None

    def test_text_files_are_not_staged(self) -> None:
        bundle = bundle_for(PlatformContent(platform=SourceKind.JSON), "https://example.com/r.json")
        assert media_to_stage(bundle) is None

    def test_platform_video(self) -> None:
        content = PlatformContent(platform=SourceKind.INSTAGRAM, video_url="https://cdn/v.mp4")
        assert media_to_stage(bundle_for(content)) == "https://cdn/v.mp4"


class TestCaptionLooksLikeRecipe:
    def test_written_recipe(self) -> None:
        assert caption_looks_like_recipe(RECIPE_CAPTION)

    def test_short_text(self) -> None:
        assert not caption_looks_like_recipe("2 cups flour, mix well")

    def test_ingredients_without_instructions(self) -> None:
        text = "Shopping list for the week: 2 cups rice, 3 cloves garlic, 1 lb beef, 4 oz cheese, 2 cans beans."
        assert not caption_looks_like_recipe(text)

    def test_empty(self) -> None:
        assert not caption_looks_like_recipe(None)


class TestBuildContextText:
    def test_sections_in_order(self) -> None:
        content = PlatformContent(
            platform=SourceKind.YOUTUBE,
            structured_data='{"@type": "Recipe"}',
            title="Carbonara",
            author="Pasta Channel",
            caption_text="Roman classic",
            transcript="t" * 20000,
        )
        bundle = bundle_for(content, "https://youtu.be/abc")

        text = build_context_text(bundle)

        assert text.index("STRUCTURED RECIPE DATA") < text.index("TITLE: Carbonara")
        assert text.index("AUTHOR: Pasta Channel") < text.index("CAPTION / DESCRIPTION:\nRoman classic")
        assert "t" * 12000 in text
        assert "t" * 12001 not in text
        assert text.endswith("SOURCE: youtube - https://youtu.be/abc")

    def test_file_content_and_hint(self) -> None:
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.IMAGE),
            "cookbook://Joy of Cooking",
            direct_text="Pancakes",
            hint_label="Joy of Cooking",
        )

        text = build_context_text(bundle)

        assert "FILE CONTENT:\nPancakes" in text
        assert "COOKBOOK: Joy of Cooking" in text


class TestSniffImageMime:
    @pytest.mark.parametrize(
        "data, expected",
        [
            (b"\xff\xd8\xff\xe0" + b"\x00" * 16, "image/jpeg"),
            (PNG_BYTES, "image/png"),
            (b"GIF89a" + b"\x00" * 16, "image/gif"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
            (b"\x00\x00\x00\x18ftypheic" + b"\x00" * 8, "image/heic"),
            (MP4_BYTES, None),
            (b"<!DOCTYPE html><html>", None),
            (b"\x89PNG", None),
            (None, None),
        ],
    )
    def test_magic_bytes(self, data, expected) -> None:
        assert sniff_image_mime(data) == expected


class TestAttachMedia:
    async def test_photos_take_precedence(self, routes, tmp_path: Path) -> None:
        page = tmp_path / "page1.jpg"
        page.write_bytes(PNG_BYTES)
        not_image = tmp_path / "notes.txt"
        not_image.write_text("hello")
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.IMAGE, thumbnail_url="https://cdn/t.jpg"),
            "cookbook://unknown",
            image_paths=[page, not_image, tmp_path / "missing.jpg"],
        )

        async with routes.client() as client:
            await attach_media(bundle, client, 1024)

        assert bundle.attached is AttachedMedia.PHOTOS
        assert [p.mime_type for p in bundle.parts] == ["image/png"]
        assert routes.requests == []

    async def test_staged_video_inline(self, routes, tmp_path: Path) -> None:
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(MP4_BYTES)
        bundle = bundle_for(PlatformContent(platform=SourceKind.TIKTOK), media_path=clip)

        async with routes.client() as client:
            await attach_media(bundle, client, 1024)

        assert bundle.attached is AttachedMedia.VIDEO
        assert bundle.parts[0].mime_type == "video/mp4"
        assert bundle.parts[0].data == MP4_BYTES

    async def test_oversized_media_falls_back_to_thumbnail(self, routes, tmp_path: Path) -> None:
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(MP4_BYTES)
        routes.add("cdn.example.com", "/thumb.jpg", PNG_BYTES)
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.TIKTOK, thumbnail_url="https://cdn.example.com/thumb.jpg"),
            media_path=clip,
        )

        async with routes.client() as client:
            await attach_media(bundle, client, 50)

        assert bundle.attached is AttachedMedia.THUMBNAIL
        assert bundle.parts[0].mime_type == "image/png"

    async def test_html_thumbnail_is_rejected(self, routes) -> None:
        routes.add("cdn.example.com", "/thumb.jpg", "<html>expired</html>")
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.INSTAGRAM, thumbnail_url="https://cdn.example.com/thumb.jpg")
        )

        async with routes.client() as client:
            await attach_media(bundle, client, 1024)

        assert bundle.parts == []
        assert bundle.attached is AttachedMedia.NONE

    async def test_thumbnail_url_entities_are_decoded(self, routes) -> None:
        routes.add("cdn.example.com", "/thumb.jpg", PNG_BYTES)
        bundle = bundle_for(
            PlatformContent(
                platform=SourceKind.INSTAGRAM,
                thumbnail_url="https://cdn.example.com/thumb.jpg?a=1&amp;b=2",
            )
        )

        async with routes.client() as client:
            await attach_media(bundle, client, 1024)

        assert bundle.attached is AttachedMedia.THUMBNAIL
        assert routes.requests[0].url.params["b"] == "2"

    async def test_pdf_document(self, routes, tmp_path: Path) -> None:
        doc = tmp_path / "recipe_media_1.pdf"
        doc.write_bytes(b"%PDF-1.7\n" + b"\x00" * 32)
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.PDF),
            "https://example.com/menu.pdf",
            media_path=doc,
        )

        async with routes.client() as client:
            await attach_media(bundle, client, 1024)

        assert bundle.attached is AttachedMedia.DOCUMENT
        assert bundle.parts[0].mime_type == "application/pdf"


class TestExtractionMethod:
    def test_photos(self) -> None:
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.IMAGE),
            image_paths=[Path("/tmp/a.jpg")],
        )
        assert extraction_method(bundle) is ExtractionMethod.PHOTO

    def test_image_file_source_is_photo(self) -> None:
        bundle = bundle_for(PlatformContent(platform=SourceKind.IMAGE), attached=AttachedMedia.PHOTOS)
        assert extraction_method(bundle) is ExtractionMethod.PHOTO

    @pytest.mark.parametrize("attached", [AttachedMedia.VIDEO, AttachedMedia.AUDIO])
    def test_video_and_audio(self, attached: AttachedMedia) -> None:
        bundle = bundle_for(PlatformContent(platform=SourceKind.INSTAGRAM), attached=attached)
        assert extraction_method(bundle) is ExtractionMethod.VIDEO

    def test_document_files(self) -> None:
        bundle = bundle_for(PlatformContent(platform=SourceKind.PDF), attached=AttachedMedia.DOCUMENT)
        assert extraction_method(bundle) is ExtractionMethod.FILE

    def test_thumbnail_without_text_is_visual_fallback(self) -> None:
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.INSTAGRAM, title="Chef on Instagram"),
            attached=AttachedMedia.THUMBNAIL,
        )
        assert extraction_method(bundle) is ExtractionMethod.VISUAL_FALLBACK

    def test_thumbnail_with_caption_is_text(self) -> None:
        bundle = bundle_for(
            PlatformContent(platform=SourceKind.INSTAGRAM, caption_text=RECIPE_CAPTION),
            attached=AttachedMedia.THUMBNAIL,
        )
        assert extraction_method(bundle) is ExtractionMethod.TEXT
