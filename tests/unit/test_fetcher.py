from __future__ import annotations

import httpx
import pytest

from recipe_import.app.domain.models import SourceKind
from recipe_import.services.fetcher import (
    clean_string,
    extract_meta_tags,
    extract_structured_data,
    fetch_bytes,
    fetch_html,
    fetch_json,
    fetch_oembed,
    find_best_thumbnail,
    html_to_text,
    probe_media,
    safe_json_loads,
    unescape_json_url,
)
from conftest import html_page, ld_json, meta


class TestExtractMetaTags:
    def test_property_before_content(self) -> None:
        html = html_page(meta("og:title", "Lasagna") + meta("og:image", "https://cdn.example.com/l.jpg"))

        tags = extract_meta_tags(html)

        assert tags["og:title"] == "Lasagna"
        assert tags["og:image"] == "https://cdn.example.com/l.jpg"

    def test_content_before_property(self) -> None:
        html = '<meta content="Slow cooked ragu" property="og:description">'
        assert extract_meta_tags(html)["og:description"] == "Slow cooked ragu"

    def test_name_attribute_and_entities(self) -> None:
        html = '<meta name="description" content="Mac &amp; cheese"><title> Mac &amp; Cheese </title>'

        tags = extract_meta_tags(html)

        assert tags["description"] == "Mac & cheese"
        assert tags["title"] == "Mac & Cheese"

    def test_forward_order_wins_on_duplicates(self) -> None:
        html = meta("og:title", "First") + '<meta content="Second" property="og:title">'
        assert extract_meta_tags(html)["og:title"] == "First"

    def test_empty_html(self) -> None:
        assert extract_meta_tags("") == {}


class TestHtmlToText:
    def test_drops_noise_blocks_and_tags(self) -> None:
        html = html_page(
            "<style>body { color: red }</style>",
            "<nav>Home | About</nav><h1>Pancakes</h1><p>Mix&nbsp;flour\n\n and milk.</p>"
            "<script>var x = 1;</script><footer>(c) 2024</footer>",
        )

        assert html_to_text(html) == "Pancakes Mix flour and milk."

    def test_empty(self) -> None:
        assert html_to_text("") == ""


class TestExtractStructuredData:
    def test_returns_recipe_block(self) -> None:
        recipe = {"@type": "Recipe", "name": "Lasagna", "recipeIngredient": ["pasta"]}
        html = html_page(ld_json({"@type": "Organization", "name": "Site"}) + ld_json(recipe))

        data = extract_structured_data(html)

        assert data is not None
        assert '"Lasagna"' in data
        assert "Organization" not in data

    def test_skips_invalid_json(self) -> None:
        html = '<script type="application/ld+json">{not json</script>'
        assert extract_structured_data(html) is None

    def test_caps_length(self) -> None:
        recipe = {"@type": "Recipe", "description": "x" * 500}
        data = extract_structured_data(html_page(ld_json(recipe)), max_chars=100)

        assert data is not None
        assert len(data) == 100


class TestSmallHelpers:
    def test_unescape_json_url(self) -> None:
        raw = "https:\\/\\/v16.tiktokcdn.com\\/video\\u002Fclip.mp4?a=1&amp;b=2"
        assert unescape_json_url(raw) == "https://v16.tiktokcdn.com/video/clip.mp4?a=1&b=2"

    def test_clean_string(self) -> None:
        assert clean_string("  hi ") == "hi"
        assert clean_string("   ") is None
        assert clean_string(3) is None

    def test_safe_json_loads(self) -> None:
        assert safe_json_loads('{"a": 1}') == {"a": 1}
        assert safe_json_loads("{nope") is None
        assert safe_json_loads(None) is None

    def test_find_best_thumbnail_prefers_preference_then_size(self) -> None:
        thumbnails = [
            {"url": "https://i.ytimg.com/small.jpg", "width": 120, "height": 90},
            {"url": "https://i.ytimg.com/max.jpg", "width": 1280, "height": 720, "preference": 1},
            {"url": "https://i.ytimg.com/big.jpg", "width": 1920, "height": 1080},
            {"width": 4000},
        ]
        assert find_best_thumbnail(thumbnails) == "https://i.ytimg.com/max.jpg"

    def test_find_best_thumbnail_without_entries(self) -> None:
        assert find_best_thumbnail(None) is None
        assert find_best_thumbnail([{"width": 10}]) is None


class TestFetchers:
    async def test_fetch_html_returns_body(self, routes) -> None:
        routes.add("example.com", "/recipe", html_page(body="<p>hello</p>"))

        async with routes.client() as client:
            html = await fetch_html(client, "https://example.com/recipe")

        assert html is not None
        assert "hello" in html

    async def test_fetch_html_sends_user_agent(self, routes) -> None:
        routes.add("example.com", "/recipe", "ok")

        async with routes.client() as client:
            await fetch_html(client, "https://example.com/recipe", user_agent="TestAgent/1.0")

        assert routes.requests[0].headers["User-Agent"] == "TestAgent/1.0"

    async def test_fetch_html_none_on_http_error_status(self, routes) -> None:
        async with routes.client() as client:
            assert await fetch_html(client, "https://example.com/missing") is None

    async def test_fetch_html_none_on_transport_error(self, routes) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        routes.add("example.com", "/down", fail)

        async with routes.client() as client:
            assert await fetch_html(client, "https://example.com/down") is None

    async def test_malformed_url_never_raises(self, routes) -> None:
        url = "http://[::1/x"

        async with routes.client() as client:
            assert await fetch_html(client, url) is None
            assert await fetch_json(client, url) is None
            assert await fetch_bytes(client, url) is None
            assert await probe_media(client, url) is None

        assert routes.requests == []

    async def test_fetch_json_none_on_invalid_body(self, routes) -> None:
        routes.add("api.example.com", "/data", "<html>not json</html>")

        async with routes.client() as client:
            assert await fetch_json(client, "https://api.example.com/data") is None

    async def test_fetch_bytes_respects_cap(self, routes) -> None:
        routes.add("cdn.example.com", "/big.bin", b"x" * 2048)

        async with routes.client() as client:
            assert await fetch_bytes(client, "https://cdn.example.com/big.bin", max_bytes=1024) is None
            assert await fetch_bytes(client, "https://cdn.example.com/big.bin") == b"x" * 2048

    async def test_probe_media_reads_content_length(self, routes) -> None:
        routes.add(
            "cdn.example.com",
            "/clip.mp4",
            b"",
            method="HEAD",
            headers={"content-length": "12345", "content-type": "video/mp4"},
        )

        async with routes.client() as client:
            probe = await probe_media(client, "https://cdn.example.com/clip.mp4")

        assert probe is not None
        assert probe.content_length == 12345
        assert probe.content_type == "video/mp4"


class TestFetchOEmbed:
    async def test_platform_endpoint(self, routes) -> None:
        routes.add(
            "www.youtube.com",
            "/oembed",
            {"title": "Best Lasagna", "author_name": "Chef", "thumbnail_url": "https://i.ytimg.com/x.jpg"},
        )

        async with routes.client() as client:
            data = await fetch_oembed(client, "https://youtu.be/abc", SourceKind.YOUTUBE)

        assert data is not None
        assert data.title == "Best Lasagna"
        assert data.author == "Chef"
        assert data.thumbnail == "https://i.ytimg.com/x.jpg"
        assert routes.paths("noembed.com") == []

    async def test_error_payload_falls_back_to_noembed(self, routes) -> None:
        routes.add("www.tiktok.com", "/oembed", {"error": "not found"})
        routes.add("noembed.com", "/embed", {"title": "From noembed", "author_name": "someone"})

        async with routes.client() as client:
            data = await fetch_oembed(client, "https://www.tiktok.com/@a/video/1", SourceKind.TIKTOK)

        assert data is not None
        assert data.title == "From noembed"

    async def test_none_when_every_endpoint_fails(self, routes) -> None:
        async with routes.client() as client:
            assert await fetch_oembed(client, "https://example.com/x", SourceKind.WEB) is None

    @pytest.mark.parametrize(
        "kind, host",
        [
            (SourceKind.INSTAGRAM, "api.instagram.com"),
            (SourceKind.YOUTUBE, "www.youtube.com"),
            (SourceKind.TIKTOK, "www.tiktok.com"),
        ],
    )
    async def test_platform_endpoint_is_tried_first(self, routes, kind: SourceKind, host: str) -> None:
        async with routes.client() as client:
            await fetch_oembed(client, "https://example.com/post", kind)

        assert routes.requests[0].url.host == host
        assert routes.requests[-1].url.host == "noembed.com"
