from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional, Sequence

import httpx
import pytest

from recipe_import.app.domain.errors import FetchFailureError
from recipe_import.app.domain.models import MediaPart, ThinkingPhase
from recipe_import.app.infra.storage.base import MediaStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


class RouteTable:
    """Maps (method, host, path) to canned responses for ``httpx.MockTransport``.

    Unrouted requests get a 404. Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.delays: dict[tuple[str, str, str], float] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        host: str,
        path: str,
        response: Any = None,
        *,
        method: str = "GET",
        status: int = 200,
        headers: Optional[dict[str, str]] = None,
        delay: float = 0.0,
    ) -> None:
        def build(request: httpx.Request) -> httpx.Response:
            if callable(response):
                return response(request)
            if isinstance(response, (dict, list)):
                return httpx.Response(status, json=response, headers=headers)
            if isinstance(response, bytes):
                return httpx.Response(status, content=response, headers=headers)
            return httpx.Response(status, text=response or "", headers=headers)

        key = (method, host, path)
        self.routes[key] = build
        self.delays[key] = delay

    def paths(self, host: Optional[str] = None) -> list[str]:
        return [r.url.path for r in self.requests if host is None or r.url.host == host]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.host, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, text="not found")
        if self.delays.get(key):
            await asyncio.sleep(self.delays[key])
        return self.routes[key](request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def routes() -> RouteTable:
    return RouteTable()


def html_page(head: str = "", body: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


def meta(prop: str, content: str) -> str:
    return f'<meta property="{prop}" content="{content}">'


def ld_json(data: Any) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


class MediaStoreStub(MediaStore):
    """Writes ``payload`` into ``temp_dir`` instead of downloading."""

    def __init__(
        self,
        temp_dir: Path,
        size: Optional[int] = None,
        payload: bytes = MP4_BYTES,
        fail: bool = False,
    ):
        self.temp_dir = temp_dir
        self.size = size
        self.payload = payload
        self.fail = fail
        self.download_calls = 0
        self.released: list[Optional[Path]] = []

    async def probe_size(self, url: str) -> Optional[int]:
        return self.size

    async def stage_remote_media(self, url: str, max_bytes: int) -> Path:
        self.download_calls += 1
        if self.fail:
            raise FetchFailureError(url, "HTTP 403")
        path = self.temp_dir / self.generate_local_name(url)
        path.write_bytes(self.payload)
        return path

    async def release_staged_media(self, local_path: Optional[Path]) -> None:
        self.released.append(local_path)
        if local_path is not None and local_path.exists():
            local_path.unlink()


class LanguageModelStub:
    def __init__(
        self,
        response: str = "{}",
        chunks: Sequence[str] = (),
        stream_error: Optional[Exception] = None,
    ) -> None:
        self.response = response
        self.chunks = list(chunks)
        self.stream_error = stream_error
        self.generate_calls: list[tuple[str, Sequence[MediaPart]]] = []
        self.stream_calls: list[str] = []

    async def generate_content(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        system_instruction: Optional[str] = None,
    ) -> str:
        self.generate_calls.append((prompt, parts))
        return self.response

    async def stream_content(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        system_instruction: Optional[str] = None,
    ) -> AsyncIterator[str]:
        self.stream_calls.append(prompt)
        for chunk in self.chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error


class ObserverStub:
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def on_phase(self, phase: ThinkingPhase) -> None:
        self.events.append(("phase", phase))

    def on_note(self, note: str) -> None:
        self.events.append(("note", note))

    @property
    def phases(self) -> list[ThinkingPhase]:
        return [value for kind, value in self.events if kind == "phase"]

    @property
    def notes(self) -> list[str]:
        return [value for kind, value in self.events if kind == "note"]