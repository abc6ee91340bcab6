# recipe_import/app/infra/storage/local_provider.py
"""
Local temp-directory media store.
Remote media is streamed with httpx so the size cap is enforced while downloading.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import httpx

from recipe_import.app.domain.errors import FetchFailureError, OversizedMediaError
from recipe_import.app.infra.storage.base import MediaStore
from recipe_import.services.fetcher import FETCH_ERRORS, MOBILE_UA, probe_media

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_BYTES = 64 * 1024


class LocalMediaStore(MediaStore):
    def __init__(
        self,
        client: httpx.AsyncClient,
        temp_dir: Path,
        user_agent: str = MOBILE_UA,
    ):
        self._client = client
        self.temp_dir = Path(temp_dir)
        self.user_agent = user_agent

    async def probe_size(self, url: str) -> Optional[int]:
        probe = await probe_media(self._client, url, self.user_agent)
        return probe.content_length if probe else None

    async def stage_remote_media(self, url: str, max_bytes: int) -> Path:
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise FetchFailureError(url, f"cannot create staging dir: {error}") from error
        target_path = self.temp_dir / self.generate_local_name(url)

        logger.info("Staging media: %s -> %s", url, target_path)

        try:
            await self._stream_to_path(url, target_path, max_bytes)
        except FETCH_ERRORS as error:
            await self.release_staged_media(target_path)
            raise FetchFailureError(url, str(error)) from error
        except OSError as error:
            await self.release_staged_media(target_path)
            raise FetchFailureError(url, f"cannot write staged media: {error}") from error
        except (OversizedMediaError, FetchFailureError):
            await self.release_staged_media(target_path)
            raise

        logger.info(
            "Staged media: path=%s, size=%d bytes",
            target_path,
            target_path.stat().st_size,
        )
        return target_path

    async def _stream_to_path(self, url: str, target_path: Path, max_bytes: int) -> None:
        async with self._client.stream(
            "GET",
            url,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        ) as response:
            if not response.is_success:
                raise FetchFailureError(url, f"HTTP {response.status_code}")

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise OversizedMediaError(url, int(declared), max_bytes)

            received = 0
            with target_path.open("wb") as handle:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_BYTES):
                    received += len(chunk)
                    if received > max_bytes:
                        raise OversizedMediaError(url, received, max_bytes)
                    handle.write(chunk)

    async def release_staged_media(self, local_path: Optional[Path]) -> None:
        if local_path is None:
            return

        path = Path(local_path)
        if not path.exists():
            return

        try:
            path.unlink()
            logger.debug("Released staged media: %s", path)
        except OSError as os_error:
            logger.warning(
                "Failed to release staged media %s: %s",
                path,
                os_error,
            )
