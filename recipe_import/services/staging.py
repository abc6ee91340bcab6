from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from recipe_import.app.domain.errors import FetchFailureError, OversizedMediaError
from recipe_import.app.infra.storage.base import MediaStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def staged_media(
    store: MediaStore,
    url: Optional[str],
    max_bytes: int,
) -> AsyncIterator[Optional[Path]]:
    """Stage remote media for the duration of the block.

    Yields the local path, or ``None`` when there is nothing to stage or the
    download failed. The staged file is released when the block exits,
    whether it exits normally or by an exception.

    Raises:
        OversizedMediaError: The reported size is above ``max_bytes``; the
            download is never started.
    """
    if not url:
        yield None
        return

    size = await store.probe_size(url)
    if size is not None and size > max_bytes:
        raise OversizedMediaError(url, size, max_bytes)

    local_path: Optional[Path] = None
    try:
        try:
            local_path = await store.stage_remote_media(url, max_bytes)
        except FetchFailureError as error:
            logger.warning("Media staging failed, continuing without media: %s", error)
        yield local_path
    finally:
        await store.release_staged_media(local_path)
