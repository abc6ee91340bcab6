# recipe_import/app/infra/storage/base.py
"""
Abstract base class for transient media storage.
Staged media lives only for the duration of the import call that created it.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from uuid import uuid4


class MediaStore(ABC):
    """
    Abstract interface for staging remote media on local storage.

    Implementations:
    - LocalMediaStore: temp directory on the local filesystem
    """

    @abstractmethod
    async def probe_size(self, url: str) -> Optional[int]:
        """
        Report the size of a remote media object without downloading it.

        Args:
            url: Remote media location

        Returns:
            Size in bytes, or None when the server does not report one
        """
        pass

    @abstractmethod
    async def stage_remote_media(self, url: str, max_bytes: int) -> Path:
        """
        Download a remote media object to a uniquely named local file.

        Args:
            url: Remote media location
            max_bytes: Abort and discard the file once it grows past this size

        Returns:
            The local path of the staged file

        Raises:
            OversizedMediaError: If the object is larger than max_bytes
            FetchFailureError: If the download fails
        """
        pass

    @abstractmethod
    async def release_staged_media(self, local_path: Optional[Path]) -> None:
        """
        Delete a staged file. Idempotent: releasing an already-released or
        never-staged path is a no-op.
        """
        pass

    def generate_local_name(self, url: str, prefix: str = "recipe_media") -> str:
        """
        Generate a unique file name for staged media.

        Format: {prefix}_{uuid}{extension}
        """
        from urllib.parse import urlsplit

        try:
            suffix = Path(urlsplit(url).path).suffix.lower()
        except ValueError:
            suffix = ""
        if not re.fullmatch(r"\.[a-z0-9]{1,5}", suffix):
            suffix = ".mp4"
        return f"{prefix}_{uuid4().hex}{suffix}"
