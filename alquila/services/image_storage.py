"""
Persistence of uploaded image files.

The endpoint layer validates uploads before they get here; storage only
writes bytes and reports where they ended up. IO errors propagate.
"""
import abc
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

import anyio

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB streaming chunks

_EXTENSIONS: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


@dataclass(frozen=True)
class StoredImageFile:
    storage_path: str
    public_url: str
    mime_type: str
    file_size_bytes: int


def extension_for(content_type: str | None) -> str:
    return _EXTENSIONS.get((content_type or "").strip().lower(), ".bin")


class ImageStorage(abc.ABC):
    @abc.abstractmethod
    async def save(
        self,
        property_id: uuid.UUID,
        stream: AsyncReadable,
        content_type: str,
        length: int,
    ) -> StoredImageFile: ...

    @abc.abstractmethod
    async def discard(self, storage_path: str) -> None:
        """Remove a saved file; missing files are ignored."""


class LocalImageStorage(ImageStorage):
    """Stores files under ``<content_root>/uploads/properties/<property id>/``."""

    def __init__(self, content_root: str | Path):
        self._content_root = Path(content_root)

    async def save(
        self,
        property_id: uuid.UUID,
        stream: AsyncReadable,
        content_type: str,
        length: int,
    ) -> StoredImageFile:
        relative_dir = PurePosixPath("uploads", "properties", property_id.hex)
        file_name = f"{uuid.uuid4().hex}{extension_for(content_type)}"
        relative_path = relative_dir / file_name

        target_dir = anyio.Path(self._content_root / relative_dir)
        await target_dir.mkdir(parents=True, exist_ok=True)

        # "x": a random name colliding with an existing file is an error, never an overwrite
        async with await anyio.open_file(target_dir / file_name, "xb") as output:
            while True:
                chunk = await stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                await output.write(chunk)

        return StoredImageFile(
            storage_path=str(relative_path),
            public_url=f"/{relative_path}",
            mime_type=content_type,
            file_size_bytes=length,
        )

    async def discard(self, storage_path: str) -> None:
        path = anyio.Path(self._content_root / storage_path)
        try:
            await path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove stored image %s: %s", storage_path, exc)
