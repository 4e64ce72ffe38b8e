import mimetypes
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles
import aiofiles.os

from event_ingest.schemas import MediaRef
from event_ingest.utils.logger import setup_logger

logger = setup_logger("media_store")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def generate_media_id() -> str:
    return uuid.uuid4().hex[:12]


def safe_filename(filename: str | None, mimetype: str | None = None) -> str:
    name = _UNSAFE_FILENAME_CHARS.sub("_", Path(filename or "").name).strip("._")
    if not name:
        extension = mimetypes.guess_extension(mimetype or "") or ".bin"
        name = f"media{extension}"
    return name


class MediaStoreInterface(ABC):
    @abstractmethod
    async def upload(self, content: bytes, filename: str | None, mimetype: str | None) -> MediaRef | None:
        """Store the bytes and return their public reference, or None on failure."""

    @abstractmethod
    async def delete(self, media_id: str) -> bool:
        """Remove stored media; False when it could not be removed."""


class LocalMediaStore(MediaStoreInterface):
    """Files under `media_root`, served by the app under `public_base_url`."""

    def __init__(self, media_root: str | Path, public_base_url: str):
        self.media_root = Path(media_root)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, media_id: str) -> Path | None:
        candidate = (self.media_root / media_id).resolve()
        if candidate.parent != self.media_root.resolve():
            return None
        return candidate

    async def upload(self, content: bytes, filename: str | None, mimetype: str | None) -> MediaRef | None:
        media_id = f"{generate_media_id()}_{safe_filename(filename, mimetype)}"
        file_path = self.media_root / media_id
        try:
            self.media_root.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error(f"Failed to store media {media_id}: {e}", exc_info=True)
            return None

        logger.info(f"Stored media {media_id} ({len(content)} bytes)")
        return MediaRef(
            url=f"{self.public_base_url}/{media_id}", id=media_id, mimetype=mimetype
        )

    async def delete(self, media_id: str) -> bool:
        file_path = self.path_for(media_id)
        if file_path is None:
            logger.warning(f"Refusing to delete media outside the media root: {media_id}")
            return False
        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            logger.warning(f"Media {media_id} already gone")
            return False
        except OSError as e:
            logger.error(f"Failed to delete media {media_id}: {e}")
            return False
        logger.info(f"Deleted media {media_id}")
        return True
