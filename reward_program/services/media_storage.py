"""Shop image storage on the local filesystem (served under media_base_url)."""
import logging
import shutil
import uuid
from functools import lru_cache
from pathlib import Path
from typing import BinaryIO

from reward_program.config import get_settings
from reward_program.errors import StorageFailed

logger = logging.getLogger("uvicorn.error")

SHOP_IMAGES_FOLDER = "shops"


class LocalMediaStorage:
    def __init__(self, root: str | Path, base_url: str = "/uploads"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(self, stream: BinaryIO, filename: str, folder: str) -> str:
        """Store the stream under <root>/<folder>/<uuid><ext>; returns its public URL."""
        ext = Path(filename or "").suffix.lower()
        unique_name = f"{uuid.uuid4()}{ext}"
        try:
            target_dir = self.root / folder
            target_dir.mkdir(parents=True, exist_ok=True)
            with (target_dir / unique_name).open("wb") as out:
                shutil.copyfileobj(stream, out)
        except OSError as e:
            logger.exception("Failed to upload file %s", filename)
            raise StorageFailed("file.upload_failed", "The file could not be uploaded.") from e
        return f"{self.base_url}/{folder}/{unique_name}"

    def delete(self, url: str) -> None:
        relative = url[len(self.base_url):] if url.startswith(self.base_url) else url
        path = self.root / relative.lstrip("/")
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.exception("Failed to delete file %s", url)
            raise StorageFailed("file.delete_failed", "The file could not be deleted.") from e


@lru_cache
def get_media_storage() -> LocalMediaStorage:
    s = get_settings()
    return LocalMediaStorage(s.media_root, s.media_base_url)
