import asyncio
import logging
import time
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    pass


def storage_path(entity_type: str, entity_id: Optional[str], filename: str, now: Optional[float] = None) -> str:
    """``{entityType}/{entityId|new}/{timestamp}-{filename}``, timestamp in epoch milliseconds"""
    timestamp = int((now if now is not None else time.time()) * 1000)
    name = PurePosixPath(filename.replace("\\", "/")).name or "file"
    return f"{entity_type}/{entity_id or 'new'}/{timestamp}-{name}"


class ObjectStorage:
    """Stores uploaded objects below a root directory and hands out their public URLs"""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{quote(path)}"

    async def put(self, path: str, data: bytes) -> str:
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise StorageError(f"Refusing to write outside storage root: {path}")
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            logger.error(f"Upload of {path} failed: {e}")
            raise StorageError(f"Failed to store {path}") from e
        logger.info(f"Stored {len(data)} bytes at {path}")
        return self.url_for(path)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
