"""
Local filesystem storage backend.
Stores artifacts as plain files under a root directory.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from .base import StorageClient

logger = logging.getLogger(__name__)

DEFAULT_ROOT = Path.home() / ".config" / "taskagent" / "storage"
CHUNK_SIZE = 64 * 1024


class LocalStorageClient(StorageClient):
    """Files under a local directory (config key: root)."""

    name = "local"

    def __init__(self, mode: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        super().__init__(mode, config)
        self.root = Path(self.config.get("root") or DEFAULT_ROOT).expanduser()
        self.chunk_size = int(self.config.get("chunk_size") or CHUNK_SIZE)

    def _path_for(self, name: str) -> Path:
        path = (self.root / name).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid artifact name for local storage: {name!r}")
        return path

    async def get_file_stream(self, descriptor: Dict[str, Any]) -> AsyncIterator[bytes]:
        path = Path(descriptor["data"]["path"])
        handle = await asyncio.to_thread(open, path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def put_file_stream(self, name: str, stream: AsyncIterator[bytes]) -> Dict[str, Any]:
        path = self._path_for(name)
        partial_path = path.with_name(path.name + ".part")
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)

        # An existing object under name stays intact until the new one is complete
        size = 0
        handle = await asyncio.to_thread(open, partial_path, "wb")
        try:
            async for chunk in stream:
                await asyncio.to_thread(handle.write, chunk)
                size += len(chunk)
        finally:
            handle.close()
        await asyncio.to_thread(partial_path.replace, path)

        logger.debug(f"Stored {size} bytes at {path}")
        return {
            "backend": self.name,
            "name": name,
            "data": {"path": str(path), "size": size},
        }
