"""Fetch and save data artifacts through pluggable storage backends."""

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from taskagent.errors import WorkspaceViolationError
from taskagent.storage import get_client
from taskagent.tools.files import ensure_valid_path, mkdirp, resolve_path

logger = logging.getLogger(__name__)

ARTIFACTS_DIR = "artifacts"
DATA_FILE = "data"
INIT_FILE = "__init__.py"
CHUNK_SIZE = 64 * 1024


def init_file(name: str, data_type: str) -> str:
    """
    Build the __init__.py source stored next to a fetched artifact.

    Importing the artifact directory exposes name, type and the data
    deserialized through taskagent.serialization.
    """
    data_path_code = f"path.join(path.dirname(__file__), {DATA_FILE!r})"
    return "\n".join([
        "import taskagent.serialization",
        "from os import path",
        f"name = {name!r}",
        f"type = {data_type!r}",
        f"data = taskagent.serialization.load({data_type!r}, open({data_path_code}, 'rb'))",
        "",
    ])


async def read_chunks(path: Path, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield the contents of a local file in chunks."""
    handle = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(handle.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()


async def fetch_artifact(
    name: str,
    descriptor: Dict[str, Any],
    data_type: str,
    workspace: Path,
    config: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Download an artifact into <workspace>/artifacts/<name>/.

    The data is streamed into a temporary file that only becomes
    ``data`` once the whole stream has been written; ``__init__.py`` is
    written last.

    Args:
        name: Artifact name (directory name)
        descriptor: Remote data descriptor, must contain "backend"
        data_type: Declared type, used by the serialization hook
        workspace: Workspace root
        config: Backend configuration from the controller

    Returns:
        The artifact directory
    """
    artifacts_root = (Path(workspace) / ARTIFACTS_DIR).resolve()
    artifact_dir = ensure_valid_path(name, artifacts_root)
    if artifact_dir == artifacts_root:
        raise WorkspaceViolationError(str(Path(ARTIFACTS_DIR) / name))
    await asyncio.to_thread(mkdirp, artifact_dir)

    client = get_client(descriptor["backend"], "read", config)
    data_path = artifact_dir / DATA_FILE
    partial_path = artifact_dir / (DATA_FILE + ".part")

    size = 0
    handle = await asyncio.to_thread(open, partial_path, "wb")
    try:
        async for chunk in client.get_file_stream(descriptor):
            await asyncio.to_thread(handle.write, chunk)
            size += len(chunk)
    finally:
        handle.close()
    await asyncio.to_thread(partial_path.replace, data_path)

    init_path = artifact_dir / INIT_FILE
    await asyncio.to_thread(init_path.write_text, init_file(name, data_type), "utf-8")

    logger.info(f"Fetched artifact '{name}' ({size} bytes) into {artifact_dir}")
    return artifact_dir


async def save_artifact(
    filepath: str,
    name: str,
    backend: str,
    workspace: Path,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Upload a local file to a storage backend.

    Returns:
        The data descriptor produced by the backend
    """
    client = get_client(backend, "write", config)
    path = resolve_path(filepath, workspace)
    descriptor = await client.put_file_stream(name, read_chunks(path))
    logger.info(f"Saved {path} to '{backend}' as '{name}'")
    return descriptor
