"""Workspace file operations used by ADD_FILE, REMOVE_FILE and artifacts."""

import asyncio
import os
from pathlib import Path
from typing import Union

from taskagent.errors import WorkspaceViolationError


def resolve_path(filepath: Union[str, Path], workspace: Path) -> Path:
    """Resolve filepath against the workspace root (absolute paths pass through)."""
    return (Path(workspace) / filepath).resolve()


def ensure_valid_path(filepath: Union[str, Path], workspace: Path) -> Path:
    """
    Reject paths that resolve outside the workspace.

    Args:
        filepath: Requested path, relative to the workspace or absolute
        workspace: Workspace root directory

    Returns:
        The resolved absolute path

    Raises:
        WorkspaceViolationError: If the path escapes the workspace

    Example:
        >>> ensure_valid_path("sub/file.txt", Path("/work"))
        PosixPath('/work/sub/file.txt')
        >>> ensure_valid_path("../outside.txt", Path("/work"))
        Traceback (most recent call last):
        ...
        WorkspaceViolationError: Cannot edit files outside workspace: ../outside.txt
    """
    target = resolve_path(filepath, workspace)
    root = Path(workspace).resolve()

    try:
        relative = os.path.relpath(target, root)
    except ValueError:
        # Different drive on Windows
        raise WorkspaceViolationError(str(filepath))

    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise WorkspaceViolationError(str(filepath))

    return target


def mkdirp(path: Path) -> None:
    """Create path and any missing parents. An existing directory is fine."""
    path.mkdir(parents=True, exist_ok=True)


def _write(path: Path, content: Union[str, bytes]) -> None:
    mkdirp(path.parent)
    if isinstance(content, (bytes, bytearray)):
        path.write_bytes(bytes(content))
    else:
        path.write_text(content, encoding="utf-8")


async def write_file(path: Path, content: Union[str, bytes]) -> None:
    """Create parent directories, then write content (replacing any file)."""
    await asyncio.to_thread(_write, path, content)


async def remove_file(path: Path) -> None:
    """Delete a file. Missing files raise FileNotFoundError."""
    await asyncio.to_thread(path.unlink)
