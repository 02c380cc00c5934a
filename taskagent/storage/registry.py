"""
Registry of named storage backends.

Built-in backends are registered here; third-party packages can add more
through the ``taskagent.storage_backends`` entry-point group, where each
entry point resolves to a StorageClient subclass (or any factory with the
same call signature).
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Callable, Dict, List, Optional

from taskagent.errors import UnknownBackendError

from .base import StorageClient
from .local import LocalStorageClient

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "taskagent.storage_backends"

BackendFactory = Callable[[Optional[str], Dict[str, Any]], StorageClient]

_backends: Dict[str, BackendFactory] = {}
# Agent-side settings per backend; message config overrides these
_defaults: Dict[str, Dict[str, Any]] = {}
_plugins_loaded = False


def register_backend(name: str, factory: BackendFactory) -> None:
    """Register a backend factory under name (replaces any existing one)."""
    _backends[name] = factory


def unregister_backend(name: str) -> None:
    """Remove a backend. Unknown names are ignored."""
    _backends.pop(name, None)
    _defaults.pop(name, None)


def configure_backend(name: str, **defaults: Any) -> None:
    """Set default config values passed to every client of backend name."""
    _defaults.setdefault(name, {}).update(defaults)


def _load_plugins() -> None:
    global _plugins_loaded
    if _plugins_loaded:
        return
    _plugins_loaded = True

    for entry_point in entry_points(group=ENTRY_POINT_GROUP):
        if entry_point.name in _backends:
            continue
        try:
            register_backend(entry_point.name, entry_point.load())
        except Exception as e:
            logger.warning(f"Failed to load storage backend '{entry_point.name}': {e}")


def available_backends() -> List[str]:
    """Names of all registered backends, sorted."""
    _load_plugins()
    return sorted(_backends)


def get_backend(name: str) -> BackendFactory:
    _load_plugins()
    try:
        return _backends[name]
    except KeyError:
        raise UnknownBackendError(f"Unknown storage backend: {name!r}") from None


def get_client(
    backend: str,
    mode: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
) -> StorageClient:
    """
    Create a client for the named backend.

    Args:
        backend: Backend name, e.g. "local"
        mode: "read" or "write" hint
        config: Backend settings from the controller message

    Raises:
        UnknownBackendError: If no backend is registered under that name
    """
    factory = get_backend(backend)
    merged = dict(_defaults.get(backend, {}))
    merged.update(config or {})
    return factory(mode, merged)


register_backend(LocalStorageClient.name, LocalStorageClient)
