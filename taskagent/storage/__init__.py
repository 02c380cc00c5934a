from .base import StorageClient
from .local import LocalStorageClient
from .registry import (
    available_backends,
    configure_backend,
    get_backend,
    get_client,
    register_backend,
    unregister_backend,
)

__all__ = [
    "StorageClient",
    "LocalStorageClient",
    "available_backends",
    "configure_backend",
    "get_backend",
    "get_client",
    "register_backend",
    "unregister_backend",
]
