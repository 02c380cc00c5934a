"""
Base interface for artifact storage backends.
A backend streams bytes to and from named remote locations.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional


class StorageClient(ABC):
    """Abstract base class for storage backend clients."""

    name = "base"

    def __init__(self, mode: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            mode: "read" or "write" hint from the caller (may be None)
            config: Backend-specific settings sent by the controller
        """
        self.mode = mode
        self.config = dict(config or {})

    @abstractmethod
    def get_file_stream(self, descriptor: Dict[str, Any]) -> AsyncIterator[bytes]:
        """
        Open the remote data described by descriptor for reading.

        Args:
            descriptor: Data descriptor previously returned by put_file_stream

        Returns:
            Async iterator of byte chunks
        """
        pass

    @abstractmethod
    async def put_file_stream(self, name: str, stream: AsyncIterator[bytes]) -> Dict[str, Any]:
        """
        Consume stream fully and store it under name.

        Returns:
            Data descriptor that get_file_stream accepts
        """
        pass

    @classmethod
    def get_description(cls) -> str:
        """First line of the class docstring, for listings."""
        doc = (cls.__doc__ or "").strip()
        return doc.splitlines()[0] if doc else ""
