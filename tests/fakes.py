"""Test doubles shared by the session and client tests."""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

from websockets.exceptions import ConnectionClosed

from taskagent.daemon.protocol import Message, MessageType, decode
from taskagent.storage import StorageClient


class FakeConnection:
    """Records outbound frames; optionally replays inbound ones."""

    def __init__(self, incoming: Optional[List[str]] = None):
        self.frames: List[str] = []
        self.incoming = list(incoming or [])
        self.closed = False

    async def send(self, frame: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, None)
        self.frames.append(frame)

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iter_incoming()

    async def _iter_incoming(self):
        for frame in self.incoming:
            yield frame

    def messages(self) -> List[Message]:
        # The first frame may be the plain-text agent id
        return [decode(frame) for frame in self.frames if frame.startswith("{")]

    def completions(self) -> List[list]:
        return [m.data for m in self.messages() if m.type == MessageType.COMPLETE]

    def output(self, msg_type: MessageType) -> bytes:
        return b"".join(m.data for m in self.messages() if m.type == msg_type)


class BlockingStorageClient(StorageClient):
    """Streams one chunk, then waits for release before finishing."""

    name = "blocking"
    release: asyncio.Event

    async def get_file_stream(self, descriptor: Dict[str, Any]) -> AsyncIterator[bytes]:
        yield b"partial"
        await self.release.wait()
        yield b"-rest"

    async def put_file_stream(self, name: str, stream: AsyncIterator[bytes]) -> Dict[str, Any]:
        async for _ in stream:
            pass
        await self.release.wait()
        return {"backend": self.name, "name": name, "data": {}}


class FailingStorageClient(StorageClient):
    """Breaks part-way through every transfer."""

    name = "failing"

    async def get_file_stream(self, descriptor: Dict[str, Any]) -> AsyncIterator[bytes]:
        yield b"partial"
        raise ConnectionResetError("remote went away")

    async def put_file_stream(self, name: str, stream: AsyncIterator[bytes]) -> Dict[str, Any]:
        raise ConnectionResetError("remote went away")
