"""Controller connection and session multiplexing.

The client opens one websocket to the controller, identifies itself by
sending its agent id as the first frame, then decodes every incoming
frame into a Message and hands it to the session it names. Each message
is processed in its own asyncio task, so a slow operation in one session
never holds up dispatch for the others.

Usage:
    client = InteractiveClient("agent-1", "ws://controller:8080/agents")
    asyncio.run(client.run())
"""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed

from taskagent.daemon.protocol import Message, decode
from taskagent.daemon.session import InteractiveSession
from taskagent.errors import ProtocolError
from taskagent.tools.exec_shell import CHUNK_SIZE

logger = logging.getLogger(__name__)


class InteractiveClient:
    """
    Owns the controller connection and the live sessions.

    Sessions are created on their first message and dropped as soon as
    they have no message in flight; a later message with the same id
    simply creates a fresh session.
    """

    def __init__(
        self,
        agent_id: str,
        host: str,
        workspace: Optional[Path] = None,
        env: Optional[MutableMapping[str, str]] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        """
        Args:
            agent_id: Identifier sent to the controller on connect
            host: Controller websocket URL
            workspace: Root for file operations (default: current directory)
            env: Environment table for spawned processes (default: copy of os.environ)
            chunk_size: Read size for process output and file streams
        """
        self.agent_id = agent_id
        self.host = host
        self.workspace = Path(workspace or Path.cwd()).resolve()
        self.env: MutableMapping[str, str] = dict(os.environ) if env is None else env
        self.chunk_size = chunk_size

        self.ws: Any = None
        self.sessions: Dict[str, InteractiveSession] = {}
        self._tasks: Set[asyncio.Task] = set()

    async def connect(self) -> None:
        """Open the connection and send the identification frame."""
        self.ws = await websockets.connect(self.host, max_size=None)
        await self.ws.send(self.agent_id)
        logger.info(f"Connected to {self.host} as '{self.agent_id}'")

    async def run(self) -> None:
        """Connect and process messages until the connection closes."""
        await self.connect()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        try:
            async for frame in self.ws:
                self.dispatch(frame)
        except ConnectionClosed as e:
            logger.warning(f"Connection to {self.host} lost: {e}")
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            stats = self.get_stats()
            logger.info(
                f"Disconnected ({stats['active_sessions']} sessions, "
                f"{stats['in_flight']} tasks in flight)"
            )

    def dispatch(self, frame: Any) -> Optional[asyncio.Task]:
        """
        Decode a frame and schedule its processing.

        Returns:
            The task processing the message, or None for undecodable frames
        """
        try:
            msg = decode(frame)
        except ProtocolError as e:
            logger.warning(f"Skipping malformed frame: {e}")
            return None

        task = asyncio.create_task(self.on_message(msg))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def get_session(self, session_id: str) -> InteractiveSession:
        """Return the live session for session_id, creating it if needed."""
        session = self.sessions.get(session_id)
        if session is None:
            session = InteractiveSession(
                session_id,
                self.ws,
                self.workspace,
                self.env,
                on_idle=self._on_session_idle,
                chunk_size=self.chunk_size,
            )
            self.sessions[session_id] = session
            logger.debug(f"Created session {session_id}")
        return session

    async def on_message(self, msg: Message) -> None:
        session = self.get_session(msg.session_id)
        await session.on_message(msg)

    def _on_session_idle(self, session: InteractiveSession) -> None:
        if self.sessions.get(session.session_id) is session:
            del self.sessions[session.session_id]
            logger.debug(f"Removed idle session {session.session_id}")

    def _signal_handler(self) -> None:
        """Close the connection on SIGTERM/SIGINT; run() then returns."""
        logger.info("Received shutdown signal")
        if self.ws is not None:
            task = asyncio.create_task(self.ws.close())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def get_stats(self) -> Dict[str, Any]:
        """Session and task counts, for logging and tests."""
        return {
            "active_sessions": len(self.sessions),
            "in_flight": sum(s.active_count for s in self.sessions.values()),
            "pending_tasks": len(self._tasks),
        }
