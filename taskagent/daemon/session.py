"""Per-session message dispatch and completion accounting.

A session is one logical conversation multiplexed over the controller
connection. It counts the messages it has accepted but not yet completed;
when that count drops back to zero the owning client forgets it.

Every accepted message ends in exactly one COMPLETE:
    - file, env and artifact tasks go through run_task (0 ok, 1 failed)
    - RUN completes with the process exit code
    - KILL completes immediately with 0
    - unknown kinds complete with 2
"""

import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, MutableMapping, Optional, Union

from websockets.exceptions import ConnectionClosed

from taskagent.daemon.protocol import Message, MessageType, encode
from taskagent.tools import artifacts
from taskagent.tools.exec_shell import CHUNK_SIZE, ProcessSupervisor
from taskagent.tools.files import ensure_valid_path, remove_file, write_file

logger = logging.getLogger(__name__)

UNKNOWN_COMMAND_EXIT_CODE = 2


class TaskCompletion:
    """
    Completion callback attached to one accepted message.

    The first call reports the result; any later call is logged and
    ignored so the session's counter can never be decremented twice.
    """

    def __init__(self, session: "InteractiveSession", message: Message):
        self.session = session
        self.message = message
        self.done = False

    async def __call__(self, exit_code: int, result: Any = None) -> None:
        if self.done:
            logger.warning(
                f"Ignoring duplicate completion for {self.message.raw_type} "
                f"in session {self.session.session_id}"
            )
            return
        self.done = True
        await self.session.on_task_complete(exit_code, result)


class InteractiveSession:
    """
    Dispatches messages for one session id.

    Not thread-safe: everything runs on the agent's event loop, and the
    in-flight counter is only touched when a message is accepted and when
    its completion fires.
    """

    def __init__(
        self,
        session_id: str,
        ws: Any,
        workspace: Path,
        env: MutableMapping[str, str],
        on_idle: Optional[Callable[["InteractiveSession"], None]] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        """
        Args:
            session_id: Opaque id from the controller
            ws: Connection with an async send(frame) method
            workspace: Root for file operations and process cwd
            env: Environment table shared by all sessions of the client
            on_idle: Called when the in-flight counter returns to zero
            chunk_size: Read size for process output and file streams
        """
        self.session_id = session_id
        self.ws = ws
        self.workspace = Path(workspace)
        self.env = env
        self.on_idle = on_idle
        self.active_count = 0
        self.supervisor = ProcessSupervisor(env, cwd=self.workspace, chunk_size=chunk_size)

    async def send_message(self, msg_type: MessageType, data: Union[list, bytes]) -> None:
        """Send a message for this session; frames to a closed connection are dropped."""
        try:
            await self.ws.send(encode(self.session_id, msg_type, data))
        except ConnectionClosed:
            logger.debug(f"Connection closed, dropped {msg_type.value} for session {self.session_id}")

    async def on_task_complete(self, exit_code: int, result: Any = None) -> None:
        data = [exit_code] if result is None else [exit_code, result]
        try:
            await self.send_message(MessageType.COMPLETE, data)
        finally:
            self.active_count -= 1
            if self.active_count == 0 and self.on_idle is not None:
                self.on_idle(self)

    async def on_message(self, msg: Message) -> None:
        """
        Accept a message and run it to completion.

        Never raises for operation failures; they are reported through
        the COMPLETE exit code.
        """
        self.active_count += 1
        completion = TaskCompletion(self, msg)

        try:
            if msg.type == MessageType.RUN:
                await self._handle_run(msg, completion)
            elif msg.type == MessageType.KILL:
                await self._handle_kill(msg, completion)
            elif msg.type == MessageType.ADD_ARTIFACT:
                await self._handle_add_artifact(msg, completion)
            elif msg.type == MessageType.SAVE_ARTIFACT:
                await self._handle_save_artifact(msg, completion)
            elif msg.type == MessageType.ADD_FILE:
                await self._handle_add_file(msg, completion)
            elif msg.type == MessageType.REMOVE_FILE:
                await self._handle_remove_file(msg, completion)
            elif msg.type == MessageType.SET_ENV:
                await self._handle_set_env(msg, completion)
            else:
                logger.warning(f"Unknown message type '{msg.raw_type}' in session {self.session_id}")
                await completion(UNKNOWN_COMMAND_EXIT_CODE)
        except Exception:
            logger.exception(f"Error handling {msg.raw_type} in session {self.session_id}")
            if not completion.done:
                await completion(1)

    async def run_task(
        self,
        operation: Callable[[], Union[Any, Awaitable[Any]]],
        completion: TaskCompletion,
    ) -> None:
        """
        Run operation and report it through completion.

        Success completes with (0, return value); any exception is logged
        and completes with 1 and no result.
        """
        exit_code = 0
        result = None
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            exit_code = 1
            result = None
            logger.exception(f"Task failed in session {self.session_id}")

        await completion(exit_code, result)

    def ensure_valid_path(self, filepath: str) -> Path:
        """Resolve filepath inside the workspace or raise WorkspaceViolationError."""
        return ensure_valid_path(filepath, self.workspace)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_run(self, msg: Message, completion: TaskCompletion) -> None:
        command = msg.data if isinstance(msg.data, str) else msg.data[0]

        async def on_stdout(chunk: bytes) -> None:
            await self.send_message(MessageType.STDOUT, chunk)

        async def on_stderr(chunk: bytes) -> None:
            await self.send_message(MessageType.STDERR, chunk)

        try:
            exit_code = await self.supervisor.run(command, on_stdout, on_stderr)
        except OSError as e:
            logger.error(f"Failed to start '{command}' in session {self.session_id}: {e}")
            await completion(1)
            return

        await completion(exit_code)

    async def _handle_kill(self, msg: Message, completion: TaskCompletion) -> None:
        # [] targets the most recent process; anything but an int index targets nothing
        index = msg.data[0] if msg.data else None
        if msg.data and (isinstance(index, bool) or not isinstance(index, int)):
            logger.debug(f"KILL in session {self.session_id}: ignoring non-integer index {index!r}")
        elif not self.supervisor.kill(index):
            logger.debug(f"KILL in session {self.session_id}: no running process to terminate")
        await completion(0)

    async def _handle_add_artifact(self, msg: Message, completion: TaskCompletion) -> None:
        async def fetch():
            name, descriptor, data_type, *rest = msg.data
            config = rest[0] if rest else None
            await artifacts.fetch_artifact(name, descriptor, data_type, self.workspace, config)

        await self.run_task(fetch, completion)

    async def _handle_save_artifact(self, msg: Message, completion: TaskCompletion) -> None:
        async def save():
            filepath, name, backend, *rest = msg.data
            config = rest[0] if rest else None
            return await artifacts.save_artifact(filepath, name, backend, self.workspace, config)

        await self.run_task(save, completion)

    async def _handle_add_file(self, msg: Message, completion: TaskCompletion) -> None:
        async def add_file():
            filepath, content = msg.data
            path = self.ensure_valid_path(filepath)
            await write_file(path, content)

        await self.run_task(add_file, completion)

    async def _handle_remove_file(self, msg: Message, completion: TaskCompletion) -> None:
        async def remove():
            filepath, = msg.data
            path = self.ensure_valid_path(filepath)
            await remove_file(path)

        await self.run_task(remove, completion)

    async def _handle_set_env(self, msg: Message, completion: TaskCompletion) -> None:
        def set_env():
            name, value = msg.data
            self.env[str(name)] = str(value)

        await self.run_task(set_env, completion)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "active_count": self.active_count,
            "running_processes": self.supervisor.running,
        }
