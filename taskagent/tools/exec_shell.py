"""Subprocess supervision with streamed output for RUN / KILL."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from taskagent.tools.tokenizer import parse_command

logger = logging.getLogger(__name__)

OutputCallback = Callable[[bytes], Awaitable[None]]

CHUNK_SIZE = 64 * 1024


class ProcessSupervisor:
    """
    Spawns and tracks the processes started by one session.

    Each RUN gets its own ordinal (0, 1, 2, ... in RUN order) and its own
    handle, so overlapping RUNs can be killed independently. A process is
    forgotten as soon as it exits.

    The environment mapping is shared with the owning client and copied
    at spawn time, so SET_ENV affects every later RUN but never a running
    process.
    """

    def __init__(
        self,
        env: Mapping[str, str],
        cwd: Optional[Path] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.env = env
        self.cwd = cwd
        self.chunk_size = chunk_size
        self.processes: Dict[int, asyncio.subprocess.Process] = {}
        self._next_index = 0

    @property
    def running(self) -> List[int]:
        """Ordinals of processes that have not exited yet."""
        return sorted(self.processes)

    async def run(
        self,
        command: str,
        on_stdout: OutputCallback,
        on_stderr: OutputCallback,
    ) -> int:
        """
        Run command to completion, streaming its output.

        Args:
            command: Command string, split with parse_command (no shell)
            on_stdout: Awaited with each stdout chunk, in order
            on_stderr: Awaited with each stderr chunk, in order

        Returns:
            The process exit code (negative when killed by a signal)

        Raises:
            OSError: If the executable cannot be spawned

        An exception raised by a callback propagates once the process has
        been terminated and reaped.
        """
        index = self._next_index
        self._next_index += 1

        cmd, *args = parse_command(command)
        process = await asyncio.create_subprocess_exec(
            cmd,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.cwd) if self.cwd else None,
            env=dict(self.env),
        )
        self.processes[index] = process
        logger.debug(f"Spawned RUN #{index} (pid {process.pid}): {command}")

        pumps = [
            asyncio.ensure_future(self._pump(process.stdout, on_stdout)),
            asyncio.ensure_future(self._pump(process.stderr, on_stderr)),
        ]
        try:
            await asyncio.gather(*pumps)
            exit_code = await process.wait()
        except (Exception, asyncio.CancelledError):
            await self._abort(index, process, pumps)
            raise
        finally:
            self.processes.pop(index, None)

        logger.debug(f"RUN #{index} (pid {process.pid}) exited with {exit_code}")
        return exit_code

    async def _pump(self, stream: asyncio.StreamReader, callback: OutputCallback) -> None:
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            await callback(chunk)

    async def _abort(
        self,
        index: int,
        process: asyncio.subprocess.Process,
        pumps: List[asyncio.Future],
    ) -> None:
        """Stop output forwarding, then terminate and reap the process."""
        for pump in pumps:
            pump.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)

        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
        await process.wait()
        logger.warning(f"RUN #{index} (pid {process.pid}) aborted, exit code {process.returncode}")

    def kill(self, index: Optional[int] = None) -> bool:
        """
        Request termination of a running process.

        Args:
            index: RUN ordinal; None targets the most recent running process

        Returns:
            True if a termination signal was sent
        """
        if index is None:
            if not self.processes:
                return False
            index = max(self.processes)

        process = self.processes.get(index)
        if process is None:
            return False

        try:
            process.terminate()
        except ProcessLookupError:
            return False

        logger.info(f"Terminated RUN #{index} (pid {process.pid})")
        return True
