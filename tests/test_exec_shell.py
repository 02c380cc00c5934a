"""
Tests for tools/exec_shell.py and the RUN / KILL handlers.

These spawn real processes, so they only run on POSIX systems.
"""

import asyncio
import os
import shutil
import signal
import sys
import tempfile
import unittest
from pathlib import Path

from fakes import FakeConnection

from taskagent.daemon.protocol import Message, MessageType
from taskagent.daemon.session import InteractiveSession
from taskagent.tools.exec_shell import ProcessSupervisor


def message(msg_type, *data):
    return Message("s1", msg_type, list(data), raw_type=msg_type.value)


async def wait_for_running(supervisor, count=1, timeout=5.0):
    """Wait until the supervisor tracks count live processes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(supervisor.running) < count:
        if loop.time() > deadline:
            raise AssertionError("process did not start in time")
        await asyncio.sleep(0.01)


@unittest.skipIf(sys.platform == "win32", "POSIX commands required")
class TestRun(unittest.IsolatedAsyncioTestCase):
    """Test cases for RUN."""

    def setUp(self):
        self.workspace = Path(tempfile.mkdtemp()).resolve()
        self.conn = FakeConnection()
        self.env = dict(os.environ)
        self.session = InteractiveSession("s1", self.conn, self.workspace, self.env)

    def tearDown(self):
        shutil.rmtree(self.workspace, ignore_errors=True)

    async def test_echo_streams_stdout_then_completes(self):
        await self.session.on_message(message(MessageType.RUN, "echo hello"))

        messages = self.conn.messages()
        self.assertEqual(self.conn.output(MessageType.STDOUT), b"hello\n")
        self.assertEqual(messages[0].type, MessageType.STDOUT)
        self.assertEqual(messages[-1].type, MessageType.COMPLETE)
        self.assertEqual(messages[-1].data, [0])
        self.assertEqual(self.session.active_count, 0)

    async def test_quoted_argument_reaches_process(self):
        await self.session.on_message(message(MessageType.RUN, 'echo "a  b"'))
        self.assertEqual(self.conn.output(MessageType.STDOUT), b"a  b\n")

    async def test_exit_code_is_forwarded(self):
        await self.session.on_message(message(MessageType.RUN, 'sh -c "exit 3"'))
        self.assertEqual(self.conn.completions(), [[3]])

    async def test_stderr_is_streamed_separately(self):
        await self.session.on_message(message(MessageType.RUN, 'sh -c "echo oops >&2"'))

        self.assertEqual(self.conn.output(MessageType.STDERR), b"oops\n")
        self.assertEqual(self.conn.output(MessageType.STDOUT), b"")
        self.assertEqual(self.conn.completions(), [[0]])

    async def test_missing_executable_completes_with_1(self):
        await self.session.on_message(message(MessageType.RUN, "definitely-not-a-command-xyz"))

        self.assertEqual(self.conn.completions(), [[1]])
        self.assertEqual(self.session.active_count, 0)

    async def test_run_accepts_plain_string_data(self):
        await self.session.on_message(Message("s1", MessageType.RUN, "echo hi", raw_type="RUN"))
        self.assertEqual(self.conn.output(MessageType.STDOUT), b"hi\n")

    async def test_set_env_is_visible_to_later_runs(self):
        await self.session.on_message(message(MessageType.SET_ENV, "TASKAGENT_GREETING", "hey"))
        await self.session.on_message(message(MessageType.RUN, 'sh -c "echo $TASKAGENT_GREETING"'))

        self.assertEqual(self.conn.output(MessageType.STDOUT), b"hey\n")
        self.assertNotIn("TASKAGENT_GREETING", os.environ)

    async def test_process_runs_in_workspace(self):
        await self.session.on_message(message(MessageType.RUN, 'sh -c "pwd -P"'))

        stdout = self.conn.output(MessageType.STDOUT).decode().strip()
        self.assertEqual(os.path.realpath(stdout), os.path.realpath(self.workspace))


@unittest.skipIf(sys.platform == "win32", "POSIX signals required")
class TestKill(unittest.IsolatedAsyncioTestCase):
    """Test cases for KILL."""

    def setUp(self):
        self.workspace = Path(tempfile.mkdtemp()).resolve()
        self.conn = FakeConnection()
        self.session = InteractiveSession("s1", self.conn, self.workspace, dict(os.environ))

    def tearDown(self):
        shutil.rmtree(self.workspace, ignore_errors=True)

    async def test_kill_terminates_running_process(self):
        run = asyncio.create_task(self.session.on_message(message(MessageType.RUN, "sleep 30")))
        await wait_for_running(self.session.supervisor)
        self.assertEqual(self.session.active_count, 1)

        await self.session.on_message(message(MessageType.KILL))
        self.assertEqual(self.conn.completions(), [[0]])

        await asyncio.wait_for(run, timeout=5)
        self.assertEqual(self.conn.completions(), [[0], [-signal.SIGTERM]])
        self.assertEqual(self.session.active_count, 0)

    async def test_kill_targets_most_recent_run(self):
        first = asyncio.create_task(self.session.on_message(message(MessageType.RUN, "sleep 30")))
        await wait_for_running(self.session.supervisor, 1)
        second = asyncio.create_task(self.session.on_message(message(MessageType.RUN, "sleep 30")))
        await wait_for_running(self.session.supervisor, 2)

        await self.session.on_message(message(MessageType.KILL))
        await asyncio.wait_for(second, timeout=5)
        self.assertFalse(first.done())
        self.assertEqual(self.session.supervisor.running, [0])

        await self.session.on_message(message(MessageType.KILL))
        await asyncio.wait_for(first, timeout=5)
        self.assertEqual(self.session.active_count, 0)

    async def test_kill_by_index_targets_that_run(self):
        first = asyncio.create_task(self.session.on_message(message(MessageType.RUN, "sleep 30")))
        await wait_for_running(self.session.supervisor, 1)
        second = asyncio.create_task(self.session.on_message(message(MessageType.RUN, "sleep 30")))
        await wait_for_running(self.session.supervisor, 2)

        await self.session.on_message(message(MessageType.KILL, 0))
        await asyncio.wait_for(first, timeout=5)
        self.assertFalse(second.done())

        await self.session.on_message(message(MessageType.KILL, 1))
        await asyncio.wait_for(second, timeout=5)
        self.assertEqual(self.session.supervisor.running, [])

    async def test_non_integer_index_kills_nothing(self):
        run = asyncio.create_task(self.session.on_message(message(MessageType.RUN, "sleep 30")))
        await wait_for_running(self.session.supervisor)

        await self.session.on_message(message(MessageType.KILL, None))
        await self.session.on_message(message(MessageType.KILL, "0"))
        self.assertEqual(self.conn.completions(), [[0], [0]])
        self.assertEqual(self.session.supervisor.running, [0])

        await self.session.on_message(message(MessageType.KILL, 0))
        await asyncio.wait_for(run, timeout=5)
        self.assertEqual(self.session.active_count, 0)


@unittest.skipIf(sys.platform == "win32", "POSIX commands required")
class TestProcessSupervisor(unittest.IsolatedAsyncioTestCase):
    """Test cases for ProcessSupervisor on its own."""

    async def test_callbacks_receive_output_in_order(self):
        supervisor = ProcessSupervisor(dict(os.environ))
        chunks = []

        async def collect(chunk):
            chunks.append(chunk)

        exit_code = await supervisor.run('sh -c "echo one; echo two"', collect, collect)

        self.assertEqual(exit_code, 0)
        self.assertEqual(b"".join(chunks), b"one\ntwo\n")
        self.assertEqual(supervisor.running, [])

    async def test_environment_is_copied_at_spawn(self):
        env = dict(os.environ, TASKAGENT_VALUE="before")
        supervisor = ProcessSupervisor(env)
        out = []

        async def collect(chunk):
            out.append(chunk)

        async def ignore(chunk):
            pass

        await supervisor.run('sh -c "echo $TASKAGENT_VALUE"', collect, ignore)
        env["TASKAGENT_VALUE"] = "after"
        await supervisor.run('sh -c "echo $TASKAGENT_VALUE"', collect, ignore)

        self.assertEqual(b"".join(out), b"before\nafter\n")

    async def test_failing_callback_terminates_process(self):
        supervisor = ProcessSupervisor(dict(os.environ))
        handles = []

        async def explode(chunk):
            handles.append(supervisor.processes[0])
            raise RuntimeError("forwarding failed")

        async def ignore(chunk):
            pass

        with self.assertLogs("taskagent.tools.exec_shell", level="WARNING"):
            with self.assertRaises(RuntimeError):
                await asyncio.wait_for(
                    supervisor.run('sh -c "echo started; exec sleep 30"', explode, ignore),
                    timeout=5,
                )

        self.assertEqual(supervisor.running, [])
        self.assertEqual(handles[0].returncode, -signal.SIGTERM)

    def test_kill_with_nothing_running(self):
        supervisor = ProcessSupervisor({})
        self.assertFalse(supervisor.kill())
        self.assertFalse(supervisor.kill(3))


if __name__ == "__main__":
    unittest.main()
