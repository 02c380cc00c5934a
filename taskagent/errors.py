"""Exception types raised by task-agent operations.

Everything raised inside a task is caught at the session's task boundary
and turned into a failed completion, so these mostly exist to make log
lines and tests precise.
"""


class TaskAgentError(Exception):
    """Base class for agent errors."""


class WorkspaceViolationError(TaskAgentError):
    """A file operation targeted a path outside the workspace."""

    def __init__(self, filepath: str):
        super().__init__(f"Cannot edit files outside workspace: {filepath}")
        self.filepath = filepath


class UnknownBackendError(TaskAgentError):
    """No storage backend is registered under the requested name."""


class ProtocolError(TaskAgentError):
    """A frame from the controller could not be decoded."""
