"""Connection and session layer of the task agent.

Architecture:
- InteractiveClient: owns the controller websocket and the session map
- InteractiveSession: per-session dispatch and completion accounting
- protocol: Message / MessageType and the JSON frame codec
"""

from taskagent.daemon.client import InteractiveClient
from taskagent.daemon.session import InteractiveSession, TaskCompletion
from taskagent.daemon.protocol import Message, MessageType, decode, encode

__all__ = [
    "InteractiveClient",
    "InteractiveSession",
    "TaskCompletion",
    "Message",
    "MessageType",
    "decode",
    "encode",
]
