"""JSON-based protocol for controller <-> agent messages.

Every frame after the identification handshake is one message:

    {
        "sessionID": str,       # Opaque session identifier
        "type": str,            # Message kind, e.g. "RUN", "COMPLETE"
        "data": list | str,     # Kind-specific arguments
        "binary": bool,         # Optional; data is base64 encoded bytes
    }

Inbound kinds and their data:
    RUN            [command]
    KILL           [] or [run_index]
    ADD_ARTIFACT   [name, descriptor, type, config?]
    SAVE_ARTIFACT  [filepath, name, backend, config?]
    ADD_FILE       [filepath, content]
    REMOVE_FILE    [filepath]
    SET_ENV        [name, value]

Outbound kinds:
    STDOUT / STDERR   raw output chunk (bytes, sent base64 encoded)
    COMPLETE          [exit_code] or [exit_code, result]
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from taskagent.errors import ProtocolError


class MessageType(Enum):
    """Message kinds understood by the agent."""
    RUN = "RUN"
    KILL = "KILL"
    ADD_ARTIFACT = "ADD_ARTIFACT"
    SAVE_ARTIFACT = "SAVE_ARTIFACT"
    ADD_FILE = "ADD_FILE"
    REMOVE_FILE = "REMOVE_FILE"
    SET_ENV = "SET_ENV"
    STDOUT = "STDOUT"
    STDERR = "STDERR"
    COMPLETE = "COMPLETE"
    UNKNOWN = "UNKNOWN"  # Any kind this agent does not recognise

    @classmethod
    def from_name(cls, name: Any) -> "MessageType":
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Message:
    """A single decoded message. Never mutated after decoding."""
    session_id: str
    type: MessageType
    data: Any = field(default_factory=list)
    # Wire name as received; differs from type.value for UNKNOWN kinds
    raw_type: str = ""


def encode(session_id: str, msg_type: MessageType, data: Union[list, bytes]) -> str:
    """
    Serialize a message to a JSON text frame.

    Args:
        session_id: Target session
        msg_type: Message kind
        data: Argument list, or raw bytes for STDOUT/STDERR

    Returns:
        JSON string ready for the websocket
    """
    frame = {
        "sessionID": session_id,
        "type": msg_type.value,
    }
    if isinstance(data, (bytes, bytearray)):
        frame["data"] = base64.b64encode(bytes(data)).decode("ascii")
        frame["binary"] = True
    else:
        frame["data"] = data
    return json.dumps(frame)


def decode(frame: Union[str, bytes]) -> Message:
    """
    Deserialize a frame into a Message.

    Raises:
        ProtocolError: If the frame is not a JSON object with a sessionID
    """
    if isinstance(frame, (bytes, bytearray)):
        frame = bytes(frame).decode("utf-8")

    try:
        payload = json.loads(frame)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON frame: {e}") from e

    if not isinstance(payload, dict) or "sessionID" not in payload:
        raise ProtocolError("Frame is missing 'sessionID'")

    raw_type = str(payload.get("type", ""))
    data = payload.get("data", [])
    if payload.get("binary"):
        try:
            data = base64.b64decode(data)
        except (binascii.Error, TypeError) as e:
            raise ProtocolError(f"Invalid binary payload: {e}") from e
    elif data is None:
        data = []

    return Message(
        session_id=payload["sessionID"],
        type=MessageType.from_name(raw_type),
        data=data,
        raw_type=raw_type,
    )
