"""Messages exchanged with the Studio plugin.

Inbound requests decode to exactly one of three shapes:

    Start                   the plugin is up and about to run the script
    Stop                    the script finished, no more output follows
    Messages(messages)      a non-empty batch of RobloxMessage events

Message is a closed union of these three; consumers handle each case.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class MessageDecodeError(ValueError):
    """Request payload does not describe a valid message."""

    pass


class OutputLevel(str, Enum):
    """Severity of a line printed inside Studio."""

    PRINT = "Print"
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"


@dataclass(frozen=True)
class RobloxMessage:
    """One line of output produced by the script."""

    level: OutputLevel
    body: str

    @classmethod
    def from_dict(cls, data: dict) -> "RobloxMessage":
        if not isinstance(data, dict):
            raise MessageDecodeError("message must be an object")
        if data.get("type") != "Output":
            raise MessageDecodeError(f"unknown message type: {data.get('type')!r}")

        try:
            level = OutputLevel(data.get("level"))
        except ValueError:
            raise MessageDecodeError(f"unknown output level: {data.get('level')!r}")

        body = data.get("body")
        if not isinstance(body, str):
            raise MessageDecodeError("message body must be a string")

        return cls(level=level, body=body)


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class Messages:
    messages: tuple[RobloxMessage, ...]


Message = Union[Start, Stop, Messages]


def decode_message(route: str, payload: dict) -> Message:
    """Decode an authenticated request into a Message.

    Args:
        route: Request path without leading slash ("start", "stop", "messages")
        payload: Parsed JSON body

    Raises:
        MessageDecodeError: If the route is unknown or the payload is invalid
    """
    if route == "start":
        return Start()
    if route == "stop":
        return Stop()
    if route == "messages":
        raw = payload.get("messages")
        if not isinstance(raw, list) or not raw:
            raise MessageDecodeError("messages must be a non-empty list")
        return Messages(tuple(RobloxMessage.from_dict(m) for m in raw))

    raise MessageDecodeError(f"unknown route: {route!r}")
