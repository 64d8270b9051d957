"""run-in-roblox - run a Lua script inside Roblox Studio and stream its output.

This package provides:
- PlaceRunner: one Studio session, from plugin install to teardown
- MessageReceiver: the local HTTP endpoint the Studio plugin reports to
- OutputChannel: the stream of output events handed to the caller
"""

__version__ = "0.1.0"

from .channel import ChannelClosed, OutputChannel
from .errors import (
    MessageReceiverError,
    PluginWriteError,
    ProtocolError,
    RelayDeliveryError,
    RunCancelledError,
    RunnerError,
    StudioLaunchError,
    StudioNotFoundError,
    StudioTimeoutError,
)
from .message_receiver import MessageReceiver, MessageReceiverOptions, find_free_port
from .messages import Message, Messages, OutputLevel, RobloxMessage, Start, Stop
from .place_runner import STUDIO_STARTUP_TIMEOUT, PlaceRunner

__all__ = [
    "ChannelClosed",
    "Message",
    "MessageReceiver",
    "MessageReceiverError",
    "MessageReceiverOptions",
    "Messages",
    "OutputChannel",
    "OutputLevel",
    "PlaceRunner",
    "PluginWriteError",
    "ProtocolError",
    "RelayDeliveryError",
    "RobloxMessage",
    "RunCancelledError",
    "RunnerError",
    "STUDIO_STARTUP_TIMEOUT",
    "Start",
    "Stop",
    "StudioLaunchError",
    "StudioNotFoundError",
    "StudioTimeoutError",
    "find_free_port",
]
