"""Place runner - runs one script inside Roblox Studio and relays its output.

Lifecycle of a run:
1. Locate Studio and write the plugin artifact into its plugins folder
2. Start the message receiver on the session port
3. Launch Studio on the place file
4. Wait for the plugin's start message (bounded by STUDIO_STARTUP_TIMEOUT)
5. Forward every output event to the sender until the stop message
6. Kill Studio, stop the receiver and delete the artifact

Step 6 happens on every exit path, including errors and cancel().
"""

import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from .channel import ChannelClosed
from .config import RunnerConfig
from .errors import (
    MessageReceiverError,
    PluginWriteError,
    ProtocolError,
    RelayDeliveryError,
    RunCancelledError,
    StudioLaunchError,
    StudioTimeoutError,
)
from .log import get_logger
from .message_receiver import MessageReceiver, MessageReceiverOptions
from .messages import Messages, RobloxMessage, Start, Stop
from .plugin import RunInRbxPlugin, plugin_file_name
from .studio import VINEGAR, RobloxStudio

# Seconds Studio gets to load the place and report in
STUDIO_STARTUP_TIMEOUT = 60.0

log = get_logger("runner")


class Sender(Protocol):
    def send(self, item: Optional[RobloxMessage]) -> None: ...


class KillOnExit:
    """Owns a child process and force-kills it when the block exits."""

    def __init__(self, process: subprocess.Popen):
        self.process = process
        self._killed = False

    def kill(self) -> None:
        if self._killed:
            return
        self._killed = True
        try:
            self.process.kill()
        except ProcessLookupError:
            pass  # already exited
        self.process.wait()
        log.debug("Studio process terminated", pid=self.process.pid)

    def __enter__(self) -> "KillOnExit":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.kill()
        return False


@dataclass
class PlaceRunner:
    """One session: a port, a token, a place and the script to run in it."""

    port: int
    place_path: Path
    server_id: str
    lua_script: str
    debug: bool = False
    config: Optional[RunnerConfig] = None
    startup_timeout: float = STUDIO_STARTUP_TIMEOUT

    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )
    _cancelled: threading.Event = field(
        default_factory=threading.Event, init=False, repr=False, compare=False
    )
    _receiver: Optional[MessageReceiver] = field(
        default=None, init=False, repr=False, compare=False
    )

    def cancel(self) -> None:
        """Abort the run from another thread.

        Stops the receiver so a blocked run() wakes up, then run() kills
        Studio, removes the artifact and raises RunCancelledError.
        """
        with self._lock:
            self._cancelled.set()
            receiver = self._receiver
        log.info("Cancelling run")
        if receiver is not None:
            receiver.stop()

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise RunCancelledError("Run was cancelled")

    def studio_command(self, studio: RobloxStudio) -> list[str]:
        """Command line that opens the place in Studio."""
        if studio.is_vinegar:
            return [VINEGAR, "studio", "run", str(self.place_path)]
        return [str(studio.application_path), str(self.place_path)]

    def run(self, sender: Sender) -> None:
        """Run the script, sending each event and finally None to sender.

        Raises:
            RunnerError: Any failure; Studio is killed and the artifact
                removed before the error propagates
        """
        studio = RobloxStudio.locate(self.config)
        plugin_path = studio.plugins_path / plugin_file_name(self.port)
        self._write_plugin(plugin_path)

        receiver: Optional[MessageReceiver] = None
        try:
            receiver = MessageReceiver.start(
                MessageReceiverOptions(port=self.port, server_id=self.server_id)
            )
            with self._lock:
                self._receiver = receiver
            self._check_cancelled()
            log.info("Listening for Studio", port=receiver.port)

            with KillOnExit(self._spawn(self.studio_command(studio))):
                self._wait_for_start(receiver)
                self._relay(receiver, sender)
        finally:
            if receiver is not None:
                receiver.stop()
                with self._lock:
                    self._receiver = None
            self._remove_plugin(plugin_path)

    def _write_plugin(self, path: Path) -> None:
        plugin = RunInRbxPlugin(
            port=self.port, server_id=self.server_id, lua_script=self.lua_script
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                plugin.write(f)
        except OSError as e:
            raise PluginWriteError(f"Could not write plugin to {path}: {e}") from e
        log.debug("Wrote plugin", path=path)

    def _remove_plugin(self, path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            log.warn(f"Could not remove plugin {path}: {e}")

    def _spawn(self, command: list[str]) -> subprocess.Popen:
        log.info("Launching Studio", command=command)
        output = None if self.debug else subprocess.DEVNULL
        try:
            return subprocess.Popen(
                command, stdin=subprocess.DEVNULL, stdout=output, stderr=output
            )
        except OSError as e:
            raise StudioLaunchError(f"Could not launch Roblox Studio: {e}") from e

    def _wait_for_start(self, receiver: MessageReceiver) -> None:
        first = receiver.recv_timeout(self.startup_timeout)
        if first is None:
            self._check_cancelled()
            raise StudioTimeoutError(
                "Timeout reached while waiting for Roblox Studio to come online"
            )
        if not isinstance(first, Start):
            raise ProtocolError("Invalid first message received from Roblox Studio plugin")
        log.info("Studio is online")

    def _relay(self, receiver: MessageReceiver, sender: Sender) -> None:
        while True:
            try:
                message = receiver.recv()
            except MessageReceiverError:
                self._check_cancelled()
                raise
            if isinstance(message, Start):
                log.debug("Ignoring repeated start message")
            elif isinstance(message, Messages):
                for event in message.messages:
                    self._send(sender, event)
            elif isinstance(message, Stop):
                log.info("Script finished")
                self._send(sender, None)
                return
            else:
                raise ProtocolError(f"Unexpected message from Studio plugin: {message!r}")

    def _send(self, sender: Sender, item: Optional[RobloxMessage]) -> None:
        try:
            sender.send(item)
        except ChannelClosed as e:
            raise RelayDeliveryError(f"Output channel closed: {e}") from e
