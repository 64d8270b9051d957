"""Errors raised while running a script inside Roblox Studio.

Every failure surfaces to the caller of PlaceRunner.run() as one of these.
Nothing is retried internally.
"""


class RunnerError(Exception):
    """Base class for all run-in-roblox errors."""

    pass


class StudioNotFoundError(RunnerError):
    """No Roblox Studio installation could be located."""

    pass


class PluginWriteError(RunnerError):
    """The plugin artifact could not be written."""

    pass


class ProtocolError(RunnerError):
    """The Studio plugin broke the message protocol."""

    pass


class StudioTimeoutError(RunnerError):
    """Studio did not report in before the startup timeout."""

    pass


class StudioLaunchError(RunnerError):
    """The Studio process could not be spawned."""

    pass


class RelayDeliveryError(RunnerError):
    """The output channel was closed while messages remained."""

    pass


class MessageReceiverError(RunnerError):
    """The message receiver could not listen, or was used after stop()."""

    pass


class RunCancelledError(RunnerError):
    """PlaceRunner.cancel() was called while the run was in progress."""

    pass
