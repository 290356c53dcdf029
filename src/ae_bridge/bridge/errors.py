"""Error taxonomy surfaced by bridge delivery and consumption."""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base class for bridge failures with a user-facing message."""

    user_message = "After Effects bridge failed"


class NotRunningError(BridgeError):
    """Raised when delivery requires a live host and none is running."""

    user_message = "After Effects is not running"

    def __init__(self, message: str = "After Effects is not running. Open it first.") -> None:
        super().__init__(message)


class HostAlreadyRunningError(BridgeError):
    """Raised when the restart fallback is requested against a live host."""

    user_message = "Close After Effects and retry"

    def __init__(
        self,
        message: str = "After Effects is running; the restart path only works on launch.",
    ) -> None:
        super().__init__(message)


class BridgeTimeoutError(BridgeError, TimeoutError):
    """Raised when no artifact appeared before the await deadline."""

    user_message = "Timed out waiting for After Effects"

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class HostBusyError(BridgeTimeoutError):
    """Raised when a queued job timed out while the host reported an active selection."""

    user_message = "After Effects is busy (active selection)"


class AutomationInvocationError(BridgeError):
    """Automation call failed, timed out, or returned a non-zero status."""

    user_message = "After Effects rejected the automation call"

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        stderr: str = "",
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        self.timed_out = timed_out


class DecodeError(ValueError):
    """Payload could not be decoded into a command or artifact."""


class BridgeStoppedError(BridgeError):
    """Raised when a queued job cannot run because the stop flag is present."""

    user_message = "Bridge is stopped (remove STOP_BRIDGE.txt or run `ae-bridge resume`)"
