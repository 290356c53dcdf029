"""Subprocess-based automation calls into the host (osascript / open)."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ae_bridge.bridge.errors import AutomationInvocationError
from ae_bridge.config import HostSettings

logger = logging.getLogger(__name__)

# AppleScript "No result was returned from some part of this expression."
_NO_RESULT_ERROR = -2763


@dataclass(slots=True)
class InvocationResult:
    """Outcome of one automation child process."""

    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class AutomationClient:
    """Runs AppleScript through ``osascript`` with a hard per-call timeout."""

    def __init__(self, settings: HostSettings) -> None:
        self.settings = settings

    def invoke(self, applescript: str, *, timeout_seconds: float | None = None) -> InvocationResult:
        """Run one AppleScript source; never raises for non-zero exits."""

        return self._run(
            [self.settings.osascript_path, "-e", applescript],
            timeout_seconds=timeout_seconds or self.settings.invoke_timeout_seconds,
        )

    def do_script_file(self, script_path: Path, *, activate: bool = False) -> str:
        """Ask the host to run a script file and return its textual result.

        Raises AutomationInvocationError on non-zero exit, timeout, or a
        missing ``osascript`` binary.
        """

        result = self.invoke(
            render_do_script_file(
                application=self.settings.application_name,
                script_path=script_path,
                activate=activate,
            ),
        )
        if result.timed_out:
            raise AutomationInvocationError(
                f"Automation call timed out after {self.settings.invoke_timeout_seconds:g}s",
                exit_code=result.exit_code,
                stderr=result.stderr,
                timed_out=True,
            )
        if result.exit_code != 0:
            raise AutomationInvocationError(
                f"Automation call failed: exit={result.exit_code} {_truncate(result.stderr)}"
                .strip(),
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result.stdout.strip()

    def is_process_running(self, process_name: str | None = None) -> bool:
        """Process-presence query; every failure reads as "not running"."""

        name = process_name or self.settings.process_name
        try:
            result = self.invoke(
                'tell application "System Events" to return '
                f"(exists process {_applescript_string(name)})",
            )
        except AutomationInvocationError as error:
            logger.debug("Liveness probe failed: %s", error)
            return False
        return result.ok and result.stdout.strip() == "true"

    def activate(self) -> None:
        """Launch or focus the host application."""

        result = self.invoke(
            f"tell application {_applescript_string(self.settings.application_name)} to activate",
        )
        if not result.ok:
            raise AutomationInvocationError(
                f"Failed to launch host: exit={result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
                timed_out=result.timed_out,
            )

    def launch_with_startup_script(self, script_path: Path) -> None:
        """Start the host with ``-r <script>`` so it runs the script once on launch."""

        result = self._run(
            [
                self.settings.open_command,
                "-b",
                self.settings.bundle_id,
                "--args",
                "-r",
                str(script_path),
            ],
            timeout_seconds=self.settings.invoke_timeout_seconds,
        )
        if not result.ok:
            raise AutomationInvocationError(
                f"Failed to launch host with startup script: exit={result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
                timed_out=result.timed_out,
            )

    def _run(self, argv: list[str], *, timeout_seconds: float) -> InvocationResult:
        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as error:
            raise AutomationInvocationError(
                f"Automation command failed to start: {argv[0]}: {error}",
            ) from error

        try:
            stdout, stderr = process.communicate(timeout=timeout_seconds)
        except subprocess.TimeoutExpired:
            _terminate_process(process)
            logger.warning("Automation call %s timed out after %.1fs", argv[0], timeout_seconds)
            return InvocationResult(exit_code=124, stdout="", stderr="", timed_out=True)
        return InvocationResult(exit_code=process.returncode, stdout=stdout, stderr=stderr)


def render_do_script_file(*, application: str, script_path: Path, activate: bool) -> str:
    """AppleScript that runs a script file in the host and returns its result as text."""

    lines = [f"tell application {_applescript_string(application)}"]
    if activate:
        lines.append("activate")
    lines.extend(
        [
            "try",
            "set scriptResult to DoScriptFile "
            f"(POSIX file {_applescript_string(str(script_path))})",
            "on error errMsg number errNum",
            f"if errNum is {_NO_RESULT_ERROR} then",
            'set scriptResult to ""',
            "else",
            "error errMsg number errNum",
            "end if",
            "end try",
            "end tell",
            'if scriptResult is missing value then return ""',
            "return scriptResult as text",
        ],
    )
    return "\n".join(lines)


def _applescript_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)


def _truncate(value: str, *, limit: int = 240) -> str:
    compact = value.strip().replace("\n", " ")
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."
