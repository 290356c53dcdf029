"""Delivery strategies: run a command directly in the live host or queue it."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ae_bridge.bridge.automation import AutomationClient
from ae_bridge.bridge.awaiter import ResultAwaiter
from ae_bridge.bridge.commands import Command, ImportAudio, RunScriptText, describe
from ae_bridge.bridge.consumer import TickOutcome
from ae_bridge.bridge.contracts import BridgeResult, unlink_if_present, write_text_atomic
from ae_bridge.bridge.errors import (
    AutomationInvocationError,
    BridgeStoppedError,
    BridgeTimeoutError,
    HostAlreadyRunningError,
    HostBusyError,
    NotRunningError,
)
from ae_bridge.bridge.layout import BridgeLayout
from ae_bridge.bridge.scripts import (
    render_consumer_script,
    render_direct_script,
    render_restart_script,
)
from ae_bridge.bridge.submitter import JobSubmitter, new_job_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeliveryReceipt:
    """What a strategy did with one command."""

    strategy: str
    request_id: str
    command: Command
    host_output: str = ""
    wake_outcome: str | None = None
    result: BridgeResult | None = None


class DeliveryStrategy(Protocol):
    """Deliver a command, optionally waiting for its result."""

    name: str

    def deliver(self, command: Command) -> DeliveryReceipt:
        """Deliver one command or raise a BridgeError subclass."""


class DirectDelivery:
    """Runs a throwaway script in the live session; no artifact is produced."""

    name = "direct"

    def __init__(
        self,
        *,
        layout: BridgeLayout,
        client: AutomationClient,
        id_factory: Callable[[], str] = new_job_id,
    ) -> None:
        self.layout = layout
        self.client = client
        self.id_factory = id_factory

    def deliver(self, command: Command) -> DeliveryReceipt:
        if not command.direct_capable:
            raise ValueError(f"{command.action} cannot be delivered directly")
        # Never launch a fresh instance: it would have no project to act on.
        if not self.client.is_process_running():
            raise NotRunningError()

        request_id = self.id_factory()
        script_path = self.layout.direct_script_path(request_id)
        script_path.parent.mkdir(parents=True, exist_ok=True)
        write_text_atomic(script_path, render_direct_script(command))
        try:
            output = self.client.do_script_file(script_path, activate=True)
        finally:
            unlink_if_present(script_path)

        logger.info("Direct delivery %s: %s", request_id, describe(command))
        return DeliveryReceipt(
            strategy=self.name,
            request_id=request_id,
            command=command,
            host_output=output,
        )


class QueuedDelivery:
    """Writes a job descriptor, wakes the in-host consumer, and awaits the artifact."""

    name = "queued"

    def __init__(  # noqa: PLR0913
        self,
        *,
        layout: BridgeLayout,
        client: AutomationClient,
        submitter: JobSubmitter | None = None,
        awaiter: ResultAwaiter | None = None,
        await_result: bool = True,
        timeout_ms: int = 5_000,
        poll_interval_ms: int = 150,
        ttl_seconds: int = 300,
        tick_interval_seconds: float = 5.0,
    ) -> None:
        self.layout = layout
        self.client = client
        self.submitter = submitter or JobSubmitter(layout)
        self.awaiter = awaiter or ResultAwaiter()
        self.await_result = await_result
        self.timeout_ms = timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self.ttl_seconds = ttl_seconds
        self.tick_interval_seconds = tick_interval_seconds

    def deliver(self, command: Command) -> DeliveryReceipt:
        if not self.client.is_process_running():
            raise NotRunningError()
        if self.layout.is_stopped():
            raise BridgeStoppedError(f"Stop flag present: {self.layout.stop_flag}")

        job = self.submitter.submit(command)
        try:
            wake_outcome = self._wake()
        except AutomationInvocationError:
            unlink_if_present(job.descriptor_path)
            raise
        logger.info("Queued job %s (%s), wake=%s", job.id, describe(command), wake_outcome)

        if wake_outcome == TickOutcome.STOPPED.value:
            unlink_if_present(job.descriptor_path)
            raise BridgeStoppedError(f"Stop flag present: {self.layout.stop_flag}")

        receipt = DeliveryReceipt(
            strategy=self.name,
            request_id=job.id,
            command=command,
            wake_outcome=wake_outcome,
        )
        if not self.await_result:
            return receipt

        try:
            receipt.result = self.awaiter.wait(
                job,
                timeout_ms=self.timeout_ms,
                poll_interval_ms=self.poll_interval_ms,
            )
        except BridgeTimeoutError as error:
            if wake_outcome == TickOutcome.BUSY.value:
                raise HostBusyError(
                    f"Job {job.id} not consumed: After Effects has layers selected",
                    job_id=job.id,
                ) from error
            raise
        return receipt

    def _wake(self) -> str:
        """Run the consumer script once in the host; it reports the tick outcome."""

        script_path = self.layout.wake_script_path
        script_path.parent.mkdir(parents=True, exist_ok=True)
        write_text_atomic(
            script_path,
            render_consumer_script(
                self.layout,
                ttl_seconds=self.ttl_seconds,
                tick_interval_seconds=self.tick_interval_seconds,
            ),
        )
        return self.client.do_script_file(script_path).strip().lower()


def select_strategy(
    command: Command,
    *,
    mode: str,
    direct: DirectDelivery,
    queued: QueuedDelivery,
) -> DeliveryStrategy:
    """Pick a strategy from the command capability and the configured mode."""

    if mode == "queued":
        return queued
    if mode == "direct":
        if not command.direct_capable:
            raise ValueError(f"{command.action} cannot be delivered directly")
        return direct
    if mode == "auto":
        return direct if command.direct_capable else queued
    raise ValueError(f"Unknown delivery mode: {mode!r}")


class HostLauncher:
    """Opt-in helpers that start the host; never used implicitly by strategies."""

    def __init__(
        self,
        *,
        client: AutomationClient,
        settle_seconds: float = 2.0,
        restart_grace_seconds: float = 6.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.settle_seconds = settle_seconds
        self.restart_grace_seconds = restart_grace_seconds
        self.sleep = sleep

    def ensure_running(self) -> bool:
        """Launch the host when absent and wait the settle delay. True if launched."""

        if self.client.is_process_running():
            return False
        self.client.activate()
        self.sleep(self.settle_seconds)
        return True

    def restart_with_script(self, command: ImportAudio | RunScriptText) -> Path:
        """Launch a closed host with a one-shot startup script.

        Refuses while the host is running so it never fights a live session.
        Returns the script path, which no longer exists once this returns.
        """

        if self.client.is_process_running():
            raise HostAlreadyRunningError()

        temp_dir = Path(tempfile.mkdtemp(prefix="ae-bridge-restart-"))
        script_path = temp_dir / "one-shot.jsx"
        try:
            if isinstance(command, ImportAudio):
                script_path.write_text(render_restart_script(command), "utf-8")
            else:
                script_path.write_text(render_direct_script(command), "utf-8")
            self.client.launch_with_startup_script(script_path)
            # The host reads the script during launch; keep it until then.
            self.sleep(self.restart_grace_seconds)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
        logger.info("Restart launch issued with %s", script_path)
        return script_path
