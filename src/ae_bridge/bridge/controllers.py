"""Controllers for bridge CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from ae_bridge.bridge.automation import AutomationClient
from ae_bridge.bridge.awaiter import ResultAwaiter
from ae_bridge.bridge.commands import Command, ImportAudio, RunScriptFile, RunScriptText, describe
from ae_bridge.bridge.consumer import ConsumerLoop
from ae_bridge.bridge.contracts import unlink_if_present, write_text_atomic
from ae_bridge.bridge.delivery import (
    DeliveryReceipt,
    DirectDelivery,
    HostLauncher,
    QueuedDelivery,
    select_strategy,
)
from ae_bridge.bridge.errors import BridgeError
from ae_bridge.bridge.host import AutomationHostSession
from ae_bridge.bridge.installer import BridgeInstaller
from ae_bridge.bridge.layout import BridgeLayout, is_descriptor
from ae_bridge.bridge.scripts import render_consumer_script
from ae_bridge.bridge.submitter import QueueSubmitter
from ae_bridge.config import Settings
from ae_bridge.logs import append_log, clear_log, close_activity_log, configure_activity_log

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InstallCommand:
    """CLI input for startup-script deployment."""

    home: Path | None = None


@dataclass(slots=True)
class StatusCommand:
    """CLI input for bridge status."""

    home: Path | None = None


@dataclass(slots=True)
class ImportAudioCommand:
    """CLI input for a single audio import."""

    path: Path
    mode: str | None = None
    require_active_comp: bool = True
    wait: bool = True


@dataclass(slots=True)
class RunScriptCommand:
    """CLI input for ExtendScript source delivery."""

    code: str
    mode: str | None = None
    wait: bool = True


@dataclass(slots=True)
class RunFileCommand:
    """CLI input for ExtendScript file delivery (always queued)."""

    path: Path
    wait: bool = True


@dataclass(slots=True)
class EnqueueAudioCommand:
    """CLI input for the legacy ``.cmd`` queue."""

    path: Path
    wake: bool = True


@dataclass(slots=True)
class BatchImportCommand:
    """CLI input for best-effort multi-file import."""

    paths: tuple[Path, ...]


@dataclass(slots=True)
class ConsumeCommand:
    """CLI input for draining the queue from outside the host."""

    once: bool = False
    max_ticks: int | None = None


@dataclass(slots=True)
class RestartImportCommand:
    """CLI input for the launch-with-startup-script fallback."""

    path: Path


@dataclass(slots=True)
class BridgeCliResult:
    """Lines to render plus the failure the entry point should exit with."""

    lines: list[str] = field(default_factory=list)
    success: bool = True
    failure: str | None = None


class BridgeCliController:
    """Coordinates delivery, consumer, install and maintenance CLI operations."""

    def install(self, command: InstallCommand) -> BridgeCliResult:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root).ensure()
            installer = _installer(settings, layout=layout, home=command.home)
            result = installer.install()
            lines = [result.message]
            lines.extend(f"  {path}" for path in result.installed_paths)
            append_log([f"Install: {result.message}"])
            if not result.success:
                return BridgeCliResult(lines=lines, success=False, failure=result.message)
            return BridgeCliResult(lines=lines)

    def status(self, command: StatusCommand) -> list[str]:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root)
            client = AutomationClient(settings.host)
            installer = _installer(settings, layout=layout, home=command.home)
            running = client.is_process_running()
            installed = installer.installed_scripts()
            queue_depth = len(QueueSubmitter(layout).pending())
            jobs_depth = _count_descriptors(layout)

        lines = [
            f"After Effects running: {'yes' if running else 'no'}",
            f"Support root: {layout.support_root}",
            f"Stop flag: {'present' if layout.is_stopped() else 'absent'}",
            f"Queue entries: {queue_depth}",
            f"Pending jobs: {jobs_depth}",
            f"Installed scripts: {len(installed)}",
        ]
        lines.extend(f"  {path}" for path in installed)
        return lines

    def import_audio(self, command: ImportAudioCommand) -> BridgeCliResult:
        return self._deliver(
            ImportAudio(
                path=str(command.path.expanduser().resolve()),
                require_active_comp=command.require_active_comp,
            ),
            mode=command.mode,
            wait=command.wait,
        )

    def run_script(self, command: RunScriptCommand) -> BridgeCliResult:
        return self._deliver(RunScriptText(code=command.code), mode=command.mode, wait=command.wait)

    def run_file(self, command: RunFileCommand) -> BridgeCliResult:
        return self._deliver(
            RunScriptFile(path=str(command.path.expanduser().resolve())),
            mode="queued",
            wait=command.wait,
        )

    def enqueue_audio(self, command: EnqueueAudioCommand) -> BridgeCliResult:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root)
            audio = ImportAudio(path=str(command.path.expanduser().resolve()))
            try:
                entry = QueueSubmitter(layout).enqueue(audio)
            except (OSError, ValueError) as error:
                append_log([f"Enqueue failed: {error}"])
                return BridgeCliResult(
                    lines=[f"Could not queue {audio.path}: {error}"],
                    success=False,
                    failure="Bridge queue unavailable",
                )
            lines = [f"Queued: {entry.name}"]
            append_log([f"Queued {describe(audio)} as {entry.name}"])
            if not command.wake:
                return BridgeCliResult(lines=lines)

            client = AutomationClient(settings.host)
            if not client.is_process_running():
                lines.append("After Effects is not running; the entry waits for its next start.")
                return BridgeCliResult(lines=lines)
            try:
                outcome = _wake_consumer(settings, layout=layout, client=client)
            except BridgeError as error:
                return _failure(error, lines=lines)
            lines.append(f"Consumer tick: {outcome}")
            return BridgeCliResult(lines=lines)

    def batch_import(self, command: BatchImportCommand) -> BridgeCliResult:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root)
            client = AutomationClient(settings.host)
            if not client.is_process_running():
                append_log(["Batch import skipped: After Effects is not running"])
                return BridgeCliResult(
                    lines=["Open After Effects first, with a project and an active comp."],
                    success=False,
                    failure="After Effects is not running",
                )

            direct, queued = _strategies(settings, layout=layout, client=client, wait=True)
            imported = 0
            lines: list[str] = []
            for path in command.paths:
                audio = ImportAudio(
                    path=str(path.expanduser().resolve()),
                    require_active_comp=False,
                )
                strategy = select_strategy(
                    audio,
                    mode=settings.queue.delivery_mode,
                    direct=direct,
                    queued=queued,
                )
                try:
                    strategy.deliver(audio)
                except BridgeError as error:
                    lines.append(f"Failed: {audio.path} ({error.user_message})")
                    continue
                except OSError as error:
                    logger.warning("Batch import of %s failed: %s", audio.path, error)
                    lines.append(f"Failed: {audio.path} (Bridge queue unavailable)")
                    continue
                imported += 1
                lines.append(f"Imported: {audio.path}")

            summary = f"Batch import complete: {imported}/{len(command.paths)}"
            append_log([summary])
            lines.append(summary)
            return BridgeCliResult(lines=lines)

    def stop(self) -> list[str]:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root).ensure()
            write_text_atomic(layout.stop_flag, "stopped\n")
            append_log(["Bridge stopped"])
        return [f"Bridge stopped: {layout.stop_flag}"]

    def resume(self) -> list[str]:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root)
            removed = unlink_if_present(layout.stop_flag)
            append_log(["Bridge resumed"])
        if not removed:
            return ["Bridge was not stopped"]
        return ["Bridge resumed"]

    def consume(self, command: ConsumeCommand) -> list[str]:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root).ensure()
            loop = ConsumerLoop(
                layout=layout,
                host=AutomationHostSession(AutomationClient(settings.host)),
                ttl_seconds=settings.queue.ttl_seconds,
                interval_seconds=settings.queue.tick_interval_seconds,
            )
            if command.once:
                report = loop.tick()
                line = f"Tick: {report.outcome.value} swept={report.swept}"
                if report.entry is not None:
                    line += f" entry={report.entry.name}"
                if report.error:
                    line += f" error={report.error}"
                append_log([line])
                return [line]

            summary = loop.run_loop(max_ticks=command.max_ticks)
            line = (
                "Consumer summary: "
                f"ticks={summary.ticks} processed={summary.processed} "
                f"retried={summary.retried} rejected={summary.rejected} "
                f"swept={summary.swept} busy={summary.busy} idle={summary.idle} "
                f"stopped={summary.stopped}"
            )
            append_log([line])
            return [line]

    def ensure_running(self) -> BridgeCliResult:
        with _session() as settings:
            launcher = _launcher(settings)
            try:
                launched = launcher.ensure_running()
            except BridgeError as error:
                return _failure(error)
            line = "After Effects launched" if launched else "After Effects already running"
            append_log([line])
            return BridgeCliResult(lines=[line])

    def restart_import(self, command: RestartImportCommand) -> BridgeCliResult:
        with _session() as settings:
            audio = ImportAudio(
                path=str(command.path.expanduser().resolve()),
                require_active_comp=False,
            )
            try:
                _launcher(settings).restart_with_script(audio)
            except BridgeError as error:
                append_log([f"Restart import refused: {error}"])
                return _failure(error)
            append_log([f"Restart import: {audio.path}"])
            return BridgeCliResult(
                lines=[
                    f"Launching After Effects to import {audio.path}",
                    "If nothing happens, After Effects may have blocked startup arguments.",
                ],
            )

    def log_path(self) -> list[str]:
        return [str(Settings.from_env().log_path)]

    def clear_log(self) -> list[str]:
        log_path = Settings.from_env().log_path
        if clear_log(log_path):
            return [f"Log cleared: {log_path}"]
        return [f"No log at {log_path}"]

    def _deliver(self, command: Command, *, mode: str | None, wait: bool) -> BridgeCliResult:
        with _session() as settings:
            layout = BridgeLayout(settings.support_root)
            client = AutomationClient(settings.host)
            direct, queued = _strategies(settings, layout=layout, client=client, wait=wait)
            try:
                strategy = select_strategy(
                    command,
                    mode=mode or settings.queue.delivery_mode,
                    direct=direct,
                    queued=queued,
                )
                receipt = strategy.deliver(command)
            except ValueError as error:
                return BridgeCliResult(lines=[str(error)], success=False, failure=str(error))
            except BridgeError as error:
                append_log([f"{describe(command)} failed: {error}"])
                return _failure(error)
            except OSError as error:
                append_log([f"{describe(command)} failed: {error}"])
                return BridgeCliResult(
                    lines=[f"Bridge directory unavailable: {error}"],
                    success=False,
                    failure="Bridge queue unavailable",
                )
            return _render_receipt(receipt)


@contextmanager
def _session() -> Iterator[Settings]:
    settings = Settings.from_env()
    settings.validate()
    configure_activity_log(settings.log_path)
    try:
        yield settings
    finally:
        close_activity_log()


def _strategies(
    settings: Settings,
    *,
    layout: BridgeLayout,
    client: AutomationClient,
    wait: bool,
) -> tuple[DirectDelivery, QueuedDelivery]:
    direct = DirectDelivery(layout=layout, client=client)
    queued = QueuedDelivery(
        layout=layout,
        client=client,
        awaiter=ResultAwaiter(),
        await_result=wait,
        timeout_ms=settings.queue.await_timeout_ms,
        poll_interval_ms=settings.queue.poll_interval_ms,
        ttl_seconds=settings.queue.ttl_seconds,
        tick_interval_seconds=settings.queue.tick_interval_seconds,
    )
    return direct, queued


def _launcher(settings: Settings) -> HostLauncher:
    return HostLauncher(
        client=AutomationClient(settings.host),
        settle_seconds=settings.host.settle_seconds,
        restart_grace_seconds=settings.host.restart_grace_seconds,
    )


def _installer(settings: Settings, *, layout: BridgeLayout, home: Path | None) -> BridgeInstaller:
    return BridgeInstaller(
        home=home or Path.home(),
        script_name=settings.install.script_name,
        script_text=render_consumer_script(
            layout,
            ttl_seconds=settings.queue.ttl_seconds,
            tick_interval_seconds=settings.queue.tick_interval_seconds,
        ),
        seed_versions=settings.install.seed_versions,
    )


def _wake_consumer(settings: Settings, *, layout: BridgeLayout, client: AutomationClient) -> str:
    layout.bridge_dir.mkdir(parents=True, exist_ok=True)
    write_text_atomic(
        layout.wake_script_path,
        render_consumer_script(
            layout,
            ttl_seconds=settings.queue.ttl_seconds,
            tick_interval_seconds=settings.queue.tick_interval_seconds,
        ),
    )
    return client.do_script_file(layout.wake_script_path).strip().lower()


def _count_descriptors(layout: BridgeLayout) -> int:
    if not layout.jobs_dir.is_dir():
        return 0
    return sum(1 for path in layout.jobs_dir.iterdir() if is_descriptor(path))


def _render_receipt(receipt: DeliveryReceipt) -> BridgeCliResult:
    label = describe(receipt.command)
    lines = [f"Delivered ({receipt.strategy}): {label}", f"Request: {receipt.request_id}"]
    if receipt.host_output:
        lines.append(f"Host output: {receipt.host_output}")
    if receipt.wake_outcome:
        lines.append(f"Consumer tick: {receipt.wake_outcome}")

    result = receipt.result
    if result is None:
        append_log([f"{receipt.strategy} {label} ({receipt.request_id})"])
        return BridgeCliResult(lines=lines)

    lines.append(f"Result: ok={str(result.ok).lower()} elapsed_ms={result.elapsed_ms}")
    if not result.ok:
        lines.append(f"Error: {result.error or '-'}")
        append_log([f"{label} rejected by host: {result.error or '-'}"])
        return BridgeCliResult(lines=lines, success=False, failure="Rejected by After Effects")
    append_log([f"{receipt.strategy} {label} ok in {result.elapsed_ms}ms"])
    return BridgeCliResult(lines=lines)


def _failure(error: BridgeError, *, lines: list[str] | None = None) -> BridgeCliResult:
    logger.debug("Bridge command failed: %s", error)
    return BridgeCliResult(
        lines=[*(lines or []), f"{error.user_message}: {error}"],
        success=False,
        failure=error.user_message,
    )
