"""Consumer loop that drains the bridge queue one entry per tick."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ae_bridge.bridge.commands import (
    QUEUE_AUDIO_SUFFIX,
    QUEUE_SCRIPT_SUFFIX,
    Command,
    ImportAudio,
    RunScriptFile,
    RunScriptText,
    describe,
    from_queue_entry,
)
from ae_bridge.bridge.contracts import (
    BridgeResult,
    parse_descriptor,
    unlink_if_present,
    write_artifact,
)
from ae_bridge.bridge.errors import DecodeError
from ae_bridge.bridge.host import HostSession
from ae_bridge.bridge.layout import (
    ARTIFACT_SUFFIX,
    TMP_SUFFIX,
    BridgeLayout,
    is_descriptor,
    job_id_from_descriptor,
)
from ae_bridge.bridge.scripts import AUDIO_FOLDER_NAME, IMPORT_UNDO_GROUP, SCRIPT_UNDO_GROUP

logger = logging.getLogger(__name__)


class TickOutcome(str, Enum):
    """What one consumer tick did."""

    STOPPED = "stopped"
    BUSY = "busy"
    IDLE = "idle"
    PROCESSED = "processed"
    RETRY = "retry"
    REJECTED = "rejected"


class EntryKind(str, Enum):
    AUDIO = "cmd"
    SCRIPT = "jsx"
    JOB = "job"
    ARTIFACT = "artifact"
    TEMP = "tmp"


_PROCESSABLE = frozenset({EntryKind.AUDIO, EntryKind.SCRIPT, EntryKind.JOB})


@dataclass(frozen=True, slots=True)
class QueueEntry:
    path: Path
    kind: EntryKind
    mtime: float


@dataclass(slots=True)
class TickReport:
    """Result of a single tick."""

    outcome: TickOutcome
    swept: int = 0
    entry: Path | None = None
    error: str | None = None


@dataclass(slots=True)
class ConsumerRunSummary:
    """Aggregate consumer counters for CLI reporting."""

    ticks: int = 0
    processed: int = 0
    retried: int = 0
    rejected: int = 0
    swept: int = 0
    busy: int = 0
    idle: int = 0
    stopped: int = 0

    def add(self, report: TickReport) -> None:
        self.ticks += 1
        self.swept += report.swept
        if report.outcome is TickOutcome.PROCESSED:
            self.processed += 1
        elif report.outcome is TickOutcome.RETRY:
            self.retried += 1
        elif report.outcome is TickOutcome.REJECTED:
            self.rejected += 1
        elif report.outcome is TickOutcome.BUSY:
            self.busy += 1
        elif report.outcome is TickOutcome.IDLE:
            self.idle += 1
        elif report.outcome is TickOutcome.STOPPED:
            self.stopped += 1


class ConsumerLoop:
    """Single-flight consumer: at most one queue entry per tick.

    Tick order: stop flag, active selection, listing, TTL sweep, oldest
    entry, read, dispatch, delete. Dispatch errors keep the entry for a
    later tick; the TTL sweep bounds how long that can go on.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        layout: BridgeLayout,
        host: HostSession,
        ttl_seconds: float = 300.0,
        interval_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.layout = layout
        self.host = host
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.monotonic = monotonic
        self._stop_requested = False

    def tick(self) -> TickReport:  # noqa: PLR0911
        """Run one tick and report its outcome."""

        if self.layout.is_stopped():
            return TickReport(outcome=TickOutcome.STOPPED)

        try:
            busy = self.host.has_selection()
        except Exception as error:  # noqa: BLE001
            logger.warning("Selection check failed, skipping tick: %s", error)
            return TickReport(outcome=TickOutcome.RETRY, error=str(error))
        if busy:
            return TickReport(outcome=TickOutcome.BUSY)

        entries = self._list_entries()
        if not entries:
            return TickReport(outcome=TickOutcome.IDLE)

        swept, live = self._sweep(entries)
        if not live:
            return TickReport(outcome=TickOutcome.IDLE, swept=swept)

        entry = min(live, key=lambda item: (item.mtime, item.path.name))
        try:
            content = entry.path.read_text("utf-8").rstrip()
        except (OSError, UnicodeDecodeError) as error:
            logger.debug("Read failed for %s, keeping for retry: %s", entry.path.name, error)
            return TickReport(
                outcome=TickOutcome.RETRY,
                swept=swept,
                entry=entry.path,
                error=str(error),
            )
        if not content:
            return TickReport(outcome=TickOutcome.RETRY, swept=swept, entry=entry.path)

        if entry.kind is EntryKind.JOB:
            report = self._process_job(entry=entry, content=content)
        else:
            report = self._process_queue_entry(entry=entry, content=content)
        report.swept = swept
        return report

    def run_loop(self, *, max_ticks: int | None = None) -> ConsumerRunSummary:
        """Re-arm the tick on a fixed interval until stopped or max_ticks reached."""

        summary = ConsumerRunSummary()
        with self._signal_handlers():
            while not self._stop_requested:
                if max_ticks is not None and summary.ticks >= max_ticks:
                    break
                report = self.tick()
                summary.add(report)
                if report.outcome is TickOutcome.PROCESSED:
                    logger.info("Processed %s", report.entry.name if report.entry else "-")
                if max_ticks is not None and summary.ticks >= max_ticks:
                    break
                self._sleep_with_stop(self.interval_seconds)
        return summary

    def request_stop(self) -> None:
        self._stop_requested = True

    def _list_entries(self) -> list[QueueEntry]:
        entries: list[QueueEntry] = []
        for directory, classify in (
            (self.layout.queue_dir, _classify_queue_file),
            (self.layout.jobs_dir, _classify_jobs_file),
        ):
            if not directory.is_dir():
                continue
            for path in directory.iterdir():
                kind = classify(path)
                if kind is None:
                    continue
                try:
                    stat = path.stat()
                except FileNotFoundError:
                    continue
                if not path.is_file():
                    continue
                entries.append(QueueEntry(path=path, kind=kind, mtime=stat.st_mtime))
        return entries

    def _sweep(self, entries: list[QueueEntry]) -> tuple[int, list[QueueEntry]]:
        now = self.clock()
        swept = 0
        live: list[QueueEntry] = []
        for entry in entries:
            if now - entry.mtime > self.ttl_seconds:
                try:
                    if unlink_if_present(entry.path):
                        swept += 1
                        logger.info("TTL sweep removed %s", entry.path.name)
                except OSError as error:
                    logger.warning("TTL sweep could not remove %s: %s", entry.path.name, error)
                continue
            if entry.kind in _PROCESSABLE:
                live.append(entry)
        return swept, live

    def _process_queue_entry(self, *, entry: QueueEntry, content: str) -> TickReport:
        command = from_queue_entry(entry.path.suffix, content)
        try:
            if not self.host.has_project():
                return TickReport(outcome=TickOutcome.RETRY, entry=entry.path, error="no project")
            self._dispatch(command)
        except Exception as error:  # noqa: BLE001
            logger.warning("Dispatch failed for %s, keeping for retry: %s", entry.path.name, error)
            return TickReport(outcome=TickOutcome.RETRY, entry=entry.path, error=str(error))

        unlink_if_present(entry.path)
        return TickReport(outcome=TickOutcome.PROCESSED, entry=entry.path)

    def _process_job(self, *, entry: QueueEntry, content: str) -> TickReport:
        started = self.monotonic()
        try:
            job = parse_descriptor(content, entry.path)
        except DecodeError as error:
            job_id = job_id_from_descriptor(entry.path)
            logger.warning("Rejecting malformed job %s: %s", job_id, error)
            try:
                write_artifact(
                    self.layout.artifact_path(job_id),
                    BridgeResult(
                        request_id=job_id,
                        operation="unknown",
                        elapsed_ms=0,
                        ok=False,
                        error=str(error),
                    ),
                )
            except OSError as write_error:
                logger.warning("Could not write rejection artifact for %s: %s", job_id, write_error)
            unlink_if_present(entry.path)
            return TickReport(outcome=TickOutcome.REJECTED, entry=entry.path, error=str(error))

        try:
            if not self.host.has_project():
                return TickReport(outcome=TickOutcome.RETRY, entry=entry.path, error="no project")
            self._dispatch(job.command)
        except Exception as error:  # noqa: BLE001
            logger.warning("Job %s failed, keeping for retry: %s", job.id, error)
            return TickReport(outcome=TickOutcome.RETRY, entry=entry.path, error=str(error))

        elapsed_ms = int((self.monotonic() - started) * 1000)
        try:
            write_artifact(
                job.artifact_path,
                BridgeResult(
                    request_id=job.id,
                    operation=job.command.action,
                    elapsed_ms=elapsed_ms,
                    ok=True,
                ),
            )
        except OSError as error:
            logger.warning("Job %s done but artifact write failed: %s", job.id, error)
        unlink_if_present(entry.path)
        return TickReport(outcome=TickOutcome.PROCESSED, entry=entry.path)

    def _dispatch(self, command: Command) -> None:
        logger.debug("Dispatching %s", describe(command))
        if isinstance(command, ImportAudio):
            self._import_audio(command)
        elif isinstance(command, RunScriptText):
            with self.host.undo_group(SCRIPT_UNDO_GROUP):
                self.host.evaluate(command.code)
        elif isinstance(command, RunScriptFile):
            with self.host.undo_group(SCRIPT_UNDO_GROUP):
                self.host.evaluate_file(command.path)
        else:
            raise TypeError(f"Unsupported command type: {type(command).__name__}")

    def _import_audio(self, command: ImportAudio) -> None:
        comp_id = self.host.active_comp()
        if command.require_active_comp and comp_id is None:
            raise RuntimeError("No active composition")

        with self.host.undo_group(IMPORT_UNDO_GROUP):
            folder_id = self.host.find_folder(AUDIO_FOLDER_NAME)
            if folder_id is None:
                folder_id = self.host.add_folder(AUDIO_FOLDER_NAME)
            footage_id = self.host.find_footage(command.path)
            if footage_id is None:
                footage_id = self.host.import_footage(command.path)
            self.host.set_parent_folder(footage_id, folder_id)
            if comp_id is not None:
                self.host.add_layer(comp_id, footage_id)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            logger.info("Consumer stop requested by signal %s", signum)
            self.request_stop()

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)


def _classify_queue_file(path: Path) -> EntryKind | None:
    name = path.name
    if name.endswith(TMP_SUFFIX):
        return EntryKind.TEMP
    if name.endswith(QUEUE_AUDIO_SUFFIX):
        return EntryKind.AUDIO
    if name.endswith(QUEUE_SCRIPT_SUFFIX):
        return EntryKind.SCRIPT
    return None


def _classify_jobs_file(path: Path) -> EntryKind | None:
    name = path.name
    if name.endswith(TMP_SUFFIX):
        return EntryKind.TEMP
    if name.endswith(ARTIFACT_SUFFIX):
        return EntryKind.ARTIFACT
    if is_descriptor(path):
        return EntryKind.JOB
    return None
