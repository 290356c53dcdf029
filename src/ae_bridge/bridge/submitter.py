"""Producers that persist commands for the host-side consumer."""

from __future__ import annotations

import logging
import random
import string
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from ae_bridge.bridge.commands import Command, describe, to_queue_entry
from ae_bridge.bridge.contracts import Job, utc_now, write_descriptor, write_text_atomic
from ae_bridge.bridge.layout import BridgeLayout

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 10
_SYSTEM_RANDOM = random.SystemRandom()


def new_job_id(
    *,
    now_ms: Callable[[], int] | None = None,
    rng: random.Random | None = None,
) -> str:
    """Return ``<epoch-millis>-<base36 suffix>``, unique across uncoordinated producers."""

    millis = now_ms() if now_ms is not None else time.time_ns() // 1_000_000
    source = rng or _SYSTEM_RANDOM
    suffix = "".join(source.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{millis}-{suffix}"


class JobSubmitter:
    """Writes job descriptors for the queued delivery strategy."""

    def __init__(
        self,
        layout: BridgeLayout,
        *,
        id_factory: Callable[[], str] = new_job_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.layout = layout
        self.id_factory = id_factory
        self.clock = clock

    def submit(self, command: Command) -> Job:
        """Persist one descriptor. OSError from the jobs directory is not retried."""

        self.layout.jobs_dir.mkdir(parents=True, exist_ok=True)
        job_id = self.id_factory()
        job = Job(
            id=job_id,
            command=command,
            descriptor_path=self.layout.descriptor_path(job_id),
            artifact_path=self.layout.artifact_path(job_id),
            created_at=self.clock(),
        )
        write_descriptor(job)
        logger.debug("Submitted job %s (%s)", job_id, describe(command))
        return job


class QueueSubmitter:
    """Writes legacy ``.cmd`` / ``.jsx`` entries into the queue directory."""

    def __init__(
        self,
        layout: BridgeLayout,
        *,
        id_factory: Callable[[], str] = new_job_id,
    ) -> None:
        self.layout = layout
        self.id_factory = id_factory

    def enqueue(self, command: Command) -> Path:
        self.layout.queue_dir.mkdir(parents=True, exist_ok=True)
        suffix, content = to_queue_entry(command)
        path = self.layout.queue_dir / f"{self.id_factory()}{suffix}"
        write_text_atomic(path, content + "\n")
        logger.debug("Queued %s as %s", describe(command), path.name)
        return path

    def pending(self) -> list[Path]:
        """Queue entries not yet consumed, oldest first."""

        if not self.layout.queue_dir.is_dir():
            return []
        entries = [
            path
            for path in self.layout.queue_dir.iterdir()
            if path.is_file() and path.suffix in {".cmd", ".jsx"}
        ]
        return sorted(entries, key=lambda path: (path.stat().st_mtime, path.name))
