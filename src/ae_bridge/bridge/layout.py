"""Shared bridge directory layout passed to every producer and consumer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

STOP_FLAG_NAME = "STOP_BRIDGE.txt"
JOB_PREFIX = "rb_"
DESCRIPTOR_SUFFIX = ".json"
ARTIFACT_SUFFIX = ".done.json"
DIRECT_SCRIPT_SUFFIX = "_direct.jsx"
TMP_SUFFIX = ".tmp"


@dataclass(frozen=True, slots=True)
class BridgeLayout:
    """Resource handle for the queue/jobs directories and the stop flag."""

    support_root: Path

    @property
    def bridge_dir(self) -> Path:
        return self.support_root / "bridge"

    @property
    def queue_dir(self) -> Path:
        return self.bridge_dir / "queue"

    @property
    def jobs_dir(self) -> Path:
        return self.bridge_dir / "jobs"

    @property
    def stop_flag(self) -> Path:
        return self.queue_dir / STOP_FLAG_NAME

    def ensure(self) -> BridgeLayout:
        """Create queue and jobs directories; OSError propagates to the caller."""

        self.queue_dir.mkdir(parents=True, exist_ok=True)
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        return self

    def descriptor_path(self, job_id: str) -> Path:
        return self.jobs_dir / f"{JOB_PREFIX}{job_id}{DESCRIPTOR_SUFFIX}"

    def artifact_path(self, job_id: str) -> Path:
        return self.jobs_dir / f"{JOB_PREFIX}{job_id}{ARTIFACT_SUFFIX}"

    @property
    def wake_script_path(self) -> Path:
        return self.bridge_dir / "consumer.jsx"

    @property
    def direct_dir(self) -> Path:
        return self.bridge_dir / "direct"

    def direct_script_path(self, job_id: str) -> Path:
        return self.direct_dir / f"{JOB_PREFIX}{job_id}{DIRECT_SCRIPT_SUFFIX}"

    def is_stopped(self) -> bool:
        return self.stop_flag.exists()


def is_descriptor(path: Path) -> bool:
    """True for ``rb_<id>.json`` job descriptors, false for artifacts and temp files."""

    name = path.name
    return (
        name.startswith(JOB_PREFIX)
        and name.endswith(DESCRIPTOR_SUFFIX)
        and not name.endswith(ARTIFACT_SUFFIX)
    )


def job_id_from_descriptor(path: Path) -> str:
    return path.name[len(JOB_PREFIX) : -len(DESCRIPTOR_SUFFIX)]
