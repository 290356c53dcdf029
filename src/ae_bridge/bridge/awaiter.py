"""Bounded poll for the artifact of a queued job."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ae_bridge.bridge.contracts import BridgeResult, Job, parse_artifact, unlink_if_present
from ae_bridge.bridge.errors import BridgeTimeoutError, DecodeError
from ae_bridge.bridge.layout import TMP_SUFFIX

logger = logging.getLogger(__name__)


class ResultAwaiter:
    """Polls ``job.artifact_path`` (and its ``.tmp`` twin) until a deadline.

    ``clock`` and ``sleep`` work in milliseconds so tests can drive time.
    """

    def __init__(
        self,
        *,
        clock_ms: Callable[[], float] | None = None,
        sleep_ms: Callable[[float], None] | None = None,
    ) -> None:
        self.clock_ms = clock_ms or (lambda: time.monotonic() * 1000)
        self.sleep_ms = sleep_ms or (lambda ms: time.sleep(ms / 1000))

    def wait(
        self,
        job: Job,
        *,
        timeout_ms: int = 5_000,
        poll_interval_ms: int = 150,
    ) -> BridgeResult:
        """Return the job result or raise BridgeTimeoutError after removing the descriptor."""

        deadline = self.clock_ms() + timeout_ms
        tmp_path = job.artifact_path.with_name(job.artifact_path.name + TMP_SUFFIX)
        while True:
            result = _try_read(job.artifact_path) or _try_read(tmp_path)
            if result is not None:
                unlink_if_present(job.descriptor_path)
                unlink_if_present(job.artifact_path)
                unlink_if_present(tmp_path)
                return result

            remaining = deadline - self.clock_ms()
            if remaining <= 0:
                break
            self.sleep_ms(min(poll_interval_ms, remaining))

        unlink_if_present(job.descriptor_path)
        logger.info("Job %s timed out after %dms; descriptor removed", job.id, timeout_ms)
        raise BridgeTimeoutError(
            f"Timed out after {timeout_ms}ms waiting for job {job.id}",
            job_id=job.id,
        )


def _try_read(path: Path) -> BridgeResult | None:
    try:
        text = path.read_text("utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    try:
        return parse_artifact(text)
    except DecodeError:
        return None
