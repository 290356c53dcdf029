from __future__ import annotations

import allure
import pytest

from ae_bridge.bridge.awaiter import ResultAwaiter
from ae_bridge.bridge.commands import ImportAudio
from ae_bridge.bridge.contracts import BridgeResult, write_artifact
from ae_bridge.bridge.errors import BridgeTimeoutError
from ae_bridge.bridge.layout import BridgeLayout
from ae_bridge.bridge.submitter import JobSubmitter

pytestmark = [
    allure.epic("AE Bridge"),
    allure.feature("Result Awaiter"),
]


class FakeClock:
    """Millisecond clock advanced only by sleep, with optional hooks at given times."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.hooks: dict[float, object] = {}

    def clock_ms(self) -> float:
        return self.now

    def sleep_ms(self, ms: float) -> None:
        self.sleeps.append(ms)
        self.now += ms
        for at in sorted(self.hooks):
            if at <= self.now:
                self.hooks.pop(at)()


def _awaiter(clock: FakeClock) -> ResultAwaiter:
    return ResultAwaiter(clock_ms=clock.clock_ms, sleep_ms=clock.sleep_ms)


def _result(job_id: str, *, ok: bool = True, error: str | None = None) -> BridgeResult:
    return BridgeResult(
        request_id=job_id,
        operation="import_audio",
        elapsed_ms=12,
        ok=ok,
        error=error,
    )


def test_times_out_before_late_artifact_and_removes_descriptor(layout: BridgeLayout) -> None:
    job = JobSubmitter(layout).submit(ImportAudio(path="/a.wav"))
    clock = FakeClock()
    clock.hooks[6_200] = lambda: write_artifact(job.artifact_path, _result(job.id))

    with pytest.raises(BridgeTimeoutError) as error:
        _awaiter(clock).wait(job, timeout_ms=5_000, poll_interval_ms=150)

    assert error.value.job_id == job.id
    assert isinstance(error.value, TimeoutError)
    assert not job.descriptor_path.exists()
    assert clock.now == pytest.approx(5_000)
    assert not job.artifact_path.exists()


def test_last_sleep_is_clamped_to_deadline(layout: BridgeLayout) -> None:
    job = JobSubmitter(layout).submit(ImportAudio(path="/a.wav"))
    clock = FakeClock()

    with pytest.raises(BridgeTimeoutError):
        _awaiter(clock).wait(job, timeout_ms=400, poll_interval_ms=150)

    assert clock.sleeps == [150, 150, 100]


def test_returns_result_and_cleans_up(layout: BridgeLayout) -> None:
    job = JobSubmitter(layout).submit(ImportAudio(path="/a.wav"))
    clock = FakeClock()
    clock.hooks[450] = lambda: write_artifact(job.artifact_path, _result(job.id))

    result = _awaiter(clock).wait(job, timeout_ms=5_000, poll_interval_ms=150)

    assert result == _result(job.id)
    assert not job.descriptor_path.exists()
    assert not job.artifact_path.exists()
    assert clock.now == pytest.approx(450)


def test_reads_tmp_artifact_when_rename_has_not_landed(layout: BridgeLayout) -> None:
    job = JobSubmitter(layout).submit(ImportAudio(path="/a.wav"))
    tmp_path = job.artifact_path.with_name(job.artifact_path.name + ".tmp")
    tmp_path.write_text(
        '{"requestId": "%s", "operation": "import_audio", "elapsedMs": 4, "ok": true}' % job.id,
        "utf-8",
    )

    result = _awaiter(FakeClock()).wait(job)

    assert result.ok is True
    assert not tmp_path.exists()
    assert not job.descriptor_path.exists()


def test_partial_artifact_counts_as_not_ready(layout: BridgeLayout) -> None:
    job = JobSubmitter(layout).submit(ImportAudio(path="/a.wav"))
    job.artifact_path.write_text('{"requestId": "', "utf-8")
    clock = FakeClock()
    clock.hooks[300] = lambda: write_artifact(job.artifact_path, _result(job.id))

    assert _awaiter(clock).wait(job).request_id == job.id


def test_failed_result_is_returned_not_raised(layout: BridgeLayout) -> None:
    job = JobSubmitter(layout).submit(ImportAudio(path="/a.wav"))
    write_artifact(job.artifact_path, _result(job.id, ok=False, error="No active composition"))

    result = _awaiter(FakeClock()).wait(job)

    assert result.ok is False
    assert result.error == "No active composition"
