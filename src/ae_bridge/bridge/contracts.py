"""File contracts for job descriptors and result artifacts."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ae_bridge.bridge.commands import Command, command_from_payload, command_to_payload
from ae_bridge.bridge.errors import DecodeError
from ae_bridge.bridge.layout import TMP_SUFFIX

CONTRACT_VERSION = 1


@dataclass(frozen=True, slots=True)
class Job:
    """A pending command persisted as a descriptor in the jobs directory."""

    id: str
    command: Command
    descriptor_path: Path
    artifact_path: Path
    created_at: datetime


@dataclass(frozen=True, slots=True)
class BridgeResult:
    """Artifact written by the consumer once a job completes."""

    request_id: str
    operation: str
    elapsed_ms: int
    ok: bool
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "requestId": self.request_id,
            "operation": self.operation,
            "elapsedMs": self.elapsed_ms,
            "ok": self.ok,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` through a sibling ``.tmp`` file and rename."""

    tmp_path = path.with_name(path.name + TMP_SUFFIX)
    try:
        tmp_path.write_text(text, "utf-8")
        os.replace(tmp_path, path)
    except OSError:
        unlink_if_present(tmp_path)
        raise


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting and atomic rename."""

    write_text_atomic(path, json.dumps(payload, ensure_ascii=True, sort_keys=True))


def unlink_if_present(path: Path) -> bool:
    """Idempotent delete. Returns True when a file was removed."""

    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def write_descriptor(job: Job) -> None:
    write_json_atomic(
        job.descriptor_path,
        {
            "contractVersion": CONTRACT_VERSION,
            "requestId": job.id,
            "artifactPath": str(job.artifact_path),
            "createdAt": job.created_at.isoformat(),
            **command_to_payload(job.command),
        },
    )


def read_descriptor(path: Path) -> Job:
    """Load and validate a job descriptor; malformed content raises DecodeError."""

    return parse_descriptor(path.read_text("utf-8"), path)


def parse_descriptor(text: str, path: Path) -> Job:
    try:
        raw = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise DecodeError(f"job descriptor is not valid JSON: {path.name}") from error
    if not isinstance(raw, dict):
        raise DecodeError(f"Expected JSON object in {path.name}")

    request_id = raw.get("requestId")
    artifact_path = raw.get("artifactPath")
    created_at_raw = raw.get("createdAt")
    if not isinstance(request_id, str) or not request_id.strip():
        raise DecodeError("descriptor.requestId must be a non-empty string")
    if not isinstance(artifact_path, str) or not artifact_path.strip():
        raise DecodeError("descriptor.artifactPath must be a non-empty string")
    try:
        created_at = datetime.fromisoformat(str(created_at_raw))
    except ValueError as error:
        raise DecodeError("descriptor.createdAt must be an ISO timestamp") from error

    command_raw = {
        key: value
        for key, value in raw.items()
        if key not in {"contractVersion", "requestId", "artifactPath", "createdAt"}
    }
    return Job(
        id=request_id,
        command=command_from_payload(command_raw),
        descriptor_path=path,
        artifact_path=Path(artifact_path),
        created_at=created_at,
    )


def write_artifact(path: Path, result: BridgeResult) -> None:
    write_json_atomic(path, result.to_payload())


def parse_artifact(text: str) -> BridgeResult:
    """Validate artifact JSON written by either the Python or the in-host consumer."""

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as error:
        raise DecodeError("artifact is not valid JSON") from error
    if not isinstance(raw, dict):
        raise DecodeError("artifact must be a JSON object")

    request_id = raw.get("requestId")
    operation = raw.get("operation", "")
    elapsed_ms = raw.get("elapsedMs", 0)
    ok = raw.get("ok")
    error = raw.get("error")
    if not isinstance(request_id, str):
        raise DecodeError("artifact.requestId must be a string")
    if not isinstance(operation, str):
        raise DecodeError("artifact.operation must be a string")
    if isinstance(elapsed_ms, bool) or not isinstance(elapsed_ms, int | float):
        raise DecodeError("artifact.elapsedMs must be a number")
    if not isinstance(ok, bool):
        raise DecodeError("artifact.ok must be a boolean")
    if error is not None and not isinstance(error, str):
        raise DecodeError("artifact.error must be a string when provided")
    return BridgeResult(
        request_id=request_id,
        operation=operation,
        elapsed_ms=int(elapsed_ms),
        ok=ok,
        error=error,
    )


def utc_now() -> datetime:
    return datetime.now(tz=UTC)
