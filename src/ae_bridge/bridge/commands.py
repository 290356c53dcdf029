"""Command variants delivered to the host and their wire encoding."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar

from ae_bridge.bridge.errors import DecodeError

QUEUE_AUDIO_SUFFIX = ".cmd"
QUEUE_SCRIPT_SUFFIX = ".jsx"


@dataclass(frozen=True, slots=True)
class ImportAudio:
    """Import an audio file and attach it to the active composition."""

    action: ClassVar[str] = "import_audio"
    direct_capable: ClassVar[bool] = True

    path: str
    require_active_comp: bool = True


@dataclass(frozen=True, slots=True)
class RunScriptText:
    """Evaluate raw ExtendScript source in the host."""

    action: ClassVar[str] = "run_jsx_text"
    direct_capable: ClassVar[bool] = True

    code: str


@dataclass(frozen=True, slots=True)
class RunScriptFile:
    """Evaluate an existing ExtendScript file in the host."""

    action: ClassVar[str] = "run_jsx_file"
    direct_capable: ClassVar[bool] = False

    path: str


Command = ImportAudio | RunScriptText | RunScriptFile

_COMMAND_TYPES: dict[str, type[ImportAudio] | type[RunScriptText] | type[RunScriptFile]] = {
    ImportAudio.action: ImportAudio,
    RunScriptText.action: RunScriptText,
    RunScriptFile.action: RunScriptFile,
}


def command_to_payload(command: Command) -> dict[str, Any]:
    """Return the JSON-ready dict for a command, tagged by ``action``."""

    if isinstance(command, ImportAudio):
        return {
            "action": command.action,
            "path": command.path,
            "requireActiveComp": command.require_active_comp,
        }
    if isinstance(command, RunScriptText):
        return {"action": command.action, "code": command.code}
    if isinstance(command, RunScriptFile):
        return {"action": command.action, "path": command.path}
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def command_from_payload(raw: object) -> Command:
    """Validate a decoded JSON object and build the matching command."""

    if not isinstance(raw, dict):
        raise DecodeError("command payload must be a JSON object")
    action = raw.get("action")
    if action not in _COMMAND_TYPES:
        raise DecodeError(f"unknown command action: {action!r}")

    if action == ImportAudio.action:
        path = _require_str(raw, "path")
        require_active_comp = raw.get("requireActiveComp", True)
        if not isinstance(require_active_comp, bool):
            raise DecodeError("import_audio.requireActiveComp must be a boolean")
        return ImportAudio(path=path, require_active_comp=require_active_comp)
    if action == RunScriptText.action:
        return RunScriptText(code=_require_str(raw, "code", allow_empty=True))
    return RunScriptFile(path=_require_str(raw, "path"))


def encode(command: Command) -> str:
    """Serialize a command to a single-line JSON payload.

    Output is pure ASCII: control characters and U+2028/U+2029 are escaped,
    since the host parses descriptors as ES3 source.    """

    return json.dumps(command_to_payload(command), ensure_ascii=True, sort_keys=True)


def decode(payload: str | bytes) -> Command:
    """Parse a payload produced by :func:`encode`."""

    try:
        raw = json.loads(payload)
    except (TypeError, UnicodeDecodeError, json.JSONDecodeError) as error:
        raise DecodeError(f"command payload is not valid JSON: {error}") from error
    return command_from_payload(raw)


def to_queue_entry(command: Command) -> tuple[str, str]:
    """Render a command as ``(suffix, content)`` for the legacy queue directory."""

    if isinstance(command, ImportAudio):
        if "\n" in command.path or "\r" in command.path:
            raise ValueError("audio path must not contain line breaks")
        return QUEUE_AUDIO_SUFFIX, command.path
    if isinstance(command, RunScriptText):
        return QUEUE_SCRIPT_SUFFIX, command.code
    if isinstance(command, RunScriptFile):
        return QUEUE_SCRIPT_SUFFIX, f"$.evalFile(new File({json.dumps(command.path)}));"
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def from_queue_entry(suffix: str, content: str) -> Command:
    """Interpret a legacy queue file by its suffix; trailing whitespace is dropped."""

    text = content.rstrip()
    if not text:
        raise DecodeError("queue entry is empty")
    if suffix == QUEUE_AUDIO_SUFFIX:
        return ImportAudio(path=text, require_active_comp=False)
    if suffix == QUEUE_SCRIPT_SUFFIX:
        return RunScriptText(code=text)
    raise DecodeError(f"unsupported queue entry suffix: {suffix!r}")


def describe(command: Command) -> str:
    """Short human-readable label for logs."""

    if isinstance(command, ImportAudio):
        return f"import_audio {command.path}"
    if isinstance(command, RunScriptFile):
        return f"run_jsx_file {command.path}"
    first_line = command.code.strip().splitlines()[0] if command.code.strip() else ""
    return f"run_jsx_text {first_line[:60]}"


def _require_str(raw: dict[str, Any], key: str, *, allow_empty: bool = False) -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"{raw.get('action')}.{key} must be a string")
    if not allow_empty and not value.strip():
        raise DecodeError(f"{raw.get('action')}.{key} must be a non-empty string")
    return value
