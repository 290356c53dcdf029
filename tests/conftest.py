"""Shared test fixtures."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import pytest

from ae_bridge.bridge.layout import BridgeLayout
from ae_bridge.logs import close_activity_log

_FAKE_OSASCRIPT = r"""
import os
import re
import sys
import time
from pathlib import Path

source = sys.argv[2] if len(sys.argv) > 2 and sys.argv[1] == "-e" else ""
calls = os.environ.get("FAKE_OSASCRIPT_CALLS")
if calls:
    with open(calls, "a", encoding="utf-8") as handle:
        handle.write(source.replace("\n", " | ") + "\n")

if "exists process" in source:
    print(os.environ.get("FAKE_AE_RUNNING", "false"))
    raise SystemExit(0)

if "DoScriptFile" in source:
    match = re.search(r'POSIX file "([^"]+)"', source)
    copy_to = os.environ.get("FAKE_SCRIPT_COPY")
    if match and copy_to:
        Path(copy_to).write_text(Path(match.group(1)).read_text("utf-8"), "utf-8")
    delay = float(os.environ.get("FAKE_OSASCRIPT_SLEEP", "0"))
    if delay:
        time.sleep(delay)
    code = int(os.environ.get("FAKE_OSASCRIPT_EXIT", "0"))
    if code:
        sys.stderr.write("execution error: After Effects got an error (-1708)\n")
        raise SystemExit(code)
    print(os.environ.get("FAKE_OSASCRIPT_OUTPUT", "ok"))
    raise SystemExit(0)

print("")
"""

_FAKE_OPEN = r"""
import os
import sys

with open(os.environ["FAKE_OPEN_CALLS"], "a", encoding="utf-8") as handle:
    handle.write(" ".join(sys.argv[1:]) + "\n")
"""


def write_fake_executable(path: Path, source: str) -> Path:
    """Write ``source`` as a python implementation plus a sh launcher at ``path``."""

    implementation = path.parent / f"{path.name}_impl.py"
    implementation.write_text(source.strip() + "\n", "utf-8")
    path.write_text(
        f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
        "utf-8",
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


@dataclass(slots=True)
class FakeAutomation:
    osascript: Path
    open_command: Path
    calls_path: Path
    open_calls_path: Path
    script_copy_path: Path

    def calls(self) -> list[str]:
        if not self.calls_path.exists():
            return []
        return self.calls_path.read_text("utf-8").splitlines()

    def open_calls(self) -> list[str]:
        if not self.open_calls_path.exists():
            return []
        return self.open_calls_path.read_text("utf-8").splitlines()


@pytest.fixture()
def fake_automation(tmp_path: Path, monkeypatch) -> FakeAutomation:
    """Fake ``osascript``/``open`` binaries driven by FAKE_* environment variables."""

    if os.name == "nt":
        pytest.skip("fake automation executables need a POSIX shell")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    fake = FakeAutomation(
        osascript=write_fake_executable(bin_dir / "osascript", _FAKE_OSASCRIPT),
        open_command=write_fake_executable(bin_dir / "open", _FAKE_OPEN),
        calls_path=tmp_path / "osascript-calls.txt",
        open_calls_path=tmp_path / "open-calls.txt",
        script_copy_path=tmp_path / "last-script.jsx",
    )
    monkeypatch.setenv("FAKE_OSASCRIPT_CALLS", str(fake.calls_path))
    monkeypatch.setenv("FAKE_OPEN_CALLS", str(fake.open_calls_path))
    monkeypatch.setenv("FAKE_SCRIPT_COPY", str(fake.script_copy_path))
    monkeypatch.setenv("AE_BRIDGE_OSASCRIPT", str(fake.osascript))
    monkeypatch.setenv("AE_BRIDGE_OPEN_COMMAND", str(fake.open_command))
    return fake


@pytest.fixture()
def layout(tmp_path: Path) -> BridgeLayout:
    return BridgeLayout(tmp_path / "support").ensure()


@pytest.fixture()
def bridge_env(tmp_path: Path, monkeypatch) -> Iterator[Path]:
    """Point every AE_BRIDGE_* path at tmp_path and keep timings short."""

    support_root = tmp_path / "support"
    monkeypatch.setenv("AE_BRIDGE_SUPPORT_ROOT", str(support_root))
    monkeypatch.setenv("AE_BRIDGE_LOG_PATH", str(tmp_path / "logs" / "ae-integration.log"))
    monkeypatch.setenv("AE_BRIDGE_AWAIT_TIMEOUT_MS", "300")
    monkeypatch.setenv("AE_BRIDGE_POLL_INTERVAL_MS", "20")
    monkeypatch.setenv("AE_BRIDGE_SETTLE_SECONDS", "0")
    monkeypatch.setenv("AE_BRIDGE_RESTART_GRACE_SECONDS", "0")
    monkeypatch.setenv("AE_BRIDGE_DELIVERY_MODE", "auto")
    yield support_root
    close_activity_log()


class FakeHost:
    """In-memory HostSession: a project with items, an active comp and undo groups."""

    def __init__(
        self,
        *,
        project: bool = True,
        selection: bool = False,
        comp: bool = True,
    ) -> None:
        self.project = project
        self.selection = selection
        self.selection_error: Exception | None = None
        self.import_failures = 0
        self.items: dict[int, dict[str, object]] = {}
        self.layers: list[tuple[int, int]] = []
        self.evaluated: list[str] = []
        self.evaluated_files: list[str] = []
        self.undo_groups: list[str] = []
        self.calls: list[str] = []
        self._next_id = 1
        self.comp_id = self._add_item("comp", name="Main") if comp else None

    def has_project(self) -> bool:
        self.calls.append("has_project")
        return self.project

    def has_selection(self) -> bool:
        self.calls.append("has_selection")
        if self.selection_error is not None:
            raise self.selection_error
        return self.selection

    def find_folder(self, name: str) -> int | None:
        for item_id, item in self.items.items():
            if item["kind"] == "folder" and item["name"] == name:
                return item_id
        return None

    def add_folder(self, name: str) -> int:
        return self._add_item("folder", name=name)

    def find_footage(self, path: str) -> int | None:
        for item_id, item in self.items.items():
            if item["kind"] == "footage" and item["path"] == path:
                return item_id
        return None

    def import_footage(self, path: str) -> int:
        if self.import_failures > 0:
            self.import_failures -= 1
            raise RuntimeError(f"Import failed: {path}")
        return self._add_item("footage", name=Path(path).name, path=path)

    def set_parent_folder(self, item_id: int, folder_id: int) -> None:
        self.items[item_id]["parent"] = folder_id

    def active_comp(self) -> int | None:
        return self.comp_id

    def add_layer(self, comp_id: int, item_id: int) -> None:
        self.layers.append((comp_id, item_id))

    def evaluate(self, code: str) -> None:
        if "throw" in code:
            raise RuntimeError("script error")
        self.evaluated.append(code)

    def evaluate_file(self, path: str) -> None:
        self.evaluated_files.append(path)

    @contextmanager
    def undo_group(self, name: str) -> Iterator[None]:
        self.undo_groups.append(name)
        yield

    def folders(self) -> list[dict[str, object]]:
        return [item for item in self.items.values() if item["kind"] == "folder"]

    def footage(self) -> list[dict[str, object]]:
        return [item for item in self.items.values() if item["kind"] == "footage"]

    def _add_item(self, kind: str, **fields: object) -> int:
        item_id = self._next_id
        self._next_id += 1
        self.items[item_id] = {"kind": kind, **fields}
        return item_id


@pytest.fixture()
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture()
def make_host() -> type[FakeHost]:
    return FakeHost
