from __future__ import annotations

from pathlib import Path

import allure
import pytest

from ae_bridge.bridge.host import AutomationHostSession

pytestmark = [
    allure.epic("AE Bridge"),
    allure.feature("Host-Side Consumer Loop"),
]


class ScriptedClient:
    """Answers each script with the next queued reply and records its source."""

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.sources: list[str] = []
        self.paths: list[Path] = []

    def do_script_file(self, script_path: Path, *, activate: bool = False) -> str:
        self.paths.append(script_path)
        self.sources.append(script_path.read_text("utf-8"))
        return self.replies.pop(0)


def test_ids_are_parsed_and_empty_means_missing(tmp_path: Path) -> None:
    client = ScriptedClient("12", "", "7")
    session = AutomationHostSession(client, scratch_dir=tmp_path)

    assert session.find_folder("Audio") == 12
    assert session.find_footage("/a.wav") is None
    assert session.active_comp() == 7
    assert 'aeBridgeFindFolder(app.project, "Audio")' in client.sources[0]
    assert list(tmp_path.iterdir()) == []


def test_required_id_raises_when_host_returns_nothing(tmp_path: Path) -> None:
    session = AutomationHostSession(ScriptedClient(""), scratch_dir=tmp_path)

    with pytest.raises(RuntimeError, match="import /a.wav"):
        session.import_footage("/a.wav")


def test_flags_compare_against_true(tmp_path: Path) -> None:
    session = AutomationHostSession(ScriptedClient("true", "false"), scratch_dir=tmp_path)

    assert session.has_project() is True
    assert session.has_selection() is False


def test_undo_group_closes_even_when_body_fails(tmp_path: Path) -> None:
    client = ScriptedClient("ok", "ok")
    session = AutomationHostSession(client, scratch_dir=tmp_path)

    with pytest.raises(RuntimeError), session.undo_group("AE Bridge Add Audio"):
        raise RuntimeError("boom")

    assert 'app.beginUndoGroup("AE Bridge Add Audio")' in client.sources[0]
    assert "app.endUndoGroup()" in client.sources[1]


def test_evaluate_file_runs_the_file_itself(tmp_path: Path) -> None:
    script = tmp_path / "tool.jsx"
    script.write_text("alert(1);", "utf-8")
    client = ScriptedClient("")

    AutomationHostSession(client).evaluate_file(str(script))

    assert client.paths == [script]
