from __future__ import annotations

from pathlib import Path

import allure
import pytest

from ae_bridge.bridge.automation import AutomationClient, render_do_script_file
from ae_bridge.bridge.errors import AutomationInvocationError
from ae_bridge.config import HostSettings

pytestmark = [
    allure.epic("AE Bridge"),
    allure.feature("Automation Calls"),
]


def _client(fake_automation, **overrides) -> AutomationClient:
    return AutomationClient(
        HostSettings(
            osascript_path=str(fake_automation.osascript),
            open_command=str(fake_automation.open_command),
            **overrides,
        ),
    )


def test_render_do_script_file_tolerates_no_result() -> None:
    source = render_do_script_file(
        application="Adobe After Effects 2025",
        script_path=Path('/tmp/a "b".jsx'),
        activate=True,
    )

    assert source.startswith('tell application "Adobe After Effects 2025"\nactivate\n')
    assert 'DoScriptFile (POSIX file "/tmp/a \\"b\\".jsx")' in source
    assert "if errNum is -2763 then" in source


def test_liveness_reads_system_events_answer(fake_automation, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_AE_RUNNING", "true")
    assert _client(fake_automation).is_process_running() is True

    monkeypatch.setenv("FAKE_AE_RUNNING", "false")
    assert _client(fake_automation).is_process_running() is False
    assert 'exists process "After Effects"' in fake_automation.calls()[-1]


def test_liveness_fails_closed_when_osascript_missing(tmp_path: Path) -> None:
    client = AutomationClient(HostSettings(osascript_path=str(tmp_path / "missing")))

    assert client.is_process_running() is False


def test_liveness_fails_closed_on_non_zero_exit(fake_automation, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_AE_RUNNING", "true")
    client = AutomationClient(HostSettings(osascript_path="/bin/false"))

    assert client.is_process_running() is False


def test_do_script_file_returns_stripped_output(fake_automation, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("FAKE_OSASCRIPT_OUTPUT", "processed")
    script = tmp_path / "s.jsx"
    script.write_text("aeBridgeTick();", "utf-8")

    assert _client(fake_automation).do_script_file(script) == "processed"
    assert fake_automation.script_copy_path.read_text("utf-8") == "aeBridgeTick();"


def test_do_script_file_raises_on_non_zero_exit(fake_automation, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("FAKE_OSASCRIPT_EXIT", "1")
    script = tmp_path / "s.jsx"
    script.write_text("x", "utf-8")

    with pytest.raises(AutomationInvocationError) as error:
        _client(fake_automation).do_script_file(script)

    assert error.value.exit_code == 1
    assert "-1708" in error.value.stderr
    assert error.value.timed_out is False


def test_do_script_file_terminates_hung_call(fake_automation, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("FAKE_OSASCRIPT_SLEEP", "10")
    script = tmp_path / "s.jsx"
    script.write_text("x", "utf-8")

    with pytest.raises(AutomationInvocationError) as error:
        _client(fake_automation, invoke_timeout_seconds=0.5).do_script_file(script)

    assert error.value.timed_out is True


def test_launch_passes_startup_script_argument(fake_automation, tmp_path) -> None:
    script = tmp_path / "one-shot.jsx"
    script.write_text("x", "utf-8")

    _client(fake_automation).launch_with_startup_script(script)

    assert fake_automation.open_calls() == [f"-b com.adobe.AfterEffects --args -r {script}"]
