from __future__ import annotations

import allure
import pytest

from ae_bridge.bridge.commands import ImportAudio, RunScriptFile, RunScriptText
from ae_bridge.bridge.layout import BridgeLayout
from ae_bridge.bridge.scripts import (
    js_string,
    render_consumer_script,
    render_direct_script,
    render_restart_script,
)

pytestmark = [
    allure.epic("AE Bridge"),
    allure.feature("Host Scripts"),
]


def test_js_string_is_ascii_only() -> None:
    assert js_string('Ä "q"\n') == '"\\u00c4 \\"q\\"\\n"'


def test_consumer_script_embeds_layout_and_timing(layout: BridgeLayout) -> None:
    source = render_consumer_script(layout, ttl_seconds=120, tick_interval_seconds=2.5)

    assert js_string(str(layout.queue_dir)) in source
    assert js_string(str(layout.jobs_dir)) in source
    assert js_string(str(layout.stop_flag)) in source
    assert "var AE_BRIDGE_TTL_MS = 120000;" in source
    assert "var AE_BRIDGE_TICK_MS = 2500;" in source
    assert "{{" not in source


def test_consumer_script_arms_timer_once_and_runs_a_tick(layout: BridgeLayout) -> None:
    source = render_consumer_script(layout)

    assert 'typeof $.global.aeBridgeTaskId === "undefined"' in source
    assert 'app.scheduleTask("aeBridgeTick()", AE_BRIDGE_TICK_MS, true)' in source
    assert source.rstrip().endswith("aeBridgeTick();")


def test_direct_import_is_idempotent_and_reports_outcome() -> None:
    source = render_direct_script(ImportAudio(path="/a.wav", require_active_comp=False))

    assert 'aeBridgeImportAudio("/a.wav", false);' in source
    assert "if (!folder) { folder = prj.items.addFolder(" in source
    assert "if (!footage) { footage = prj.importFile(" in source
    assert 'return "ok";' in source


def test_direct_script_text_is_verbatim() -> None:
    assert render_direct_script(RunScriptText(code="alert('x');")) == "alert('x');"


def test_direct_script_rejects_file_scripts() -> None:
    with pytest.raises(ValueError):
        render_direct_script(RunScriptFile(path="/a.jsx"))


def test_restart_script_never_requires_a_comp() -> None:
    source = render_restart_script(ImportAudio(path="/a.wav", require_active_comp=True))

    assert 'aeBridgeImportAudio("/a.wav", false);' in source
