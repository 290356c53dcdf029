from __future__ import annotations

from pathlib import Path

import allure

from ae_bridge.bridge.installer import BridgeInstaller, candidate_roots

pytestmark = [
    allure.epic("AE Bridge"),
    allure.feature("Installer"),
]


def _installer(home: Path, **kwargs) -> BridgeInstaller:
    return BridgeInstaller(
        home=home,
        script_name="AEBridge.jsx",
        script_text=kwargs.pop("script_text", "// consumer\n"),
        **kwargs,
    )


def _all_files(home: Path) -> list[Path]:
    return sorted(path for path in home.rglob("*") if path.is_file())


def test_seeds_versions_when_none_exist(tmp_path: Path) -> None:
    result = _installer(tmp_path).install()

    assert result.success is True
    assert result.installed_count == 6
    for root in candidate_roots(tmp_path):
        assert sorted(path.name for path in root.iterdir()) == ["23.0", "24.0", "25.0"]
        script = root / "25.0" / "Scripts" / "Startup" / "AEBridge.jsx"
        assert script.read_text("utf-8") == "// consumer\n"


def test_uses_existing_versions_without_seeding(tmp_path: Path) -> None:
    prefs, support = candidate_roots(tmp_path)
    (prefs / "26.0").mkdir(parents=True)

    result = _installer(tmp_path).install()

    assert sorted(path.name for path in prefs.iterdir()) == ["26.0"]
    assert (prefs / "26.0" / "Scripts" / "Startup" / "AEBridge.jsx").is_file()
    assert sorted(path.name for path in support.iterdir()) == ["23.0", "24.0", "25.0"]
    assert result.installed_count == 4


def test_install_twice_is_idempotent(tmp_path: Path) -> None:
    first = _installer(tmp_path).install()
    files_after_first = _all_files(tmp_path)
    second = _installer(tmp_path, script_text="// consumer v2\n").install()

    assert first.installed_count == second.installed_count
    assert _all_files(tmp_path) == files_after_first
    assert all(path.read_text("utf-8") == "// consumer v2\n" for path in files_after_first)


def test_custom_seed_versions(tmp_path: Path) -> None:
    result = _installer(tmp_path, seed_versions=("24.6",)).install()

    assert result.installed_count == 2
    assert [target.versions for target in _installer(tmp_path).discover_targets()] == [
        ("24.6",),
        ("24.6",),
    ]


def test_all_writes_failing_reports_zero_without_raising(tmp_path: Path) -> None:
    home = tmp_path / "home"
    home.mkdir()
    (home / "Library").write_text("not a directory", "utf-8")

    result = _installer(home).install()

    assert result.success is False
    assert result.installed_count == 0
    assert result.message == "Could not create any Startup folder"


def test_installed_scripts_does_not_create_anything(tmp_path: Path) -> None:
    installer = _installer(tmp_path)

    assert installer.installed_scripts() == []
    assert list(tmp_path.iterdir()) == []

    installer.install()
    assert len(installer.installed_scripts()) == 6
