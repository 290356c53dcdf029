"""Deploys the consumer script into every discovered host version's startup folder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ae_bridge.bridge.contracts import write_text_atomic

logger = logging.getLogger(__name__)

STARTUP_SUBDIR = ("Scripts", "Startup")


@dataclass(frozen=True, slots=True)
class BridgeTarget:
    """One host preference root and the version folders found (or seeded) under it."""

    base: Path
    versions: tuple[str, ...]

    def startup_dirs(self) -> list[Path]:
        return [self.base.joinpath(version, *STARTUP_SUBDIR) for version in self.versions]


@dataclass(frozen=True, slots=True)
class BridgeInstallResult:
    success: bool
    installed_count: int
    message: str
    installed_paths: tuple[Path, ...] = ()


def candidate_roots(home: Path) -> list[Path]:
    """Per-user folders where the host keeps version-specific scripts."""

    return [
        home / "Library" / "Preferences" / "Adobe" / "After Effects",
        home / "Library" / "Application Support" / "Adobe" / "After Effects",
    ]


class BridgeInstaller:
    """Idempotent startup-script deployment: each run overwrites the same files."""

    def __init__(
        self,
        *,
        home: Path,
        script_name: str,
        script_text: str,
        seed_versions: tuple[str, ...] = ("25.0", "24.0", "23.0"),
    ) -> None:
        self.home = home
        self.script_name = script_name
        self.script_text = script_text
        self.seed_versions = seed_versions

    def discover_targets(self) -> list[BridgeTarget]:
        """List version folders under each root, seeding conventional ones when none exist."""

        targets: list[BridgeTarget] = []
        for base in candidate_roots(self.home):
            try:
                base.mkdir(parents=True, exist_ok=True)
            except OSError as error:
                logger.warning("Cannot create host root %s: %s", base, error)
                continue

            versions = _list_version_dirs(base)
            if not versions:
                versions = self._seed(base)
            if versions:
                targets.append(BridgeTarget(base=base, versions=tuple(versions)))
        return targets

    def install(self) -> BridgeInstallResult:
        """Write the script into every startup folder. Never raises for write failures."""

        installed: list[Path] = []
        for target in self.discover_targets():
            for startup_dir in target.startup_dirs():
                script_path = startup_dir / self.script_name
                try:
                    startup_dir.mkdir(parents=True, exist_ok=True)
                    write_text_atomic(script_path, self.script_text)
                except OSError as error:
                    logger.warning("Install failed for %s: %s", script_path, error)
                    continue
                installed.append(script_path)

        if not installed:
            return BridgeInstallResult(
                success=False,
                installed_count=0,
                message="Could not create any Startup folder",
            )
        logger.info("Installed %s into %d startup folder(s)", self.script_name, len(installed))
        return BridgeInstallResult(
            success=True,
            installed_count=len(installed),
            message=f"Installed bridge in {len(installed)} version(s)",
            installed_paths=tuple(installed),
        )

    def installed_scripts(self) -> list[Path]:
        """Existing deployed copies, without creating or seeding anything."""

        found: list[Path] = []
        for base in candidate_roots(self.home):
            for version in _list_version_dirs(base):
                script_path = base.joinpath(version, *STARTUP_SUBDIR, self.script_name)
                if script_path.is_file():
                    found.append(script_path)
        return found

    def _seed(self, base: Path) -> list[str]:
        seeded: list[str] = []
        for version in self.seed_versions:
            try:
                (base / version).mkdir(parents=True, exist_ok=True)
            except OSError as error:
                logger.warning("Cannot seed %s/%s: %s", base, version, error)
                continue
            seeded.append(version)
        return seeded


def _list_version_dirs(base: Path) -> list[str]:
    try:
        return sorted(path.name for path in base.iterdir() if path.is_dir())
    except OSError:
        return []
