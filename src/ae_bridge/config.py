"""Runtime configuration for the After Effects bridge."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DELIVERY_MODES: tuple[str, ...] = ("auto", "direct", "queued")


def _default_support_root() -> Path:
    return Path.home() / "Library" / "Application Support" / "ae-bridge"


def _default_log_path() -> Path:
    return Path.home() / "Library" / "Logs" / "ae-bridge" / "ae-integration.log"


@dataclass(slots=True)
class HostSettings:
    """How the host application is addressed by automation calls."""

    process_name: str = "After Effects"
    application_name: str = "After Effects"
    bundle_id: str = "com.adobe.AfterEffects"
    osascript_path: str = "/usr/bin/osascript"
    open_command: str = "/usr/bin/open"
    invoke_timeout_seconds: float = 7.0
    settle_seconds: float = 2.0
    restart_grace_seconds: float = 6.0


@dataclass(slots=True)
class QueueSettings:
    """Queue, await, and consumer timing settings."""

    await_timeout_ms: int = 5_000
    poll_interval_ms: int = 150
    ttl_seconds: int = 300
    tick_interval_seconds: float = 5.0
    delivery_mode: str = "auto"


@dataclass(slots=True)
class InstallSettings:
    """Startup-script deployment settings."""

    script_name: str = "AEBridge.jsx"
    seed_versions: tuple[str, ...] = ("25.0", "24.0", "23.0")


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    support_root: Path = field(default_factory=_default_support_root)
    log_path: Path = field(default_factory=_default_log_path)
    host: HostSettings = field(default_factory=HostSettings)
    queue: QueueSettings = field(default_factory=QueueSettings)
    install: InstallSettings = field(default_factory=InstallSettings)

    @classmethod
    def from_env(cls, support_root: Path | None = None) -> Settings:
        """Load settings from environment with defaults matching a stock macOS install."""

        env_root = os.getenv("AE_BRIDGE_SUPPORT_ROOT", "").strip()
        env_log = os.getenv("AE_BRIDGE_LOG_PATH", "").strip()
        return cls(
            support_root=support_root or (Path(env_root) if env_root else _default_support_root()),
            log_path=Path(env_log) if env_log else _default_log_path(),
            host=HostSettings(
                process_name=os.getenv("AE_BRIDGE_PROCESS_NAME", "After Effects"),
                application_name=os.getenv("AE_BRIDGE_APPLICATION", "After Effects"),
                bundle_id=os.getenv("AE_BRIDGE_BUNDLE_ID", "com.adobe.AfterEffects"),
                osascript_path=os.getenv("AE_BRIDGE_OSASCRIPT", "/usr/bin/osascript"),
                open_command=os.getenv("AE_BRIDGE_OPEN_COMMAND", "/usr/bin/open"),
                invoke_timeout_seconds=float(
                    os.getenv("AE_BRIDGE_INVOKE_TIMEOUT_SECONDS", "7.0"),
                ),
                settle_seconds=float(os.getenv("AE_BRIDGE_SETTLE_SECONDS", "2.0")),
                restart_grace_seconds=float(
                    os.getenv("AE_BRIDGE_RESTART_GRACE_SECONDS", "6.0"),
                ),
            ),
            queue=QueueSettings(
                await_timeout_ms=int(os.getenv("AE_BRIDGE_AWAIT_TIMEOUT_MS", "5000")),
                poll_interval_ms=int(os.getenv("AE_BRIDGE_POLL_INTERVAL_MS", "150")),
                ttl_seconds=int(os.getenv("AE_BRIDGE_TTL_SECONDS", "300")),
                tick_interval_seconds=float(
                    os.getenv("AE_BRIDGE_TICK_INTERVAL_SECONDS", "5.0"),
                ),
                delivery_mode=os.getenv("AE_BRIDGE_DELIVERY_MODE", "auto").strip().lower(),
            ),
            install=InstallSettings(
                script_name=os.getenv("AE_BRIDGE_SCRIPT_NAME", "AEBridge.jsx"),
                seed_versions=_collect_seed_versions(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the bridge cannot work with."""

        if self.host.invoke_timeout_seconds <= 0:
            raise ValueError("AE_BRIDGE_INVOKE_TIMEOUT_SECONDS must be > 0.")
        if self.host.settle_seconds < 0:
            raise ValueError("AE_BRIDGE_SETTLE_SECONDS must be >= 0.")
        if self.host.restart_grace_seconds < 0:
            raise ValueError("AE_BRIDGE_RESTART_GRACE_SECONDS must be >= 0.")
        if self.queue.await_timeout_ms <= 0:
            raise ValueError("AE_BRIDGE_AWAIT_TIMEOUT_MS must be > 0.")
        if self.queue.poll_interval_ms <= 0:
            raise ValueError("AE_BRIDGE_POLL_INTERVAL_MS must be > 0.")
        if self.queue.poll_interval_ms > self.queue.await_timeout_ms:
            raise ValueError(
                "AE_BRIDGE_POLL_INTERVAL_MS must not exceed AE_BRIDGE_AWAIT_TIMEOUT_MS.",
            )
        if self.queue.ttl_seconds <= 0:
            raise ValueError("AE_BRIDGE_TTL_SECONDS must be > 0.")
        if self.queue.tick_interval_seconds <= 0:
            raise ValueError("AE_BRIDGE_TICK_INTERVAL_SECONDS must be > 0.")
        if self.queue.delivery_mode not in DELIVERY_MODES:
            raise ValueError(
                "Invalid AE_BRIDGE_DELIVERY_MODE: "
                f"{self.queue.delivery_mode!r}. Expected one of: {', '.join(DELIVERY_MODES)}.",
            )
        script_name = self.install.script_name.strip()
        if not script_name.endswith(".jsx") or "/" in script_name:
            raise ValueError(
                f"Invalid AE_BRIDGE_SCRIPT_NAME: {script_name!r}. Expected a bare *.jsx file name.",
            )


def _collect_seed_versions() -> tuple[str, ...]:
    raw = os.getenv("AE_BRIDGE_SEED_VERSIONS", "").strip()
    if not raw:
        return ("25.0", "24.0", "23.0")
    deduped: list[str] = []
    for part in raw.split(","):
        token = part.strip()
        if token and token not in deduped:
            deduped.append(token)
    return tuple(deduped)
