"""CLI entrypoint for ae-bridge."""

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from ae_bridge import __version__
from ae_bridge.bridge.controllers import (
    BatchImportCommand,
    BridgeCliController,
    BridgeCliResult,
    ConsumeCommand,
    EnqueueAudioCommand,
    ImportAudioCommand,
    InstallCommand,
    RestartImportCommand,
    RunFileCommand,
    RunScriptCommand,
    StatusCommand,
)

click.rich_click.USE_MARKDOWN = True
BRIDGE_CONTROLLER = BridgeCliController()

T = TypeVar("T")


@click.group()
@click.version_option(version=__version__, prog_name="ae-bridge")
def ae_bridge() -> None:
    """After Effects bridge CLI."""


@ae_bridge.command("install")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Home directory to install into. Defaults to the current user's home.",
)
def install(home: Path | None) -> None:
    """Deploy the consumer script into every After Effects startup folder."""

    _emit_result(_call(lambda: BRIDGE_CONTROLLER.install(InstallCommand(home=home))))


@ae_bridge.command("status")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Home directory to inspect for installed scripts.",
)
def status(home: Path | None) -> None:
    """Show liveness, installed scripts, queue depth and the stop flag."""

    _emit_lines(_call(lambda: BRIDGE_CONTROLLER.status(StatusCommand(home=home))))


@ae_bridge.command("import-audio")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--queued/--direct",
    "queued",
    default=None,
    help="Force a delivery strategy. Defaults to AE_BRIDGE_DELIVERY_MODE.",
)
@click.option(
    "--require-comp/--no-require-comp",
    default=True,
    show_default=True,
    help="Fail when no composition is active.",
)
@click.option(
    "--wait/--no-wait",
    default=True,
    show_default=True,
    help="Wait for the result artifact of a queued job.",
)
def import_audio(path: Path, queued: bool | None, require_comp: bool, wait: bool) -> None:
    """Import an audio file into the active composition."""

    _emit_result(
        _call(
            lambda: BRIDGE_CONTROLLER.import_audio(
                ImportAudioCommand(
                    path=path,
                    mode=_mode(queued),
                    require_active_comp=require_comp,
                    wait=wait,
                ),
            ),
        ),
    )


@ae_bridge.command("run-script")
@click.argument("code")
@click.option(
    "--queued/--direct",
    "queued",
    default=None,
    help="Force a delivery strategy. Defaults to AE_BRIDGE_DELIVERY_MODE.",
)
@click.option("--wait/--no-wait", default=True, show_default=True)
def run_script(code: str, queued: bool | None, wait: bool) -> None:
    """Run ExtendScript source in After Effects. Pass `-` to read stdin."""

    source = click.get_text_stream("stdin").read() if code == "-" else code
    if not source.strip():
        raise click.ClickException("Script text is empty.")
    _emit_result(
        _call(
            lambda: BRIDGE_CONTROLLER.run_script(
                RunScriptCommand(code=source, mode=_mode(queued), wait=wait),
            ),
        ),
    )


@ae_bridge.command("run-file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--wait/--no-wait", default=True, show_default=True)
def run_file(path: Path, wait: bool) -> None:
    """Run an ExtendScript file through the queued consumer."""

    _emit_result(_call(lambda: BRIDGE_CONTROLLER.run_file(RunFileCommand(path=path, wait=wait))))


@ae_bridge.command("enqueue-audio")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--wake/--no-wake",
    default=True,
    show_default=True,
    help="Run one consumer tick right away when After Effects is running.",
)
def enqueue_audio(path: Path, wake: bool) -> None:
    """Drop a legacy `.cmd` entry into the bridge queue."""

    _emit_result(
        _call(lambda: BRIDGE_CONTROLLER.enqueue_audio(EnqueueAudioCommand(path=path, wake=wake))),
    )


@ae_bridge.command("batch-import")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def batch_import(paths: tuple[Path, ...]) -> None:
    """Import several audio files, continuing past individual failures."""

    _emit_result(_call(lambda: BRIDGE_CONTROLLER.batch_import(BatchImportCommand(paths=paths))))


@ae_bridge.command("stop")
def stop() -> None:
    """Create the stop flag; the consumer stays idle until resumed."""

    _emit_lines(_call(BRIDGE_CONTROLLER.stop))


@ae_bridge.command("resume")
def resume() -> None:
    """Remove the stop flag."""

    _emit_lines(_call(BRIDGE_CONTROLLER.resume))


@ae_bridge.command("consume")
@click.option("--once", is_flag=True, default=False, help="Run a single tick.")
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many ticks.",
)
def consume(once: bool, max_ticks: int | None) -> None:
    """Drain the bridge queue from outside the host, one entry per tick."""

    _emit_lines(
        _call(
            lambda: BRIDGE_CONTROLLER.consume(ConsumeCommand(once=once, max_ticks=max_ticks)),
        ),
    )


@ae_bridge.command("ensure-running")
def ensure_running() -> None:
    """Launch After Effects when it is not running and wait for it to settle."""

    _emit_result(_call(BRIDGE_CONTROLLER.ensure_running))


@ae_bridge.command("restart-import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def restart_import(path: Path) -> None:
    """Launch a closed After Effects with a one-shot import script."""

    _emit_result(
        _call(lambda: BRIDGE_CONTROLLER.restart_import(RestartImportCommand(path=path))),
    )


@ae_bridge.command("log-path")
def log_path() -> None:
    """Print the activity log location."""

    _emit_lines(_call(BRIDGE_CONTROLLER.log_path))


@ae_bridge.command("clear-log")
def clear_log() -> None:
    """Delete the activity log."""

    _emit_lines(_call(BRIDGE_CONTROLLER.clear_log))


def _mode(queued: bool | None) -> str | None:
    if queued is None:
        return None
    return "queued" if queued else "direct"


def _call(action: Callable[[], T]) -> T:
    try:
        return action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_result(result: BridgeCliResult) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(result.failure or "Command failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ae_bridge()
