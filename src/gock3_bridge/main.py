"""CLI entrypoint for gock3-bridge."""

import logging
from pathlib import Path

import rich_click as click

from gock3_bridge import __version__
from gock3_bridge.controllers import (
    BridgeCliController,
    CommandResult,
    PlatformCommand,
    ProvisionCommand,
    RunCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = BridgeCliController()


@click.group()
@click.version_option(version=__version__, prog_name="gock3-bridge")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
def gock3_bridge(verbose: bool) -> None:
    """GOCK3 language server provisioning and session bridge."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@gock3_bridge.command("platform")
@click.option(
    "--os-id",
    default=None,
    help="Operating system identifier to resolve, for example win32, darwin or linux.",
)
def platform(os_id: str | None) -> None:
    """Show the worker variant for this (or the given) platform."""

    _emit(CONTROLLER.platform(PlatformCommand(os_id=os_id)), "Unsupported platform.")


@gock3_bridge.command("provision")
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the downloaded executable. Defaults to GOCK3_BRIDGE_STORAGE_DIR.",
)
def provision(storage_dir: Path | None) -> None:
    """Make sure the worker executable is present and executable."""

    _emit(CONTROLLER.provision(ProvisionCommand(storage_dir=storage_dir)), "Provisioning failed.")


@gock3_bridge.command("run")
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the downloaded executable. Defaults to GOCK3_BRIDGE_STORAGE_DIR.",
)
@click.option(
    "--workspace",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Workspace root announced to the worker and watched for file changes.",
)
@click.option(
    "--debug/--no-debug",
    default=False,
    show_default=True,
    help="Launch the worker with --debug.",
)
@click.option(
    "--duration",
    "duration_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop the session after this many seconds instead of waiting for the worker to exit.",
)
def run(
    storage_dir: Path | None,
    workspace: Path | None,
    debug: bool,
    duration_seconds: float | None,
) -> None:
    """Provision the worker and keep a session with it in the foreground."""

    _emit(
        CONTROLLER.run(
            RunCommand(
                storage_dir=storage_dir,
                workspace=workspace,
                debug=debug,
                duration_seconds=duration_seconds,
            ),
        ),
        "Worker session failed.",
    )


def _emit(result: CommandResult, failure_message: str) -> None:
    for line in result.lines:
        click.echo(line)
    if not result.success:
        raise click.ClickException(failure_message)


if __name__ == "__main__":  # pragma: no cover
    gock3_bridge()
