"""Controllers for bridge CLI commands."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

from gock3_bridge.config import Settings
from gock3_bridge.errors import BridgeError
from gock3_bridge.host import ConsoleHost
from gock3_bridge.http.fetcher import AsyncHttpFetcher
from gock3_bridge.lifecycle import LifecycleController, LifecycleState, storage_path_for
from gock3_bridge.provisioning.platforms import current_os_id, resolve
from gock3_bridge.provisioning.provisioner import Provisioner

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PlatformCommand:
    """CLI inputs for platform resolution."""

    os_id: str | None


@dataclass(slots=True)
class ProvisionCommand:
    """CLI inputs for provisioning without starting a session."""

    storage_dir: Path | None


@dataclass(slots=True)
class RunCommand:
    """CLI inputs for a foreground worker session."""

    storage_dir: Path | None
    workspace: Path | None
    debug: bool
    duration_seconds: float | None = None


@dataclass(slots=True)
class CommandResult:
    """Printable outcome with a success flag for the exit code."""

    success: bool
    lines: list[str] = field(default_factory=list)


class BridgeCliController:
    """Coordinates bridge command execution."""

    def platform(self, command: PlatformCommand) -> CommandResult:
        settings = Settings.from_env()
        os_id = command.os_id or current_os_id()
        variant = resolve(os_id, base_url=settings.provisioning.download_base_url)
        if variant is None:
            return CommandResult(success=False, lines=[f"Unsupported platform: {os_id}"])
        return CommandResult(
            success=True,
            lines=[
                f"os_id={os_id} platform={variant.platform_id.value}",
                f"executable={variant.executable_file_name}",
                f"url={variant.remote_artifact_url}",
                f"path={storage_path_for(settings, os_id)}",
            ],
        )

    def provision(self, command: ProvisionCommand) -> CommandResult:
        try:
            settings = Settings.from_env(storage_dir=command.storage_dir)
            settings.validate()
        except ValueError as error:
            return CommandResult(success=False, lines=[str(error)])
        os_id = current_os_id()
        variant = resolve(os_id, base_url=settings.provisioning.download_base_url)
        if variant is None:
            return CommandResult(success=False, lines=[f"Unsupported platform: {os_id}"])
        host = ConsoleHost(settings.provisioning.storage_dir)

        async def _provision():
            async with AsyncHttpFetcher() as fetcher:
                provisioner = Provisioner(host, fetcher, os_id=os_id)
                return await provisioner.ensure_executable(variant, host.storage_dir)

        try:
            executable = asyncio.run(_provision())
        except BridgeError as error:
            return CommandResult(success=False, lines=[f"Provisioning failed: {error}"])
        return CommandResult(
            success=True,
            lines=[
                f"Executable: {executable.path}",
                f"Downloaded: {'yes' if executable.downloaded else 'no (cached)'}",
                f"Executable bit: {'yes' if executable.executable_bit_set else 'no'}",
            ],
        )

    def run(self, command: RunCommand) -> CommandResult:
        try:
            settings = Settings.from_env(storage_dir=command.storage_dir)
            if command.debug:
                settings.session.debug = True
            settings.validate()
        except ValueError as error:
            return CommandResult(success=False, lines=[str(error)])
        host = ConsoleHost(settings.provisioning.storage_dir, workspace_root=command.workspace)
        controller = LifecycleController(host, settings)
        return asyncio.run(_run_session(controller, command.duration_seconds))


async def _run_session(
    controller: LifecycleController,
    duration_seconds: float | None,
) -> CommandResult:
    await controller.activate()
    session = controller.session
    if controller.state is not LifecycleState.RUNNING or session is None:
        return CommandResult(
            success=False,
            lines=[f"Activation ended in state {controller.state.value}."],
        )

    lines = [f"Session running: pid={session.pid}"]
    try:
        if duration_seconds is None:
            exit_code = await session.wait_closed()
            lines.append(f"Worker exited with code {exit_code}.")
        else:
            with contextlib.suppress(TimeoutError, asyncio.TimeoutError):
                await asyncio.wait_for(session.wait_closed(), timeout=duration_seconds)
    finally:
        await controller.deactivate()
    lines.append(f"Session state: {controller.state.value}")
    return CommandResult(success=True, lines=lines)
