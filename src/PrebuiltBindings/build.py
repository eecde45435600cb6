"""Build fallback: rebuild every binding with the external native toolchain.

The toolchain is opaque; only its exit status matters. Console streams are
inherited so compiler output reaches the user directly.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional, Sequence

from .errors import BuildExitError, BuildSignalError, BuildToolchainMissing
from .settings import BuilderSettings

LOGGER = logging.getLogger(__name__)

__all__ = ["run_build", "signal_name"]


def signal_name(signum: int) -> str:
    """Return ``SIGKILL``-style names, falling back to the number.

    Examples:
        >>> signal_name(9)
        'SIGKILL'
    """
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


async def run_build(
    settings: Optional[BuilderSettings] = None,
    *,
    cwd: Optional[Path] = None,
    extra_args: Sequence[str] = (),
) -> None:
    """Run the toolchain once and wait for it.

    Args:
        settings: Executable and arguments; the executable defaults to the
            per-platform name resolved on ``PATH``.
        cwd: Working directory, normally the project root.
        extra_args: Appended after the configured arguments.

    Raises:
        BuildToolchainMissing: The executable could not be started.
        BuildSignalError: The process was killed by a signal.
        BuildExitError: The process exited with a non-zero status.
    """
    settings = settings or BuilderSettings()
    executable = settings.resolved_executable()
    args = [*settings.args, *extra_args]
    LOGGER.info("Building from source...", extra={"stage": "build"})
    LOGGER.debug("toolchain command", extra={"stage": "build", "command": [executable, *args]})
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            cwd=str(cwd) if cwd is not None else None,
        )
    except OSError as exc:
        raise BuildToolchainMissing(f"Unable to start '{executable}': {exc}") from exc

    returncode = await process.wait()
    if returncode < 0:
        raise BuildSignalError(executable, signal_name(-returncode))
    if returncode != 0:
        raise BuildExitError(executable, returncode)
    LOGGER.info("Build finished", extra={"stage": "build"})
