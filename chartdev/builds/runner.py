"""Runner for external image tool commands.

This module handles:
- Composing the build and publish commands for a target
- Executing a command with its output streamed line by line
- Prefixing every output line with the target name
- Enforcing optional command timeouts

The working directory is passed to the child process explicitly; the
process-wide working directory is never changed.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path
from typing import IO, TYPE_CHECKING, cast

if TYPE_CHECKING:
    from chartdev.images.schema import BuildTarget

logger = logging.getLogger(__name__)
output_logger = logging.getLogger("chartdev.builds.output")

LineSink = Callable[[str, str], None]


class CommandExecutionError(Exception):
    """Raised when a command cannot be started or does not finish in time."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "execution_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


def log_sink(prefix: str, line: str) -> None:
    """Default sink: log one prefixed output line."""
    output_logger.info("%s | %s", prefix, line)


def compose_build_command(tool: str, target: BuildTarget) -> list[str]:
    """Compose the image build command for a target.

    Args:
        tool: Container tool executable (e.g. ``docker``).
        target: Target to build.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [tool, "build", "-t", target.reference, str(target.abs_source_path)]


def compose_publish_command(tool: str, target: BuildTarget) -> list[str]:
    """Compose the image push command for a target."""
    return [tool, "push", target.reference]


def _pump(stream: IO[str], prefix: str, sink: LineSink) -> None:
    with stream:
        for line in stream:
            sink(prefix, line.rstrip("\r\n"))


def run_streamed(
    cmd: list[str],
    prefix: str,
    cwd: Path | None = None,
    sink: LineSink | None = None,
    timeout: float | None = None,
) -> int:
    """Run a command, streaming its output to a sink as it is produced.

    Standard error is merged into standard output. The output reader runs on
    its own thread and is always drained before this function returns.

    Args:
        cmd: Command to execute.
        prefix: Prefix passed to the sink with every line.
        cwd: Working directory for the child process.
        sink: Receives ``(prefix, line)``; defaults to ``log_sink``.
        timeout: Seconds to wait for the command (None = no timeout).

    Returns:
        Process exit code.

    Raises:
        CommandExecutionError: If the command cannot be started or times out.
    """
    sink = sink or log_sink
    cmd_str = shlex.join(cmd)
    logger.debug("Executing: %s (cwd=%s)", cmd_str, cwd)

    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise CommandExecutionError(
            f"Failed to execute {cmd_str}: {e}",
            code="execution_error",
        ) from e

    output = cast(IO[str], proc.stdout)
    reader = threading.Thread(
        target=_pump,
        args=(output, prefix, sink),
        name=f"output-{prefix}",
        daemon=True,
    )
    reader.start()

    try:
        exit_code = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        proc.kill()
        proc.wait()
        reader.join()
        raise CommandExecutionError(
            f"{cmd_str} timed out after {timeout} seconds",
            exit_code=-1,
            code="timeout",
        ) from e

    reader.join()
    logger.debug("%s exited with code %d", cmd_str, exit_code)
    return exit_code


__all__ = [
    "CommandExecutionError",
    "LineSink",
    "compose_build_command",
    "compose_publish_command",
    "log_sink",
    "run_streamed",
]
