"""Release management.

The development loop talks to release management through the small
ReleaseController protocol. HelmReleaseController implements it on top of
the ``helm`` command line; the manifest content is passed as values on stdin.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class ReleaseError(Exception):
    """Base error for release operations."""

    def __init__(
        self,
        release_name: str,
        message: str,
        code: str = "release_error",
    ) -> None:
        super().__init__(message)
        self.release_name = release_name
        self.code = code


class InstallError(ReleaseError):
    """Raised when a release cannot be installed."""

    def __init__(self, release_name: str, message: str) -> None:
        super().__init__(
            release_name,
            f"install of {release_name} failed: {message}",
            "install_failed",
        )


class UninstallError(ReleaseError):
    """Raised when a release cannot be uninstalled."""

    def __init__(self, release_name: str, message: str) -> None:
        super().__init__(
            release_name,
            f"uninstall of {release_name} failed: {message}",
            "uninstall_failed",
        )


class ReleaseController(Protocol):
    """Installs and uninstalls named releases of a chart."""

    def install(
        self,
        values: bytes,
        chart_path: Path,
        release_name: str,
        dry_run: bool = False,
    ) -> None: ...

    def uninstall(self, release_name: str, dry_run: bool = False) -> None: ...


class HelmReleaseController:
    """ReleaseController backed by the helm CLI.

    Args:
        helm_binary: helm executable.
        timeout: Seconds to wait for each helm call (None = no timeout).
    """

    def __init__(self, helm_binary: str = "helm", timeout: float | None = None) -> None:
        self.helm_binary = helm_binary
        self.timeout = timeout

    def _run(self, cmd: list[str], stdin: bytes | None = None) -> tuple[int, str]:
        logger.debug("Executing: %s", shlex.join(cmd))
        result = subprocess.run(
            cmd,
            input=stdin,
            capture_output=True,
            timeout=self.timeout,
            check=False,
        )
        output = (result.stderr or result.stdout or b"").decode(errors="replace")
        return result.returncode, output.strip()

    def install(
        self,
        values: bytes,
        chart_path: Path,
        release_name: str,
        dry_run: bool = False,
    ) -> None:
        """Install a release of the chart with the given values.

        Raises:
            InstallError: If helm fails, cannot be run, or times out.
        """
        cmd = [
            self.helm_binary,
            "install",
            release_name,
            str(chart_path),
            "--values",
            "-",
        ]
        if dry_run:
            cmd.append("--dry-run")
        try:
            exit_code, output = self._run(cmd, stdin=values)
        except subprocess.TimeoutExpired as e:
            raise InstallError(release_name, f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise InstallError(release_name, str(e)) from e
        if exit_code != 0:
            raise InstallError(release_name, output or f"exit code {exit_code}")

    def uninstall(self, release_name: str, dry_run: bool = False) -> None:
        """Uninstall a release.

        Raises:
            UninstallError: If helm fails (including for an unknown release),
                cannot be run, or times out.
        """
        cmd = [self.helm_binary, "uninstall", release_name]
        if dry_run:
            cmd.append("--dry-run")
        try:
            exit_code, output = self._run(cmd)
        except subprocess.TimeoutExpired as e:
            raise UninstallError(
                release_name, f"timed out after {self.timeout}s"
            ) from e
        except OSError as e:
            raise UninstallError(release_name, str(e)) from e
        if exit_code != 0:
            raise UninstallError(release_name, output or f"exit code {exit_code}")


__all__ = [
    "HelmReleaseController",
    "InstallError",
    "ReleaseController",
    "ReleaseError",
    "UninstallError",
]
