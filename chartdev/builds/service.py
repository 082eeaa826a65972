"""Build service module.

This module provides the build API used by the CLI and the development loop:
- BuildOrchestrator.build(): build then publish one target
- BuildOrchestrator.build_all(): build every target, collecting failures
- BuildOrchestrator.build_manifest(): resolve a manifest and build it

A failing target never stops the remaining targets; all failures are
collected into a BuildReport.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from chartdev.builds.runner import (
    CommandExecutionError,
    LineSink,
    compose_build_command,
    compose_publish_command,
    run_streamed,
)
from chartdev.images.io import resolve_manifest
from chartdev.types import BuildStep

if TYPE_CHECKING:
    from chartdev.config import Settings
    from chartdev.images.schema import BuildTarget

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Raised when the build or publish step of a target fails."""

    def __init__(
        self,
        target: str,
        step: BuildStep,
        message: str,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(f"{target}: {step.value} failed: {message}")
        self.target = target
        self.step = step
        self.exit_code = exit_code
        self.code = f"{step.value}_failed"


class BuildBatchError(Exception):
    """Raised when one or more targets of a batch failed to build."""

    def __init__(self, errors: list[BuildError], code: str = "build_failed") -> None:
        names = ", ".join(e.target for e in errors)
        super().__init__(f"{len(errors)} target(s) failed: {names}")
        self.errors = errors
        self.code = code


@dataclass
class BuildReport:
    """Result of building a set of targets.

    Attributes:
        succeeded: Names of targets that were built and published.
        errors: Per-target failures.
    """

    succeeded: list[str] = field(default_factory=list)
    errors: list[BuildError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise BuildBatchError if any target failed."""
        if self.errors:
            raise BuildBatchError(self.errors)


class BuildOrchestrator:
    """Runs the build and publish steps for build targets.

    Args:
        tool: Container tool executable.
        sink: Receives every output line with its target name.
        timeout: Per-invocation timeout in seconds (None = no timeout).
        max_workers: Targets built concurrently by ``build_all``.
    """

    def __init__(
        self,
        tool: str = "docker",
        sink: LineSink | None = None,
        timeout: float | None = None,
        max_workers: int = 1,
    ) -> None:
        self.tool = tool
        self.sink = sink
        self.timeout = timeout
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_settings(
        cls, settings: Settings, sink: LineSink | None = None
    ) -> BuildOrchestrator:
        return cls(
            tool=settings.container_tool,
            sink=sink,
            timeout=settings.build_timeout,
            max_workers=settings.max_concurrent_builds,
        )

    def _run_step(self, target: BuildTarget, step: BuildStep, cmd: list[str]) -> None:
        try:
            exit_code = run_streamed(
                cmd,
                prefix=target.name,
                cwd=target.abs_source_path,
                sink=self.sink,
                timeout=self.timeout,
            )
        except CommandExecutionError as e:
            raise BuildError(target.name, step, str(e), exit_code=e.exit_code) from e
        if exit_code != 0:
            raise BuildError(
                target.name,
                step,
                f"exit code {exit_code}",
                exit_code=exit_code,
            )

    def build(self, target: BuildTarget) -> None:
        """Build and publish one target.

        Publish is skipped when the build step fails.

        Raises:
            BuildError: If either step fails.
        """
        logger.info("Building %s (%s)", target.name, target.reference)
        self._run_step(
            target, BuildStep.BUILD, compose_build_command(self.tool, target)
        )
        logger.info("Publishing %s", target.reference)
        self._run_step(
            target, BuildStep.PUBLISH, compose_publish_command(self.tool, target)
        )
        logger.info("%s built and published", target.name)

    def _build_one(self, target: BuildTarget) -> BuildError | None:
        try:
            self.build(target)
        except BuildError as e:
            logger.error("%s", e)
            return e
        return None

    def build_all(self, targets: list[BuildTarget]) -> BuildReport:
        """Build every target, collecting per-target failures.

        Args:
            targets: Targets to build.

        Returns:
            BuildReport with succeeded names and errors.
        """
        report = BuildReport()
        if self.max_workers > 1 and len(targets) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(self._build_one, targets))
        else:
            outcomes = [self._build_one(target) for target in targets]

        for target, error in zip(targets, outcomes):
            if error is None:
                report.succeeded.append(target.name)
            else:
                report.errors.append(error)
        return report

    def build_manifest(
        self,
        manifest_path: Path,
        base_dir: Path | None = None,
        strict: bool = True,
    ) -> BuildReport:
        """Resolve a manifest and build every target in it.

        Raises:
            ManifestError: If the manifest cannot be resolved.
        """
        targets = resolve_manifest(manifest_path, base_dir=base_dir, strict=strict)
        return self.build_all(targets)


__all__ = [
    "BuildBatchError",
    "BuildError",
    "BuildOrchestrator",
    "BuildReport",
]
