"""Development loop: build, install, watch, rebuild, redeploy.

The LoopCoordinator drives one run:

    INIT -> INITIAL_DEPLOYING -> WATCHING -> REBUILDING -> REDEPLOYING -> WATCHING

Initial errors terminate the run. Errors after the initial deploy are logged
and the loop keeps watching; the last good release stays installed when a
rebuild fails. Events are handled one at a time in arrival order.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from chartdev.builds.service import BuildError, BuildOrchestrator
from chartdev.images.io import read_manifest_bytes, resolve_manifest
from chartdev.release.controller import (
    HelmReleaseController,
    InstallError,
    ReleaseController,
    UninstallError,
)
from chartdev.types import LoopState
from chartdev.watch.watcher import (
    ChangeEvent,
    WatchError,
    WatchSubscription,
    owning_targets,
    start_watching,
)

if TYPE_CHECKING:
    from chartdev.builds.service import BuildReport
    from chartdev.config import Settings
    from chartdev.images.schema import BuildTarget

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5

WatchFactory = Callable[[Iterable["BuildTarget"]], WatchSubscription]


class LoopError(Exception):
    """Raised when the development loop cannot start."""

    def __init__(self, message: str, code: str = "no_chart") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class RedeployOutcome:
    """Result of one uninstall-then-install cycle."""

    uninstall_error: UninstallError | None = None
    install_error: InstallError | None = None

    @property
    def ok(self) -> bool:
        return self.uninstall_error is None and self.install_error is None


def require_chart(chart_path: Path, chart_file: str = "Chart.yaml") -> None:
    """Check that a chart descriptor exists in a directory.

    Raises:
        LoopError: If the descriptor is missing.
    """
    if not (chart_path / chart_file).is_file():
        raise LoopError(f"no chart found (missing {chart_file}) in {chart_path}")


def build_chart(
    chart_path: Path,
    orchestrator: BuildOrchestrator,
    settings: Settings,
    base_dir: Path | None = None,
) -> BuildReport:
    """Build every image listed in a chart's image manifest.

    Args:
        chart_path: Chart directory.
        orchestrator: Runs the build and publish steps.
        settings: Supplies the chart and manifest file names.
        base_dir: Directory that relative source paths resolve against.

    Returns:
        BuildReport for all targets.

    Raises:
        LoopError: If the chart descriptor is missing.
        ManifestError: If the manifest cannot be resolved.
    """
    require_chart(chart_path, settings.chart_file)
    manifest_path = chart_path.resolve() / settings.manifest_file
    return orchestrator.build_manifest(
        manifest_path,
        base_dir=base_dir,
        strict=not settings.skip_invalid_entries,
    )


class LoopCoordinator:
    """Coordinates one build-install-watch run for a project directory.

    Args:
        project_dir: Directory containing the chart subdirectory. Its name
            is the release name.
        settings: Application settings.
        orchestrator: Builds targets; defaults from settings.
        releases: Installs and uninstalls the release; defaults to helm.
        watch_factory: Starts a watch subscription over targets.
    """

    def __init__(
        self,
        project_dir: Path,
        settings: Settings,
        orchestrator: BuildOrchestrator | None = None,
        releases: ReleaseController | None = None,
        watch_factory: WatchFactory = start_watching,
    ) -> None:
        self.project_dir = project_dir.resolve()
        self.settings = settings
        self.orchestrator = orchestrator or BuildOrchestrator.from_settings(settings)
        self.releases = releases or HelmReleaseController(
            settings.helm_binary, timeout=settings.release_timeout
        )
        self.watch_factory = watch_factory
        self.release_name = self.project_dir.name
        self.chart_path = self.project_dir / settings.chart_dir
        self.manifest_path = self.chart_path / settings.manifest_file
        self.state = LoopState.INIT
        self.targets: list[BuildTarget] = []
        self.values: bytes = b""
        self._cancel = threading.Event()

    def _enter(self, state: LoopState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    def prepare(self) -> list[BuildTarget]:
        """Check the chart and resolve the image manifest.

        Raises:
            LoopError: If the chart descriptor is missing.
            ManifestError: If the manifest cannot be resolved.
        """
        require_chart(self.chart_path, self.settings.chart_file)
        self.targets = resolve_manifest(
            self.manifest_path,
            base_dir=self.project_dir,
            strict=not self.settings.skip_invalid_entries,
        )
        return self.targets

    def initial_deploy(self) -> None:
        """Build every target and install the release.

        Raises:
            BuildBatchError: If any target fails to build.
            ManifestError: If the manifest cannot be read.
            InstallError: If the release cannot be installed.
        """
        self._enter(LoopState.INITIAL_DEPLOYING)
        self.orchestrator.build_all(self.targets).raise_for_errors()

        self.values = read_manifest_bytes(self.manifest_path)
        logger.info("installing %s", self.release_name)
        self.releases.install(
            self.values,
            self.chart_path,
            self.release_name,
            dry_run=self.settings.dry_run,
        )
        logger.info("%s installed", self.release_name)

    def rebuild(self, targets: Iterable[BuildTarget]) -> bool:
        """Build the given targets one after another.

        Returns:
            True if every target built; False after the first failure.
        """
        self._enter(LoopState.REBUILDING)
        for target in targets:
            try:
                self.orchestrator.build(target)
            except BuildError as e:
                logger.error("Rebuild failed, keeping current release: %s", e)
                return False
        return True

    def redeploy(self) -> RedeployOutcome:
        """Uninstall the release, then install it again.

        Install is attempted even if uninstall fails. Failures are logged
        and returned.
        """
        self._enter(LoopState.REDEPLOYING)
        outcome = RedeployOutcome()
        dry_run = self.settings.dry_run

        logger.info("uninstalling %s", self.release_name)
        try:
            self.releases.uninstall(self.release_name, dry_run=dry_run)
        except UninstallError as e:
            logger.error("%s", e)
            outcome.uninstall_error = e

        logger.info("installing %s", self.release_name)
        try:
            self.releases.install(
                self.values, self.chart_path, self.release_name, dry_run=dry_run
            )
        except InstallError as e:
            logger.error("%s", e)
            outcome.install_error = e
        else:
            logger.info("%s installed", self.release_name)
        return outcome

    def handle_changes(self, events: list[ChangeEvent]) -> RedeployOutcome | None:
        """Rebuild the owners of changed paths and redeploy.

        Returns:
            The redeploy outcome, or None if nothing was redeployed.
        """
        owners: dict[str, BuildTarget] = {}
        for event in events:
            if not event.qualifying:
                continue
            for target in owning_targets(event, self.targets):
                owners.setdefault(target.name, target)

        if not owners:
            logger.debug("No target owns %s", [e.path for e in events])
            return None

        try:
            if not self.rebuild(owners.values()):
                return None
            return self.redeploy()
        finally:
            self._enter(LoopState.WATCHING)

    def _collect(
        self, subscription: WatchSubscription, first: ChangeEvent
    ) -> list[ChangeEvent]:
        events = [first]
        window = self.settings.debounce_seconds
        if window <= 0:
            return events
        deadline = time.monotonic() + window
        while (remaining := deadline - time.monotonic()) > 0:
            item = subscription.get(timeout=remaining)
            if isinstance(item, ChangeEvent):
                if item.qualifying:
                    events.append(item)
            elif isinstance(item, WatchError):
                logger.error("fsnotify error: %s", item)
        logger.debug("Coalesced %d change event(s)", len(events))
        return events

    def watch(self) -> None:
        """Watch target sources until cancelled."""
        self._enter(LoopState.WATCHING)
        with self.watch_factory(self.targets) as subscription:
            while not self._cancel.is_set():
                item = subscription.get(timeout=POLL_INTERVAL)
                if item is None:
                    continue
                if isinstance(item, WatchError):
                    logger.error("fsnotify error: %s", item)
                    continue
                if not item.qualifying:
                    continue
                logger.info("change detected: %s %s", item.kind.value, item.path)
                self.handle_changes(self._collect(subscription, item))
        logger.info("Stopped watching")

    def run(self, cancel: threading.Event | None = None) -> None:
        """Run the loop until stopped.

        Args:
            cancel: Event that ends the watch phase when set; stop() sets
                the coordinator's own event when none is given.

        Raises:
            LoopError, ManifestError, BuildBatchError, InstallError, WatchError:
                If the run cannot get to the watching state.
        """
        if cancel is not None:
            self._cancel = cancel
        try:
            self.prepare()
            self.initial_deploy()
            self.watch()
        except Exception:
            self._enter(LoopState.TERMINATED)
            raise

    def stop(self) -> None:
        """Ask a running loop to stop watching."""
        self._cancel.set()


__all__ = [
    "LoopCoordinator",
    "LoopError",
    "RedeployOutcome",
    "build_chart",
    "require_chart",
]
