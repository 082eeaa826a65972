"""Filesystem change watching for build targets.

This module handles:
- Subscribing each target's source tree with one recursive watch
- Classifying watchdog events into change kinds
- Filtering metadata-only changes (permissions, access) from content changes
- Attributing a changed path to the targets that own it

Only directories that exist when the subscription starts are registered;
changes inside directories created later are not reported.
"""

from __future__ import annotations

import logging
import os
import queue
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CLOSED_NO_WRITE,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    EVENT_TYPE_OPENED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from chartdev.types import ChangeKind

if TYPE_CHECKING:
    from chartdev.images.schema import BuildTarget

logger = logging.getLogger(__name__)

WATCH_INIT = "watch_init"
WATCH_SUBSCRIBE = "watch_subscribe"

_EVENT_KINDS = {
    EVENT_TYPE_CREATED: ChangeKind.CREATED,
    EVENT_TYPE_DELETED: ChangeKind.DELETED,
    EVENT_TYPE_MOVED: ChangeKind.MOVED,
    EVENT_TYPE_MODIFIED: ChangeKind.MODIFIED,
    # Access notifications; a write already reports its own modified event
    EVENT_TYPE_OPENED: ChangeKind.METADATA,
    EVENT_TYPE_CLOSED: ChangeKind.METADATA,
    EVENT_TYPE_CLOSED_NO_WRITE: ChangeKind.METADATA,
}


class WatchError(Exception):
    """Raised or reported when watching fails."""

    def __init__(self, message: str, code: str = WATCH_SUBSCRIBE) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ChangeEvent:
    """A classified filesystem change.

    Attributes:
        path: Path that changed.
        kind: Classified change kind.
        is_directory: Whether the path is a directory.
        dest_path: Destination of a move, if any.
    """

    path: str
    kind: ChangeKind
    is_directory: bool = False
    dest_path: str | None = None

    @property
    def qualifying(self) -> bool:
        """Whether this change should trigger a rebuild."""
        return self.kind is not ChangeKind.METADATA

    def paths(self) -> list[str]:
        return [self.path, self.dest_path] if self.dest_path else [self.path]


def _stat_signature(path: str) -> tuple[int, int] | None:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


class ChangeEventHandler(FileSystemEventHandler):
    """Classifies watchdog events and puts them on a queue.

    Watchdog reports attribute changes (chmod, chown, touch -a) as modified
    events. The handler keeps the last seen mtime and size of every known
    path and reports a modified event whose signature did not change as a
    metadata-only change.

    Events are dropped unless the path is a registered directory or lies
    directly inside one.
    """

    def __init__(self, sink: queue.Queue[ChangeEvent | WatchError]) -> None:
        super().__init__()
        self.sink = sink
        self.directories: set[Path] = set()
        self._signatures: dict[str, tuple[int, int]] = {}

    def register_tree(self, root: Path) -> None:
        """Register every directory beneath root and remember its files."""
        for dirpath, _dirnames, filenames in os.walk(root):
            self.directories.add(Path(dirpath))
            self.remember(dirpath)
            for filename in filenames:
                self.remember(os.path.join(dirpath, filename))

    def registered(self, path: str) -> bool:
        candidate = Path(path)
        return candidate in self.directories or candidate.parent in self.directories

    def remember(self, path: str) -> None:
        """Record the current signature of a path."""
        signature = _stat_signature(path)
        if signature is not None:
            self._signatures[path] = signature

    def classify(self, event: FileSystemEvent) -> ChangeKind:
        src = os.fsdecode(event.src_path)
        kind = _EVENT_KINDS.get(event.event_type, ChangeKind.MODIFIED)

        if kind is ChangeKind.MODIFIED:
            signature = _stat_signature(src)
            previous = self._signatures.get(src)
            if signature is not None:
                self._signatures[src] = signature
                if previous == signature:
                    return ChangeKind.METADATA
        elif kind is ChangeKind.CREATED:
            self.remember(src)
        elif kind is ChangeKind.DELETED:
            self._signatures.pop(src, None)
        elif kind is ChangeKind.MOVED:
            self._signatures.pop(src, None)
            self.remember(os.fsdecode(event.dest_path))
        return kind

    def on_any_event(self, event: FileSystemEvent) -> None:
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(event.dest_path) if event.dest_path else None
        if not self.registered(src) and not (dest and self.registered(dest)):
            logger.debug("Ignoring change outside registered directories: %s", src)
            return
        self.sink.put(
            ChangeEvent(
                path=src,
                kind=self.classify(event),
                is_directory=event.is_directory,
                dest_path=dest,
            )
        )


class WatchSubscription:
    """A live change subscription over a set of directories.

    Use as a context manager; leaving the block stops and joins the observer.
    """

    def __init__(
        self,
        observer: Any,
        handler: ChangeEventHandler,
        events: queue.Queue[ChangeEvent | WatchError],
    ) -> None:
        self.observer = observer
        self.handler = handler
        self.events = events
        self._closed = False
        self._failure_reported = False

    @property
    def directories(self) -> set[Path]:
        """Directories whose changes are reported."""
        return self.handler.directories

    def get(self, timeout: float | None = None) -> ChangeEvent | WatchError | None:
        """Wait for the next event or watch error.

        Returns:
            The next item, or None if nothing arrived within ``timeout``.
        """
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            pass
        if self._closed or self._failure_reported:
            return None
        if not self.observer.is_alive():
            self._failure_reported = True
            return WatchError(
                "file watcher stopped unexpectedly", code=WATCH_SUBSCRIBE
            )
        return None

    def close(self) -> None:
        """Stop the observer and wait for its threads to finish."""
        if self._closed:
            return
        self._closed = True
        self.observer.stop()
        if self.observer.is_alive():
            self.observer.join()
        logger.debug("Stopped watching %d directories", len(self.directories))

    def __enter__(self) -> WatchSubscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _watch_roots(targets: Iterable[BuildTarget]) -> list[tuple[str, Path]]:
    """Return (target name, root) pairs, leaving out roots nested in another."""
    roots: list[tuple[str, Path]] = []
    for target in sorted(targets, key=lambda t: len(t.abs_source_path.parts)):
        root = target.abs_source_path
        if not root.is_dir():
            logger.warning(
                "Source path for %s is not a directory: %s", target.name, root
            )
            continue
        if any(root == r or root.is_relative_to(r) for _, r in roots):
            continue
        roots.append((target.name, root))
    return roots


def start_watching(
    targets: Iterable[BuildTarget],
    observer_factory: Callable[[], Any] = Observer,
) -> WatchSubscription:
    """Watch every directory beneath each target's source tree.

    Each source root is scheduled once with a recursive watch. Registration
    is best-effort: a root that cannot be watched is logged and skipped.

    Args:
        targets: Targets whose source trees are watched.
        observer_factory: Creates the watchdog observer.

    Returns:
        Live WatchSubscription.

    Raises:
        WatchError: If the observer cannot be started.
    """
    events: queue.Queue[ChangeEvent | WatchError] = queue.Queue()
    handler = ChangeEventHandler(events)

    try:
        observer = observer_factory()
        observer.start()
    except (OSError, RuntimeError) as e:
        raise WatchError(f"failed to start file watcher: {e}", code=WATCH_INIT) from e

    subscription = WatchSubscription(observer, handler, events)

    for name, root in _watch_roots(targets):
        # Register before scheduling so early events are not dropped
        handler.register_tree(root)
        try:
            observer.schedule(handler, str(root), recursive=True)
        except OSError as e:
            logger.warning("Failed to watch %s for %s: %s", root, name, e)
            handler.directories.difference_update(
                [d for d in handler.directories if d.is_relative_to(root)]
            )

    logger.info("Watching %d directories", len(subscription.directories))
    return subscription


def owning_targets(
    event: ChangeEvent, targets: Iterable[BuildTarget]
) -> list[BuildTarget]:
    """Return the targets whose source tree contains the changed path."""
    paths = event.paths()
    return [t for t in targets if any(t.owns(p) for p in paths)]


__all__ = [
    "WATCH_INIT",
    "WATCH_SUBSCRIBE",
    "ChangeEvent",
    "ChangeEventHandler",
    "WatchError",
    "WatchSubscription",
    "owning_targets",
    "start_watching",
]
