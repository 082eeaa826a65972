"""Filesystem watching module."""

from chartdev.watch.watcher import (
    ChangeEvent,
    WatchError,
    WatchSubscription,
    owning_targets,
    start_watching,
)

__all__ = [
    "ChangeEvent",
    "WatchError",
    "WatchSubscription",
    "owning_targets",
    "start_watching",
]
