"""Shared type definitions for chartdev.

This module contains enums shared across subpackages to
avoid circular imports.
"""

from enum import Enum


class ChangeKind(str, Enum):
    """Kind of a filesystem change notification."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"
    METADATA = "metadata"


class LoopState(str, Enum):
    """State of the development loop."""

    INIT = "init"
    INITIAL_DEPLOYING = "initial_deploying"
    WATCHING = "watching"
    REBUILDING = "rebuilding"
    REDEPLOYING = "redeploying"
    TERMINATED = "terminated"


class BuildStep(str, Enum):
    """Step of a single target build."""

    BUILD = "build"
    PUBLISH = "publish"


__all__ = [
    "BuildStep",
    "ChangeKind",
    "LoopState",
]
