"""Release management module."""

from chartdev.release.controller import (
    HelmReleaseController,
    InstallError,
    ReleaseController,
    ReleaseError,
    UninstallError,
)

__all__ = [
    "HelmReleaseController",
    "InstallError",
    "ReleaseController",
    "ReleaseError",
    "UninstallError",
]
