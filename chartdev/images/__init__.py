"""Image manifest module.

This module handles:
- Reading and parsing the image manifest
- Validating entries into build targets
"""

from chartdev.images.io import ManifestError, resolve_manifest
from chartdev.images.schema import BuildTarget, EntryResult, ManifestEntryError

__all__ = [
    "BuildTarget",
    "EntryResult",
    "ManifestEntryError",
    "ManifestError",
    "resolve_manifest",
]
