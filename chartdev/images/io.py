"""Image manifest resolution.

This module turns an image manifest file into build targets:
- Reading the manifest bytes (also used as the release configuration)
- Parsing YAML into a top-level mapping
- Validating each mapping-valued entry into a BuildTarget
- Skipping non-mapping entries with a diagnostic

Entries are parsed into per-entry results so callers decide whether one bad
entry is fatal. ``resolve_manifest`` is fatal by default.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from chartdev.images.schema import (
    BuildTarget,
    EntryResult,
    ImageEntrySchema,
    ManifestEntryError,
)

logger = logging.getLogger(__name__)

MANIFEST_NOT_FOUND = "manifest_not_found"
MANIFEST_MALFORMED = "manifest_malformed"


class ManifestError(Exception):
    """Raised when a manifest cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        code: str = MANIFEST_MALFORMED,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.code = code


def read_manifest_bytes(path: Path) -> bytes:
    """Read the raw manifest content.

    Args:
        path: Path to the manifest file.

    Returns:
        File content as bytes.

    Raises:
        ManifestError: If the file cannot be read.
    """
    try:
        return path.read_bytes()
    except OSError as e:
        logger.error("Failed to read manifest %s: %s", path, e)
        raise ManifestError(
            f"failed to read manifest {path}: {e}",
            path=path,
            code=MANIFEST_NOT_FOUND,
        ) from e


def parse_manifest_bytes(raw: bytes, path: Path | None = None) -> dict[str, Any]:
    """Parse manifest content into a top-level mapping.

    An empty document parses to an empty mapping.

    Raises:
        ManifestError: If the content is not YAML or not a mapping, or if two
            keys name the same target once converted to strings.
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        logger.error("YAML parse failed for manifest %s: %s", path, e)
        raise ManifestError(
            f"manifest is not valid YAML: {e}", path=path, code=MANIFEST_MALFORMED
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestError(
            f"Expected a YAML mapping, got {type(data).__name__}",
            path=path,
            code=MANIFEST_MALFORMED,
        )
    entries: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key)
        if name in entries:
            raise ManifestError(
                f"duplicate target name {name!r}", path=path, code=MANIFEST_MALFORMED
            )
        entries[name] = value
    return entries


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item["loc"]) or "<entry>"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)


def parse_manifest_entries(
    data: dict[str, Any],
    base_dir: Path | None = None,
) -> list[EntryResult]:
    """Parse every mapping-valued entry of a manifest.

    Non-mapping entries are skipped with a warning and produce no result.

    Args:
        data: Top-level manifest mapping.
        base_dir: Directory that relative source paths resolve against
            (defaults to the current working directory).

    Returns:
        One EntryResult per mapping-valued entry.
    """
    root = base_dir if base_dir is not None else Path.cwd()
    results: list[EntryResult] = []

    for name, value in data.items():
        if not isinstance(value, dict):
            logger.warning(
                "Skipping manifest key %r with unhandled type: %s",
                name,
                type(value).__name__,
            )
            continue

        try:
            entry = ImageEntrySchema.model_validate(value)
        except ValidationError as e:
            results.append(
                EntryResult(
                    name=name,
                    error=ManifestEntryError(name, _describe_validation_error(e)),
                )
            )
            continue

        unknown = entry.unknown_fields()
        if unknown:
            logger.warning(
                "Ignoring unknown field(s) for %r: %s", name, ", ".join(unknown)
            )

        abs_path = (root / entry.source_path).resolve()
        results.append(
            EntryResult(
                name=name,
                target=BuildTarget(
                    name=name,
                    reference=entry.reference,
                    source_path=entry.source_path,
                    abs_source_path=abs_path,
                ),
            )
        )

    return results


def resolve_manifest(
    path: Path,
    base_dir: Path | None = None,
    strict: bool = True,
) -> list[BuildTarget]:
    """Resolve a manifest file into build targets.

    Args:
        path: Path to the manifest file.
        base_dir: Directory that relative source paths resolve against.
        strict: If True, an entry with a missing or mistyped field fails the
            whole resolution. If False, such entries are skipped and logged.

    Returns:
        Build targets, one per valid mapping-valued entry. Order is not
        significant.

    Raises:
        ManifestError: If the manifest cannot be read or parsed, or (in strict
            mode) if any entry is invalid.
    """
    raw = read_manifest_bytes(path)
    data = parse_manifest_bytes(raw, path=path)

    targets: list[BuildTarget] = []
    for result in parse_manifest_entries(data, base_dir=base_dir):
        if result.error is not None:
            if strict:
                raise ManifestError(
                    str(result.error), path=path, code=MANIFEST_MALFORMED
                ) from result.error
            logger.warning("Skipping invalid %s", result.error)
        elif result.target is not None:
            targets.append(result.target)

    logger.debug("Resolved %d target(s) from %s", len(targets), path)
    return targets


__all__ = [
    "MANIFEST_MALFORMED",
    "MANIFEST_NOT_FOUND",
    "ManifestError",
    "parse_manifest_bytes",
    "parse_manifest_entries",
    "read_manifest_bytes",
    "resolve_manifest",
]
