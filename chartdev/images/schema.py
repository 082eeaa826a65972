"""Models for image manifest entries.

An image manifest maps a target name to a record with at least a publish
reference and a build context path:

    app:
      reference: registry.example.com/app:dev
      sourcePath: ./app

The upstream key spellings ``Image`` and ``Path`` are accepted as aliases.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr


class ImageEntrySchema(BaseModel):
    """Schema for one manifest entry.

    Attributes:
        reference: Publish destination (registry-qualified tag).
        source_path: Build context path as written in the manifest.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    reference: StrictStr = Field(
        min_length=1,
        validation_alias=AliasChoices("reference", "Image"),
        description="Publish destination for the built image",
    )
    source_path: StrictStr = Field(
        min_length=1,
        validation_alias=AliasChoices("sourcePath", "Path"),
        description="Build context directory",
    )

    def unknown_fields(self) -> list[str]:
        """Return the names of fields that are not part of the schema."""
        return sorted(self.model_extra or {})


@dataclass(frozen=True)
class BuildTarget:
    """One image to be produced.

    Attributes:
        name: Manifest key, also used as the log-line prefix.
        reference: Publish destination for the image.
        source_path: Build context as given in the manifest.
        abs_source_path: Canonical absolute build context, computed once.
    """

    name: str
    reference: str
    source_path: str
    abs_source_path: Path

    def owns(self, path: str | Path) -> bool:
        """Check whether a path lies at or beneath this target's source tree."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        # Lexical normalization first; resolve() is not reliable for deleted files
        candidate = Path(os.path.normpath(candidate))
        if candidate == self.abs_source_path or candidate.is_relative_to(
            self.abs_source_path
        ):
            return True
        try:
            resolved = candidate.resolve()
        except OSError:
            return False
        return resolved == self.abs_source_path or resolved.is_relative_to(
            self.abs_source_path
        )


class ManifestEntryError(Exception):
    """Raised for a manifest entry with a missing or mistyped field."""

    def __init__(self, name: str, message: str, code: str = "invalid_entry") -> None:
        super().__init__(f"manifest entry {name!r}: {message}")
        self.name = name
        self.code = code


@dataclass
class EntryResult:
    """Outcome of parsing one mapping-valued manifest entry.

    Exactly one of ``target`` and ``error`` is set.
    """

    name: str
    target: BuildTarget | None = None
    error: ManifestEntryError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "BuildTarget",
    "EntryResult",
    "ImageEntrySchema",
    "ManifestEntryError",
]
