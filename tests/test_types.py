"""Tests for shared types."""

from chartdev.types import BuildStep, ChangeKind, LoopState
from chartdev.watch.watcher import ChangeEvent


class TestChangeKind:
    """Tests for ChangeKind."""

    def test_string_values(self) -> None:
        assert ChangeKind.METADATA == "metadata"
        assert ChangeKind("created") is ChangeKind.CREATED

    def test_only_metadata_is_non_qualifying(self) -> None:
        """Every kind except metadata should qualify for a rebuild."""
        for kind in ChangeKind:
            event = ChangeEvent("/x", kind)
            assert event.qualifying is (kind is not ChangeKind.METADATA)


class TestLoopState:
    """Tests for LoopState."""

    def test_values(self) -> None:
        assert [s.value for s in LoopState] == [
            "init",
            "initial_deploying",
            "watching",
            "rebuilding",
            "redeploying",
            "terminated",
        ]


class TestBuildStep:
    """Tests for BuildStep."""

    def test_values(self) -> None:
        assert BuildStep.BUILD.value == "build"
        assert BuildStep.PUBLISH.value == "publish"
