"""Build orchestration module.

This module handles:
- Running the external build and publish commands
- Streaming prefixed tool output
- Collecting per-target build results
"""

from chartdev.builds.service import (
    BuildBatchError,
    BuildError,
    BuildOrchestrator,
    BuildReport,
)

__all__ = ["BuildBatchError", "BuildError", "BuildOrchestrator", "BuildReport"]
