"""Configuration settings for chartdev.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the CHARTDEV_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHARTDEV_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Layout
    chart_dir: str = Field(
        default="helm",
        description="Chart subdirectory used by `up`, relative to the project",
    )
    chart_file: str = Field(
        default="Chart.yaml",
        description="Chart descriptor filename",
    )
    manifest_file: str = Field(
        default="images.yaml",
        description="Image manifest filename inside the chart directory",
    )

    # External tools
    container_tool: str = Field(
        default="docker",
        description="Executable used for image build and push",
    )
    helm_binary: str = Field(
        default="helm",
        description="Executable used for release install and uninstall",
    )

    # Operational modes
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        description="Pass dry-run to release install/uninstall",
    )
    skip_invalid_entries: bool = Field(
        default=False,
        description="Skip manifest entries with missing fields instead of failing",
    )

    # Concurrency
    max_concurrent_builds: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Maximum concurrent target builds",
    )

    # Watching
    debounce_seconds: float = Field(
        default=0.0,
        ge=0.0,
        le=60.0,
        description="Coalescing window for change events (0 disables)",
    )

    # Timeouts (in seconds, None = no timeout)
    build_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for each build or publish invocation",
    )
    release_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for each install or uninstall invocation",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
