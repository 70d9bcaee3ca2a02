"""Configuration models using Pydantic for validation."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DirectoryPolicy(str, Enum):
    """How directories arriving in the watch root are relocated."""

    KEEP_TOGETHER = "keep_together"
    FLATTEN = "flatten"


class CollisionPolicy(str, Enum):
    """What happens when the destination name is already taken."""

    REJECT = "reject"
    SUFFIX = "suffix"


class ProcessingSettings(BaseModel):
    """Settings for event processing behavior."""

    debounce_seconds: float = Field(
        default=1.0, ge=0.0, description="Quiet period after the last event for a path before processing"
    )
    max_workers: int = Field(default=4, ge=1, le=64, description="Concurrent relocation workers")
    retry_backoff_seconds: float = Field(
        default=0.5, ge=0.0, le=10.0, description="Wait before the single retry of a busy file"
    )
    shutdown_grace_seconds: float = Field(
        default=5.0, ge=0.0, description="Time in-flight relocations get to finish on shutdown"
    )
    max_archive_bytes: int = Field(
        default=4 * 1024 * 1024 * 1024,
        ge=1,
        description="Maximum total uncompressed size of an archive to extract",
    )
    max_archive_members: int = Field(
        default=10_000, ge=1, description="Maximum number of entries in an archive to extract"
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")
    max_bytes: int = Field(
        default=10 * 1024 * 1024, ge=1024, description="Max log file size before rotation (bytes)"
    )
    backup_count: int = Field(default=5, ge=1, description="Number of rotated log files to keep")
    console_enabled: bool = Field(default=True, description="Enable console logging")
    file_enabled: bool = Field(default=True, description="Enable file logging")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class DownloadSorterConfig(BaseModel):
    """Main configuration for DownloadSorter."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    watch_root: Path = Field(
        default_factory=lambda: Path.home() / "Downloads",
        description="Folder to monitor and sort",
    )

    directory_policy: DirectoryPolicy = Field(
        default=DirectoryPolicy.KEEP_TOGETHER,
        description="Move directories whole, or flatten their files into categories",
    )

    collision_policy: CollisionPolicy = Field(
        default=CollisionPolicy.REJECT,
        description="Leave the entry in place on a name clash, or add a ' (n)' suffix",
    )

    processing: ProcessingSettings = Field(
        default_factory=ProcessingSettings, description="Event processing settings"
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings, description="Logging settings"
    )

    @field_validator("watch_root")
    @classmethod
    def expand_watch_root(cls, v: Path) -> Path:
        """Expand a leading ~ so YAML files can use home-relative paths."""
        return Path(v).expanduser()
