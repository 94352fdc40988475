"""Configuration settings for ghostpass."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def default_workspace() -> Path:
    """Default workspace directory holding all store files."""
    return Path.home() / ".ghostpass"


@dataclass
class Settings:
    """Main settings container."""

    # Paths
    workspace_dir: Path = field(default_factory=default_workspace)
    export_template: str = "plainsight_{name}.out"

    # Output
    quiet: bool = False

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        settings = cls()

        if workspace := os.getenv("GHOSTPASS_WORKSPACE"):
            settings.workspace_dir = Path(workspace).expanduser()

        if log_level := os.getenv("GHOSTPASS_LOG_LEVEL"):
            settings.log_level = log_level

        if log_file := os.getenv("GHOSTPASS_LOG_FILE"):
            settings.log_file = Path(log_file).expanduser()

        if os.getenv("GHOSTPASS_QUIET", "").lower() == "true":
            settings.quiet = True

        return settings

    def export_path(self, name: str) -> Path:
        """Default plainsight output path for a store, in the current directory."""
        return Path.cwd() / self.export_template.format(name=name)


def make_workspace(workspace: Optional[Path] = None) -> Path:
    """
    Create the workspace directory if it does not exist.

    Args:
        workspace: Directory to create (default: configured workspace)

    Returns:
        Path to the workspace
    """
    workspace = Path(workspace or get_settings().workspace_dir)
    workspace.mkdir(mode=0o700, parents=True, exist_ok=True)
    return workspace


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Settings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings
