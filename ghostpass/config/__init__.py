"""Configuration module for ghostpass."""

from .settings import Settings, configure, default_workspace, get_settings, make_workspace

__all__ = [
    "Settings",
    "configure",
    "default_workspace",
    "get_settings",
    "make_workspace",
]
