"""
Configuration package for the KeyTao dictionary platform.
"""

from .settings import (
    Settings,
    Environment,
    LogLevel,
    DatabaseSettings,
    SecuritySettings,
    GithubSettings,
    SyncSettings,
    ImportSettings,
    settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "Environment",
    "LogLevel",
    "DatabaseSettings",
    "SecuritySettings",
    "GithubSettings",
    "SyncSettings",
    "ImportSettings",
    "settings",
    "get_settings",
    "reload_settings",
]
