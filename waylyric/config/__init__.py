"""
Configuration package for waylyric

Exposes the settings singleton accessors and the dataclass sections that
make up the configuration file.
"""

from .settings import (
    Settings,
    PlayerConfig,
    LyricsConfig,
    NavidromeConfig,
    LoggingConfig,
    NetworkConfig,
    KNOWN_PROVIDERS,
    get_settings,
    reload_settings,
)

__all__ = [
    'Settings',
    'PlayerConfig',
    'LyricsConfig',
    'NavidromeConfig',
    'LoggingConfig',
    'NetworkConfig',
    'KNOWN_PROVIDERS',
    'get_settings',
    'reload_settings',
]
