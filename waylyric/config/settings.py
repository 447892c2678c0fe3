"""
Configuration management for waylyric

This module handles loading, validation, and management of application settings
from YAML files and environment variables. Command line options are applied on
top of the loaded values by the CLI.

The configuration is organized into logical sections using dataclasses:
- Player settings (allow-list, position refresh interval, hidden metadata keys)
- Lyrics settings (external providers and their matching thresholds)
- Navidrome credentials for the Subsonic lyrics provider
- Logging and network preferences

Credentials (the Navidrome password in particular) can be loaded from
environment variables or a .env file so they never have to live in YAML.
"""

import os
import sys
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


KNOWN_PROVIDERS = ("navidrome", "netease", "lrclib")


@dataclass
class PlayerConfig:
    """
    MPRIS player selection and polling settings

    allowed_players restricts which players are tracked. Entries are matched
    case-insensitively against the short name (``vlc``) or the full bus name
    (``org.mpris.MediaPlayer2.vlc``); the single entry ``all`` disables
    filtering. refresh_interval is the longest time, in seconds, a player's
    position may go without being polled.
    """
    allowed_players: List[str] = field(default_factory=lambda: ["all"])
    refresh_interval: float = 60.0
    skip_metadata: List[str] = field(default_factory=lambda: ["xesam:asText"])
    loop_check_interval: float = 3.0


@dataclass
class LyricsConfig:
    """
    Lyrics resolution configuration

    Local sources (inline metadata, sidecar .lrc, embedded tags) are always
    tried first. external_providers lists the web providers consulted
    afterwards, in order.
    """
    external_providers: List[str] = field(default_factory=list)
    request_timeout: float = 10.0
    similarity_threshold: float = 0.5


@dataclass
class NavidromeConfig:
    """Subsonic API credentials for the Navidrome lyrics provider"""
    server_url: str = ""
    username: str = ""
    password: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.server_url and self.username and self.password)


@dataclass
class LoggingConfig:
    """
    Logging configuration

    Console logging goes to stderr, stdout carries the Waybar protocol.
    file is optional; relative paths are placed in the config directory.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class NetworkConfig:
    """HTTP settings shared by the web lyrics providers"""
    user_agent: str = "waylyric/1.0 (+https://github.com/waylyric/waylyric)"
    timeout: float = 10.0


class Settings:
    """
    Main settings manager for waylyric

    Values are resolved in this order, later sources overriding earlier ones:
    dataclass defaults, the first config file found, environment variables.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings with optional custom config path

        Args:
            config_path: Optional path to custom configuration file
        """
        self.config_path = config_path
        self.loaded_from: Optional[Path] = None

        self.player = PlayerConfig()
        self.lyrics = LyricsConfig()
        self.navidrome = NavidromeConfig()
        self.logging = LoggingConfig()
        self.network = NetworkConfig()

        self._load_config()
        self._load_environment_variables()

    def _get_config_paths(self) -> List[Path]:
        """Config file candidates in priority order"""
        paths = []
        if self.config_path:
            paths.append(Path(self.config_path).expanduser())
        paths.extend([
            self.get_config_directory() / "config.yaml",
            Path("config") / "config.yaml",
            Path("config.yaml"),
        ])
        return paths

    def _load_config(self) -> None:
        """
        Load configuration from the first YAML file that exists

        A file that exists but cannot be parsed is reported and skipped so
        the next candidate (or the defaults) can be used.
        """
        config_data: Dict[str, Any] = {}

        for path in self._get_config_paths():
            if path.exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    self.loaded_from = path
                    break
                except Exception as e:
                    print(f"Warning: Failed to load config from {path}: {e}", file=sys.stderr)

        self._apply_config(config_data)

    def _sections(self) -> Dict[str, Any]:
        return {
            'player': self.player,
            'lyrics': self.lyrics,
            'navidrome': self.navidrome,
            'logging': self.logging,
            'network': self.network,
        }

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only attributes that exist on the dataclass are updated; unknown
        sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """Load credentials and logging overrides from environment variables"""
        env_mappings = {
            'NAVIDROME_SERVER_URL': lambda v: setattr(self.navidrome, 'server_url', v),
            'NAVIDROME_USERNAME': lambda v: setattr(self.navidrome, 'username', v),
            'NAVIDROME_PASSWORD': lambda v: setattr(self.navidrome, 'password', v),
            'WAYLYRIC_LOG_LEVEL': lambda v: setattr(self.logging, 'level', v),
            'WAYLYRIC_LOG_FILE': lambda v: setattr(self.logging, 'file', v),
            'WAYLYRIC_PLAYERS': lambda v: setattr(
                self.player, 'allowed_players', [p.strip() for p in v.split(',') if p.strip()]
            ),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                setter(value)

    def get_config_directory(self) -> Path:
        """
        Get the configuration directory

        Honors XDG_CONFIG_HOME, falling back to ~/.config.

        Returns:
            Path object for the waylyric configuration directory
        """
        base = os.getenv('XDG_CONFIG_HOME') or "~/.config"
        return Path(base).expanduser() / "waylyric"

    def get_log_file_path(self) -> Optional[Path]:
        """Resolve logging.file, relative paths land in the config directory"""
        if not self.logging.file:
            return None
        path = Path(self.logging.file).expanduser()
        if path.is_absolute():
            return path
        return self.get_config_directory() / path

    def save_config(self, path: Optional[str] = None) -> Path:
        """
        Save current configuration to file

        The Navidrome password is never written.

        Args:
            path: Custom path to save config, defaults to user config directory

        Returns:
            Path the configuration was written to

        Raises:
            ConfigError: If the configuration cannot be saved
        """
        from ..exceptions import ConfigError

        target = Path(path) if path else self.get_config_directory() / "config.yaml"

        config_data = {name: self._dataclass_to_dict(obj) for name, obj in self._sections().items()}
        config_data['navidrome']['password'] = ""

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to save config to {target}: {e}", details={'path': str(target)})
        return target

    def _dataclass_to_dict(self, obj) -> Dict[str, Any]:
        result = {}
        for key, value in obj.__dict__.items():
            result[key] = list(value) if isinstance(value, list) else value
        return result

    def to_dict(self, hide_secrets: bool = True) -> Dict[str, Dict[str, Any]]:
        """Effective configuration as nested dictionaries"""
        data = {name: self._dataclass_to_dict(obj) for name, obj in self._sections().items()}
        if hide_secrets and data['navidrome']['password']:
            data['navidrome']['password'] = "********"
        return data

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Returns:
            List of human readable problems, empty when the configuration is usable
        """
        errors = []

        if not self.player.allowed_players:
            errors.append("player.allowed_players must not be empty (use 'all')")

        if self.player.refresh_interval <= 0:
            errors.append(f"player.refresh_interval must be positive: {self.player.refresh_interval}")

        if self.player.loop_check_interval <= 0:
            errors.append(f"player.loop_check_interval must be positive: {self.player.loop_check_interval}")

        for provider in self.lyrics.external_providers:
            if provider not in KNOWN_PROVIDERS:
                errors.append(f"Unknown external lyrics provider: {provider}")

        if "navidrome" in self.lyrics.external_providers and not self.navidrome.is_complete:
            errors.append("Navidrome provider requires server_url, username and password")

        if not 0.0 <= self.lyrics.similarity_threshold <= 1.0:
            errors.append(f"lyrics.similarity_threshold must be within 0..1: {self.lyrics.similarity_threshold}")

        return errors

    def __str__(self) -> str:
        sections = [
            f"Players: {', '.join(self.player.allowed_players)}",
            f"Refresh: {self.player.refresh_interval}s",
            f"Providers: {', '.join(self.lyrics.external_providers) or 'local only'}",
        ]
        return f"Settings({', '.join(sections)})"


# Global settings instance for singleton pattern
settings = Settings()


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance
    """
    return settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global settings
    settings = Settings(config_path)
    return settings
