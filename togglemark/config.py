"""
Configuration management for ToggleMark.

Provides a hierarchical configuration system with sensible defaults.
Supports both global (~/.config/togglemark/config.toml) and local
(togglemark.toml) configurations.
"""
import os
import tomli
import tomli_w
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict

from togglemark import constants


@dataclass
class TogglemarkConfig:
    """
    ToggleMark configuration with sensible defaults.

    Configuration hierarchy (highest to lowest priority):
    1. Command-line arguments
    2. Environment variables (TOGGLEMARK_*)
    3. Local config file (./togglemark.toml or ./.togglemarkrc)
    4. User config file (~/.config/togglemark/config.toml)
    5. System defaults
    """

    # Database settings
    database: str = field(default="togglemark.db")
    database_url: Optional[str] = field(default=None)  # Full connection string (overrides database)
    database_echo: bool = field(default=False)

    # Expiration and sweeping
    retention_days: int = field(default=constants.DEFAULT_RETENTION_DAYS)
    sweep_period_minutes: int = field(default=constants.DEFAULT_SWEEP_PERIOD_MINUTES)

    # Folders
    quick_saves_folder_name: str = field(default=constants.QUICK_SAVES_FOLDER_NAME)
    toolbar_folder_name: str = field(default=constants.TOOLBAR_FOLDER_NAME)

    # Reminder alert
    notification_title: str = field(default=constants.NOTIFICATION_TITLE)
    notification_icon: str = field(default=constants.NOTIFICATION_ICON)
    tone_frequency: int = field(default=constants.TONE_FREQUENCY)
    tone_duration_ms: int = field(default=constants.TONE_DURATION_MS)
    tone_volume: float = field(default=constants.TONE_VOLUME)
    open_urls: bool = field(default=True)

    # Runtime
    poll_interval: float = field(default=1.0)  # Seconds between alarm polls

    # Display settings
    output_format: str = field(default="table")  # table, json
    log_level: str = field(default="INFO")

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "TogglemarkConfig":
        """
        Load configuration from files and environment.

        Args:
            config_file: Specific config file to load (overrides search)

        Returns:
            Merged configuration object
        """
        config = cls()

        user_config_path = Path.home() / ".config" / "togglemark" / "config.toml"
        if user_config_path.exists():
            config._merge(cls._load_toml(user_config_path))

        local_paths = [
            Path.cwd() / "togglemark.toml",
            Path.cwd() / ".togglemarkrc",
            Path.cwd() / ".togglemark" / "config.toml"
        ]

        for path in local_paths:
            if path.exists():
                config._merge(cls._load_toml(path))
                break

        if config_file and config_file.exists():
            config._merge(cls._load_toml(config_file))

        config._apply_env_vars()
        config._expand_paths()

        return config

    @staticmethod
    def _load_toml(path: Path) -> Dict[str, Any]:
        """Load TOML configuration file."""
        with open(path, "rb") as f:
            return tomli.load(f)

    def _merge(self, data: Dict[str, Any]):
        """Merge configuration data into this instance."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def _apply_env_vars(self):
        """Apply environment variables with TOGGLEMARK_ prefix."""
        prefix = "TOGGLEMARK_"
        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower()
                if hasattr(self, config_key):
                    # bool must be checked before int
                    current_value = getattr(self, config_key)
                    if isinstance(current_value, bool):
                        setattr(self, config_key, value.lower() in ("true", "1", "yes"))
                    elif isinstance(current_value, int):
                        setattr(self, config_key, int(value))
                    elif isinstance(current_value, float):
                        setattr(self, config_key, float(value))
                    else:
                        setattr(self, config_key, value)

    def _expand_paths(self):
        """Expand ~ and environment variables in paths."""
        value = self.database
        if isinstance(value, str):
            self.database = os.path.expanduser(os.path.expandvars(value))

    def save(self, path: Optional[Path] = None):
        """
        Save current configuration to TOML file.

        Args:
            path: Path to save to (defaults to user config)
        """
        if path is None:
            path = Path.home() / ".config" / "togglemark" / "config.toml"

        path.parent.mkdir(parents=True, exist_ok=True)

        # TOML has no null
        data = {k: v for k, v in asdict(self).items() if v is not None}
        with open(path, "wb") as f:
            tomli_w.dump(data, f)

    @property
    def retention_ms(self) -> int:
        """Expiry offset applied to new quick saves."""
        return self.retention_days * constants.MS_PER_DAY

    def get_database_path(self) -> Path:
        """Get the resolved database path."""
        path = Path(self.database)
        if not path.is_absolute():
            path = Path.cwd() / path
        return path

    def get_database_url(self) -> str:
        """
        Get SQLAlchemy database URL.

        Examples:
            sqlite:///togglemark.db
            sqlite:///:memory:
        """
        if self.database_url:
            return self.database_url

        db_path = self.get_database_path()
        return f"sqlite:///{db_path}"

    def is_sqlite(self) -> bool:
        """Check if database is SQLite."""
        return self.get_database_url().startswith("sqlite:")


# Global configuration instance
_config: Optional[TogglemarkConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> TogglemarkConfig:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from files
        config_file: Specific config file to load

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None or reload:
        _config = TogglemarkConfig.load(config_file)
    return _config


def init_config(database: Optional[str] = None, **kwargs) -> TogglemarkConfig:
    """
    Initialize configuration with command-line overrides.

    Args:
        database: Database path override
        **kwargs: Other configuration overrides

    Returns:
        Configured instance
    """
    config_file = kwargs.pop("config_file", None)
    config = get_config(reload=config_file is not None, config_file=config_file)

    if database:
        config.database = database

    for key, value in kwargs.items():
        if hasattr(config, key) and value is not None:
            setattr(config, key, value)

    return config
