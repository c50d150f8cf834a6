"""
Configuration management for bka.

Handles loading and saving user configuration from:
- XDG config directory: ~/.config/bka/config.json
- Fallback: ~/.bka/config.json

The GOOGLE_BOOKS_API_KEY environment variable, when set, overrides the
lookup API key from the file.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = 'local'


@dataclass
class LibraryConfig:
    """Library-related settings."""
    default_path: Optional[str] = None
    user_id: str = DEFAULT_USER_ID


@dataclass
class LookupConfig:
    """Bibliographic lookup settings."""
    google_books_api_key: Optional[str] = None
    timeout: float = 10.0
    enabled: bool = True


@dataclass
class CLIConfig:
    """CLI default options."""
    verbose: bool = False
    color: bool = True
    page_size: int = 50


@dataclass
class BKAConfig:
    """Main bka configuration."""
    library: LibraryConfig = field(default_factory=LibraryConfig)
    lookup: LookupConfig = field(default_factory=LookupConfig)
    cli: CLIConfig = field(default_factory=CLIConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "library": asdict(self.library),
            "lookup": asdict(self.lookup),
            "cli": asdict(self.cli),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BKAConfig':
        """Create from dictionary, ignoring unknown keys."""
        def section(config_cls, values):
            known = config_cls.__dataclass_fields__
            return config_cls(**{k: v for k, v in (values or {}).items() if k in known})

        return cls(
            library=section(LibraryConfig, data.get("library")),
            lookup=section(LookupConfig, data.get("lookup")),
            cli=section(CLIConfig, data.get("cli")),
        )


def get_config_path() -> Path:
    """
    Get configuration file path.

    Follows XDG Base Directory specification:
    1. ~/.config/bka/config.json
    2. Fallback: ~/.bka/config.json
    """
    xdg_config_home = Path.home() / ".config"
    if xdg_config_home.exists():
        config_dir = xdg_config_home / "bka"
    else:
        config_dir = Path.home() / ".bka"

    return config_dir / "config.json"


def load_config(apply_env: bool = True) -> BKAConfig:
    """
    Load configuration from file.

    Args:
        apply_env: Apply environment variable overrides

    Returns:
        BKAConfig instance with loaded values or defaults
    """
    config_path = get_config_path()
    config = BKAConfig()

    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = BKAConfig.from_dict(json.load(f))
        except (json.JSONDecodeError, OSError, TypeError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}; using defaults")
            config = BKAConfig()

    env_key = os.environ.get('GOOGLE_BOOKS_API_KEY')
    if apply_env and env_key:
        config.lookup.google_books_api_key = env_key

    return config


def save_config(config: BKAConfig) -> Path:
    """
    Save configuration to file.

    Returns:
        Path the configuration was written to
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(config.to_dict(), f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def update_config(
    # Library settings
    library_default_path: Optional[str] = None,
    library_user_id: Optional[str] = None,
    # Lookup settings
    lookup_api_key: Optional[str] = None,
    lookup_timeout: Optional[float] = None,
    lookup_enabled: Optional[bool] = None,
    # CLI settings
    cli_verbose: Optional[bool] = None,
    cli_color: Optional[bool] = None,
    cli_page_size: Optional[int] = None,
) -> BKAConfig:
    """
    Update configuration.

    Only updates provided values, leaving others unchanged.
    """
    config = load_config(apply_env=False)

    if library_default_path is not None:
        config.library.default_path = library_default_path
    if library_user_id is not None:
        config.library.user_id = library_user_id

    if lookup_api_key is not None:
        config.lookup.google_books_api_key = lookup_api_key
    if lookup_timeout is not None:
        config.lookup.timeout = lookup_timeout
    if lookup_enabled is not None:
        config.lookup.enabled = lookup_enabled

    if cli_verbose is not None:
        config.cli.verbose = cli_verbose
    if cli_color is not None:
        config.cli.color = cli_color
    if cli_page_size is not None:
        config.cli.page_size = cli_page_size

    save_config(config)
    return config
