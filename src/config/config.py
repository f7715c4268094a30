"""
Minimal Configuration Reader for Node War Tools

A lightweight configuration system for the node war tools that provides:
- Profile-based configuration management
- JSON-based configuration storage with read-only access
- Secrets management for sensitive information (base URLs, tokens)
- Hierarchical configuration with dot-notation access

Usage:
    # Use the default singleton instance
    from config import config
    home = config.get('nodewar.home_guild', 'Lollipop')

    # Create a custom instance with specific profile
    from config import Config
    custom_config = Config(profile='season_2')

The configuration system loads settings in this order (later overrides earlier):
1. Default or specified profile (profiles/<profile>.json)
2. Profile-specific secrets (secrets/<profile>_secrets.json)

Example profile:
    {
        "general": {"output_path": "output", "data_dir": "data", "log_level": "INFO"},
        "nodewar": {"home_guild": "Lollipop", "rival_guild": "Chernobyl",
                    "tracked_guilds": ["Manifest", "Allyance", "Grand_Order"]},
        "identity": {"retries": 2, "slow_retries": 5, "throttle_ms": 300},
        "monthly": {"family_concurrency": 6, "family_budget_seconds": 12}
    }
"""

from typing import Dict, Any, List, Optional
from pathlib import Path

from nodewar_tools.base import JSONTool, logger


class Config(JSONTool):
    """
    A minimal JSON-based configuration reader for the node war tools.

    Attributes:
        config_dir (str): Directory containing profile JSON files
        secrets_dir (str): Directory containing secrets JSON files
        profile (str): Currently active profile name
        data (dict): Loaded configuration data
    """

    DEFAULT_CONFIG_DIR = str(Path(__file__).parent / 'profiles')
    DEFAULT_SECRETS_DIR = str(Path(__file__).parent / 'secrets')
    DEFAULT_PROFILE = "default"

    def __init__(self, config_dir: str = None, secrets_dir: str = None, profile: str = None,
                 config: Optional[Dict[str, Any]] = None):
        """
        Initialize the Config instance.

        Args:
            config_dir (str, optional): Directory for config profiles.
            secrets_dir (str, optional): Directory for secrets files.
            profile (str, optional): Profile name to use. Defaults to 'default'.
            config (dict, optional): Base configuration dictionary for JSONTool compatibility.
        """
        super().__init__(config)

        self.config_dir = config_dir or self.DEFAULT_CONFIG_DIR
        self.secrets_dir = secrets_dir or self.DEFAULT_SECRETS_DIR
        self.profile = profile or self.DEFAULT_PROFILE
        self.data = {}

        Path(self.config_dir).mkdir(parents=True, exist_ok=True)
        Path(self.secrets_dir).mkdir(parents=True, exist_ok=True)

        self._load()

    def run(self) -> Dict[str, Any]:
        """Return the full configuration dictionary."""
        return self.data

    def _load(self):
        """
        Load configuration from profile JSON file and merge with secrets.

        Creates an empty default profile when it is missing; an unknown
        non-default profile yields an empty configuration.
        """
        profile_path = Path(self.config_dir) / f"{self.profile}.json"

        if not profile_path.exists():
            if self.profile == self.DEFAULT_PROFILE:
                self._create_default_profile(str(profile_path))
            else:
                logger.warning(f"Profile '{self.profile}' not found. Using empty configuration.")
                self.data = {}
                return

        try:
            self.data = self.read_json(str(profile_path))
            logger.info(f"Loaded configuration from '{self.profile}'")
            self._load_secrets()
        except (OSError, ValueError) as e:
            logger.error(f"Error loading configuration: {e}")
            self.data = {}

    def _create_default_profile(self, profile_path: str):
        """Create an empty default profile configuration file."""
        default_config = {}
        try:
            self.write_json(default_config, profile_path)
            logger.info(f"Created default profile at '{profile_path}'")
        except OSError as e:
            logger.error(f"Error creating default configuration: {e}")
        self.data = default_config

    def _load_secrets(self):
        """
        Load and merge secrets from the secrets directory.

        Looks for '<profile>_secrets.json' and deep-merges it over the profile.
        """
        profile_secrets_path = Path(self.secrets_dir) / f"{self.profile}_secrets.json"
        if not profile_secrets_path.exists():
            logger.debug(f"No secrets file found for profile '{self.profile}'")
            return

        try:
            profile_secrets = self.read_json(str(profile_secrets_path))
            if isinstance(profile_secrets, dict):
                self._deep_merge(self.data, profile_secrets)
                logger.info(f"Loaded and merged secrets from '{profile_secrets_path}'")
        except (OSError, ValueError) as e:
            logger.error(f"Error loading profile-specific secrets: {e}")

    def _deep_merge(self, target: Dict[str, Any], source: Dict[str, Any]):
        """
        Deep merge two dictionaries. Non-dict values in source replace those in target.
        """
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value

    def get(self, path: str = None, default: Any = None) -> Any:
        """
        Get a configuration value by path using dot notation.

        Args:
            path (str, optional): Dot notation path to the value
                (e.g., "nodewar.rival_guild"). If None, returns the entire configuration.
            default (Any, optional): Value to return if path not found.

        Examples:
            >>> config.get('identity.retries', 2)
            2
        """
        if path is None:
            return self.data

        current = self.data
        for key in path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current

    def list_profiles(self) -> List[str]:
        """List all available profile names."""
        return [f.stem for f in Path(self.config_dir).glob("*.json")]

    def switch_profile(self, profile: str) -> bool:
        """
        Switch to a different profile.

        Returns:
            bool: True if successful, False if profile not found.
        """
        profile_path = Path(self.config_dir) / f"{profile}.json"
        if profile_path.exists():
            self.profile = profile
            self._load()
            return True
        logger.warning(f"Profile '{profile}' not found.")
        return False


# Global singleton instance for convenient access throughout the application
# Usage: from config import config; value = config.get('some.key')
config = Config()
