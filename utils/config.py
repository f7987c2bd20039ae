"""
Configuration management for the PubSub bridge.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.constants import CONFIGS_DIR
from utils.failures import ConfigError

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    'PUBSUB_SERVER_URL': 'network.server_url',
    'PUBSUB_NAMESPACE': 'network.namespace',
    'PUBSUB_HOST': 'network.host',
    'PUBSUB_PORT': 'network.port',
    'PUBSUB_LOG_LEVEL': 'logging.level',
}


class Config:
    """Configuration manager that merges multiple domain-specific JSON files."""

    def __init__(self, configs_dir: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration by loading all JSON files in the configs directory.

        Args:
            configs_dir: Path to directory containing JSON configs (defaults to ./configs)
            environ: Environment mapping used for overrides (defaults to os.environ)
        """
        self.config: Dict[str, Any] = {}
        configs_path = Path(configs_dir) if configs_dir else CONFIGS_DIR

        if configs_path.exists() and configs_path.is_dir():
            for config_file in sorted(configs_path.glob("*.json")):
                self.load_from_file(str(config_file))

        self._load_from_env(os.environ if environ is None else environ)

    def _load_from_env(self, environ: Dict[str, str]):
        """Load configuration overrides from environment variables."""
        for env_name, key in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value:
                self.set(key, value)

    def load_from_file(self, path: str):
        """Load configuration from JSON file."""
        try:
            with open(path, 'r') as f:
                user_config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}", critical=True) from e

        if not isinstance(user_config, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object", critical=True)
        self._merge_config(user_config)

    def _merge_config(self, user_config: Dict[str, Any]):
        """Merge user config with defaults recursively."""
        def update(d, u):
            for k, v in u.items():
                if isinstance(v, dict):
                    d[k] = update(d.get(k, {}), v)
                else:
                    d[k] = v
            return d

        update(self.config, user_config)

    def set(self, key: str, value: Any):
        """Set a (dotted) configuration value."""
        keys = key.split('.')
        node = self.config
        for k in keys[:-1]:
            node = node.setdefault(k, {})
        node[keys[-1]] = value

    def get_int(self, key: str, default: int = 0) -> int:
        """Get config value as integer."""
        val = self.get(key, default)
        try:
            return int(val)
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get config value as float."""
        val = self.get(key, default)
        try:
            return float(val)
        except (ValueError, TypeError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get config value as boolean."""
        val = self.get(key, default)
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ('true', '1', 'yes', 'on')
        return bool(val)

    def get_list(self, key: str, default: Optional[List[Any]] = None) -> List[Any]:
        """Get config value as a list (comma-separated strings are split)."""
        val = self.get(key, None)
        if val is None:
            return list(default or [])
        if isinstance(val, str):
            return [item.strip() for item in val.split(',') if item.strip()]
        if isinstance(val, (list, tuple)):
            return list(val)
        return [val]

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value
