"""Configuration Management for CLI Settings"""

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console

console = Console()


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class ConfigManager:
    """Manage CLI configuration settings"""

    def __init__(self, config_dir: Path | None = None):
        env_dir = os.getenv("LEADKIT_CONFIG_DIR")
        self.config_dir = config_dir or (Path(env_dir) if env_dir else Path.home() / ".leadkit")
        self.config_file = self.config_dir / "config.yaml"

    def ensure_config_dir(self):
        """Ensure config directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_config(self) -> dict[str, Any]:
        """Load configuration from file"""
        default_config = self.get_default_config()
        if not self.config_file.exists():
            return default_config

        try:
            with open(self.config_file) as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            return default_config

        # Merge with defaults to ensure all keys exist
        return _merge(default_config, config if isinstance(config, dict) else {})

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        self.ensure_config_dir()
        with open(self.config_file, "w") as f:
            yaml.safe_dump(config, f, default_flow_style=False)

    def get_default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return copy.deepcopy(
            {
                "api": {
                    "base_url": os.getenv("LEADKIT_API_URL", "http://localhost:8000"),
                    "timeout": 30,
                },
                "poll": {
                    "interval_ms": 900,
                    "max_interval_ms": 2500,
                    "growth": 1.15,
                    "hard_stop_ms": 60000,
                    "max_attempts": 3,
                },
            }
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'api.base_url')"""
        config: Any = self.load_config()

        for k in key.split("."):
            if isinstance(config, dict) and k in config:
                config = config[k]
            else:
                return default

        return config

    def set(self, key: str, value: Any):
        """Set configuration value using dot notation"""
        config = self.load_config()
        keys = key.split(".")

        # Navigate to the parent dict
        current = config
        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value
        self.save_config(config)

    def reset(self):
        """Reset configuration to defaults"""
        self.save_config(self.get_default_config())

    def dump(self) -> str:
        return yaml.safe_dump(self.load_config(), default_flow_style=False)


# Global config manager instance
config = ConfigManager()
