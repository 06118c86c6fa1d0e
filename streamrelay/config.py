"""
Centralized configuration management.

Sources, in increasing priority:
1) `env.example` (committed, safe placeholders)
2) `env.local` (optional, MUST NOT be committed)
3) System environment variables (highest priority)
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger


class EnvironConfig:
    """
    Singleton configuration class that loads environment variables from env files
    and system environment, providing dictionary-like access with default values.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config = {}
            self._load_config()
            EnvironConfig._initialized = True

    def _load_config(self):
        root = Path(__file__).parent.parent

        example_path = root / "env.example"
        if example_path.exists():
            self._config.update(dotenv_values(example_path))
            logger.info("Loaded environment variables from {}", example_path)

        local_path = root / "env.local"
        if local_path.exists():
            self._config.update(dotenv_values(local_path))
            logger.info("Loaded and overrode environment variables from {}", local_path)

        self._config.update(os.environ)

    def __getitem__(self, key):
        """
        Get configuration value by key.

        Raises:
            KeyError: If key not found
        """
        if key not in self._config:
            raise KeyError(f"Configuration key '{key}' not found")

        return self._config[key]

    def get(self, key, default=None):
        """Get configuration value by key with optional default."""
        value = self._config.get(key)
        return default if value is None else value

    def reload(self):
        """
        Reload configuration from files and environment.
        Useful for testing or when configuration files change.
        """
        self._config.clear()
        self._load_config()
        logger.info("Configuration reloaded")

    def __contains__(self, key):
        return key in self._config

    def __iter__(self):
        return iter(self._config)

    def keys(self):
        return self._config.keys()

    def items(self):
        return self._config.items()

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None or not str(value).strip():
            return default
        return str(value).strip().lower() in {"true", "1", "yes", "on"}

    def get_mongo_url(self, label: str = "default") -> str:
        """
        Get MongoDB connection URL for a specific label.

        Args:
            label: MongoDB connection label (default: "default")

        Returns:
            str: MongoDB connection URL, empty when a labelled URL is not configured
        """
        if label == "default":
            return self.get("MONGO_URL_DEFAULT") or self.get("MONGO_URL") or "mongodb://localhost:27017"

        return self.get(f"MONGO_URL_{label.upper()}", "")

    def get_remote_host(self, host_id: str) -> str | None:
        """
        Get the `user@address[:port]` spec of a remote transcoding host.

        Hosts are declared as `REMOTE_HOST_<ID>` entries, e.g. `REMOTE_HOST_EDGE1=streaming@10.0.0.5:2222`.
        """
        value = (self.get(f"REMOTE_HOST_{host_id.upper()}") or "").strip()
        return value or None

    def get_remote_host_ids(self) -> list[str]:
        prefix = "REMOTE_HOST_"
        return sorted(
            key[len(prefix) :].lower()
            for key, value in self._config.items()
            if key.startswith(prefix) and (value or "").strip()
        )


config = EnvironConfig()
