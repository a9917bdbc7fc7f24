"""
Config system - Layered configuration for containers and lazy proxies.

Merge order (later overrides earlier):
1. Config files (JSON or YAML, glob patterns supported)
2. ``.env`` file
3. Environment variables (``LAZYPROXY_*``)
4. Manual overrides
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass, fields
from pathlib import Path
import json
import logging
import os

logger = logging.getLogger("lazyproxy.config")

_FAILURE_POLICIES = ("retry", "poison")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class LazyProxyConfig:
    """
    Runtime options consumed by ``ServiceCollection.build_container``.

    Attributes:
        failure_policy: What a holder does after its factory raised:
            ``"retry"`` on next access, or ``"poison"`` (re-raise forever)
        validate_scopes: Reject scoped services captured by singletons
        validate_on_build: Run graph validation when building the container
        diagnostics: Attach a logging diagnostics listener
        diagnostics_level: Log level name for that listener
    """

    failure_policy: str = "retry"
    validate_scopes: bool = False
    validate_on_build: bool = False
    diagnostics: bool = False
    diagnostics_level: str = "DEBUG"

    def __post_init__(self):
        self.failure_policy = str(self.failure_policy).lower()
        if self.failure_policy not in _FAILURE_POLICIES:
            raise ConfigError(
                f"failure_policy must be one of {_FAILURE_POLICIES}, got '{self.failure_policy}'"
            )
        self.diagnostics_level = str(self.diagnostics_level).upper()
        if self.diagnostics_level not in _LOG_LEVELS:
            raise ConfigError(
                f"diagnostics_level must be one of {_LOG_LEVELS}, got '{self.diagnostics_level}'"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "LAZYPROXY_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "LAZYPROXY_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: List of config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or ():
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matched = sorted(glob(pattern))
        if not matched:
            logger.debug(f"No config files match '{pattern}'")

        for path_str in matched:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigError(f"Unsupported config file type: {path}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        self._merge_section(path, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data:
            self._merge_section(path, data)

    def _merge_section(self, path: Path, data: Any):
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        from dotenv import dotenv_values

        env_path = Path(path)
        if not env_path.exists():
            logger.debug(f".env file '{path}' not found, skipping")
            return

        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert LAZYPROXY_SECTION__FAILURE_POLICY to nested dict."""
        # Remove prefix
        key = key[len(self.env_prefix):]

        # Split by double underscore for nested keys
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        # Boolean
        if value.lower() in ("true", "yes", "1"):
            return True
        if value.lower() in ("false", "no", "0"):
            return False

        # Number
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # JSON
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_dict(self) -> Dict[str, Any]:
        """Get a copy of the merged configuration."""
        import copy
        return copy.deepcopy(self.config_data)

    def to_config(self) -> LazyProxyConfig:
        """
        Build a validated ``LazyProxyConfig`` from the top-level keys.

        Unknown keys are ignored. Raises ``ConfigError`` on type mismatch.
        """
        kwargs = {}
        for f in fields(LazyProxyConfig):
            if f.name not in self.config_data:
                continue
            value = self.config_data[f.name]
            expected = bool if f.type in (bool, "bool") else str
            if not isinstance(value, expected):
                raise ConfigError(
                    f"Config field '{f.name}' expected {expected.__name__}, got {type(value).__name__}"
                )
            kwargs[f.name] = value
        return LazyProxyConfig(**kwargs)
