"""
Configuration Loader
Configuration management for the PPG core
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from ..data.settings import PipelineConfig

_ENV_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)(?::([^}]*))?\}')


class ConfigLoader:
    """
    Configuration loader and manager

    Values may reference environment variables as ``${VAR}`` or
    ``${VAR:default}``; variables from the ``.env`` file are loaded first.

    Attributes:
        config_data (Dict): Loaded configuration data
        config_file (str): Path to configuration file
        env_file (str): Path to environment file
        logger (logging.Logger): Logger instance
    """

    def __init__(self, config_file: str = "config/app_config.yaml",
                 env_file: str = ".env"):
        """
        Initialize configuration loader

        Args:
            config_file: Path to YAML configuration file
            env_file: Path to environment variables file
        """
        self.config_file = config_file
        self.env_file = env_file
        self.config_data: Dict[str, Any] = {}
        self.logger = logging.getLogger(__name__)

    def load_config(self) -> bool:
        """
        Load configuration from files

        Returns:
            bool: True if configuration loaded successfully
        """
        self._load_env_variables(self.env_file)

        if not Path(self.config_file).exists():
            self.logger.error(f"Config file not found: {self.config_file}")
            return False

        try:
            raw = self._load_yaml_file(self.config_file)
        except (OSError, yaml.YAMLError) as e:
            self.logger.error(f"Failed to load config {self.config_file}: {e}")
            return False

        self.config_data = self._resolve_env_variables(raw)
        self.logger.info(f"Loaded configuration from {self.config_file}")
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._get_nested_value(self.config_data, key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> bool:
        """
        Set configuration value

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set

        Returns:
            bool: True if value set successfully
        """
        if not key:
            return False
        try:
            self._set_nested_value(self.config_data, key, value)
        except TypeError as e:
            self.logger.error(f"Cannot set {key}: {e}")
            return False
        return True

    def save_config(self, config_file: Optional[str] = None) -> bool:
        """
        Write the in-memory configuration back as YAML

        Args:
            config_file: Destination (defaults to the file it was loaded from)

        Returns:
            bool: True if save successful
        """
        target = Path(config_file or self.config_file)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'w', encoding='utf-8') as f:
                yaml.safe_dump(self.config_data, f, sort_keys=False, allow_unicode=True)
        except OSError as e:
            self.logger.error(f"Failed to save config to {target}: {e}")
            return False
        self.logger.info(f"Saved configuration to {target}")
        return True

    def reload_config(self) -> bool:
        """
        Re-read the YAML file, keeping the previous values if that fails
        """
        previous = self.config_data
        if self.load_config():
            return True
        self.config_data = previous
        return False

    def _load_yaml_file(self, file_path: str) -> Dict[str, Any]:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data or {}

    def _load_env_variables(self, env_file: str):
        """Export .env entries without overriding the real environment"""
        if env_file and Path(env_file).exists():
            load_dotenv(env_file, override=False)
            self.logger.debug(f"Loaded environment from {env_file}")

    def _resolve_env_variables(self, config_dict: Any) -> Any:
        """
        Substitute ${VAR} and ${VAR:default} references throughout the tree

        Args:
            config_dict: Mapping, list or scalar from the YAML tree

        Returns:
            Same structure with references replaced
        """
        if isinstance(config_dict, dict):
            return {k: self._resolve_env_variables(v) for k, v in config_dict.items()}
        if isinstance(config_dict, list):
            return [self._resolve_env_variables(v) for v in config_dict]
        if not isinstance(config_dict, str):
            return config_dict

        def substitute(match: re.Match) -> str:
            name, default = match.group(1), match.group(2)
            value = os.environ.get(name)
            if value is None:
                if default is None:
                    self.logger.warning(f"Environment variable {name} not set")
                    return ''
                return default
            return value

        resolved = _ENV_PATTERN.sub(substitute, config_dict)
        # A value that is exactly one reference gets YAML typing ("30" -> 30)
        if resolved != config_dict and _ENV_PATTERN.fullmatch(config_dict.strip()):
            try:
                return yaml.safe_load(resolved) if resolved else None
            except yaml.YAMLError:
                return resolved
        return resolved

    def _get_nested_value(self, data: Dict[str, Any], key_path: str) -> Any:
        """Walk ``a.b.c`` through nested dicts; None when any level is missing"""
        current: Any = data
        for part in key_path.split('.'):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def _set_nested_value(self, data: Dict[str, Any], key_path: str, value: Any):
        parts = key_path.split('.')
        current = data
        for part in parts[:-1]:
            node = current.setdefault(part, {})
            if not isinstance(node, dict):
                raise TypeError(f"'{part}' is not a mapping")
            current = node
        current[parts[-1]] = value

    def validate_config(self) -> bool:
        """
        Validate configuration structure and values

        Returns:
            bool: True if configuration is valid
        """
        try:
            self.get_pipeline_config()
        except (TypeError, ValueError) as e:
            self.logger.error(f"Invalid ppg configuration: {e}")
            return False

        default_source = self.get('sources.default', 'synthetic')
        if default_source not in ('synthetic', 'replay'):
            self.logger.error(f"Unknown default source: {default_source}")
            return False

        for name, source in (self.get('sources', {}) or {}).items():
            if name == 'default':
                continue
            if not isinstance(source, dict):
                self.logger.error(f"Source '{name}' must be a mapping")
                return False
            rate = source.get('sample_rate', self.get('ppg.sample_rate', 30.0))
            if not isinstance(rate, (int, float)) or rate <= 0:
                self.logger.error(f"Invalid sample_rate for source '{name}': {rate}")
                return False
        return True

    def get_pipeline_config(self) -> PipelineConfig:
        """
        Build the pipeline configuration from the ``ppg`` section

        Returns:
            PipelineConfig instance
        """
        return PipelineConfig.from_dict(self.get('ppg', {}))

    def get_source_config(self, source_name: str) -> Dict[str, Any]:
        """
        Get frame-source configuration

        Args:
            source_name: Source name (e.g. 'synthetic', 'replay')

        Returns:
            Source configuration dictionary (copy)
        """
        source = copy.deepcopy(self.get(f'sources.{source_name}', {}) or {})
        source.setdefault('sample_rate', self.get('ppg.sample_rate', 30.0))
        return source
