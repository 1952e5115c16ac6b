"""
Configuration Manager for the accommodation engine
Location: accommodation_engine/config/config_manager.py

YAML layout:

    models:
      default: {model_name, max_tokens, temperature}
      k12: {...}
    prompts:
      k12:
        complex: {version, content}
        simple: {version, content}
      tutoring:
        content: "..."        # legacy unversioned module-level prompt
    templates:
      k12: "..."
"""

import os
import yaml
import logging
from typing import Any, Dict, Optional

from ..models.schemas import DEFAULT_MODEL_CONFIG, ModelConfig, ModuleType, Pathway


class ConfigurationError(Exception):
    """Missing or unusable configuration. Fatal for the request, never retried."""


class ConfigManager:
    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """
        Initialize ConfigManager from a YAML file or an already-parsed mapping.

        Args:
            config_path: Path to YAML configuration file
            config: Parsed configuration (takes precedence over config_path)
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.logger = logging.getLogger(__name__)

        if config is not None:
            self.config = config
        elif config_path:
            self._load_config()

    def _load_config(self) -> None:
        """
        Load configuration from YAML file.
        """
        self.logger.info(f"Loading configuration from: {self.config_path}")

        if not os.path.exists(self.config_path):
            self.logger.error(f"Configuration file not found: {self.config_path}")
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as config_file:
                self.config = yaml.safe_load(config_file) or {}
        except yaml.YAMLError as e:
            self.logger.exception(f"Error loading configuration: {str(e)}")
            raise ConfigurationError(f"Invalid configuration file {self.config_path}: {e}") from e

        if self.config:
            self.logger.info(f"Configuration loaded successfully with sections: {list(self.config.keys())}")
        else:
            self.logger.warning("Configuration file is empty")

    def get_section(self, section: str) -> Dict[str, Any]:
        return self.config.get(section) or {}

    def load_model_config(self, module_type: ModuleType) -> ModelConfig:
        """
        Model settings for a module: the module entry, then ``default``,
        then the built-in safe triple. Never raises.
        """
        models = self.get_section("models")
        for key in (module_type.value, "default"):
            entry = models.get(key)
            if not entry:
                continue
            try:
                return ModelConfig(**entry)
            except (TypeError, ValueError) as e:
                self.logger.warning(f"Ignoring invalid model config [{key}]: {e}")

        self.logger.warning(f"No model config for {module_type.value}, using default {DEFAULT_MODEL_CONFIG.model_name}")
        return DEFAULT_MODEL_CONFIG.model_copy()

    def load_system_prompt(self, module_type: ModuleType, pathway: Pathway) -> str:
        """
        System prompt for (module, pathway). A module-level unversioned prompt
        is accepted when no pathway-specific one exists.

        Raises:
            ConfigurationError: no usable prompt configured
        """
        module_prompts = self.get_section("prompts").get(module_type.value)

        if isinstance(module_prompts, dict):
            entry = module_prompts.get(pathway.value)
            if isinstance(entry, dict) and entry.get("content"):
                self.logger.debug(
                    f"Using {module_type.value}/{pathway.value} prompt version {entry.get('version', 'unversioned')}"
                )
                return entry["content"]
            if isinstance(entry, str) and entry.strip():
                return entry
            if module_prompts.get("content"):
                self.logger.info(f"Using legacy module-level prompt for {module_type.value}")
                return module_prompts["content"]
        elif isinstance(module_prompts, str) and module_prompts.strip():
            self.logger.info(f"Using legacy module-level prompt for {module_type.value}")
            return module_prompts

        raise ConfigurationError(
            f"No system prompt configured for module '{module_type.value}' and pathway '{pathway.value}'"
        )

    def load_report_template(self, module_type: ModuleType) -> Optional[str]:
        template = self.get_section("templates").get(module_type.value)
        return template or None
