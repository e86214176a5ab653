"""
Configuration Management System for PyGTD

This module provides a centralized configuration system that supports a 4-tier
precedence hierarchy: environment → project → user → system defaults.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ValidationLevel(Enum):
    """Configuration validation strictness levels"""
    STRICT = "strict"      # Fail fast on validation errors
    LENIENT = "lenient"    # Log warnings, use defaults


class DatabaseConfig(BaseModel):
    """Durable storage location"""
    model_config = ConfigDict(extra='forbid')

    db_path: str = Field(default="data/db/gtd_data.duckdb", description="DuckDB file path (or :memory:)")


class PersistenceConfig(BaseModel):
    """Save-on-change behaviour"""
    model_config = ConfigDict(extra='forbid')

    autosave: bool = Field(default=True, description="Flush collections after every mutation")
    save_debounce: float = Field(default=0.05, ge=0.0, le=60.0, description="Seconds to coalesce mutations before a flush")
    persist_contexts: bool = Field(default=False, description="Store contexts alongside the other collections")


class ContextSeed(BaseModel):
    """One seeded context"""
    model_config = ConfigDict(extra='forbid')

    id: str
    name: str
    color: str = "#6B7280"


def _default_context_seeds() -> List[ContextSeed]:
    return [
        ContextSeed(id="1", name="@computer", color="#3B82F6"),
        ContextSeed(id="2", name="@home", color="#10B981"),
        ContextSeed(id="3", name="@errands", color="#F59E0B"),
        ContextSeed(id="4", name="@phone", color="#EF4444"),
    ]


class ContextsConfig(BaseModel):
    """Contexts created when the store starts"""
    model_config = ConfigDict(extra='forbid')

    seed: List[ContextSeed] = Field(default_factory=_default_context_seeds)


class LoggingConfig(BaseModel):
    """Log file and level settings"""
    model_config = ConfigDict(extra='forbid')

    level: str = Field(default="INFO", description="File log level")
    log_dir: str = Field(default="data/logs", description="Directory for gtd.log")
    max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Rotate after this many bytes")
    backup_count: int = Field(default=5, ge=0, le=50, description="Rotated files to keep")


class SystemConfig(BaseModel):
    """Complete system configuration"""
    model_config = ConfigDict(extra='forbid')

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    contexts: ContextsConfig = Field(default_factory=ContextsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Metadata
    schema_version: int = Field(default=1, description="Configuration schema version")


# env var -> (section, key, type)
_ENV_MAP = {
    'GTD_DB_PATH': ('database', 'db_path', str),
    'GTD_AUTOSAVE': ('persistence', 'autosave', bool),
    'GTD_SAVE_DEBOUNCE': ('persistence', 'save_debounce', float),
    'GTD_PERSIST_CONTEXTS': ('persistence', 'persist_contexts', bool),
    'LOG_LEVEL': ('logging', 'level', str),
    'GTD_LOG_DIR': ('logging', 'log_dir', str),
}


class ConfigManager:
    """Centralized configuration manager with 4-tier precedence hierarchy"""

    def __init__(self, project_root: Optional[Path] = None):
        self.project_root = project_root or Path.cwd()
        self.config_dir = self.project_root / "config"
        self._system_config: Optional[SystemConfig] = None
        self._user_config: Optional[Dict[str, Any]] = None
        self._project_config: Optional[Dict[str, Any]] = None

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load YAML configuration file"""
        if not file_path.exists():
            return {}

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.warning(f"Failed to load {file_path}: {e}")
            return {}

    def _save_yaml_file(self, file_path: Path, data: Dict[str, Any]) -> bool:
        """Save configuration to YAML file"""
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
            return True
        except OSError as e:
            logger.error(f"Failed to save {file_path}: {e}")
            return False

    def _load_system_defaults(self) -> SystemConfig:
        """Load system default configuration"""
        if self._system_config is None:
            defaults_dict = self._load_yaml_file(self.config_dir / "defaults.yaml")

            try:
                self._system_config = SystemConfig(**defaults_dict)
            except ValidationError as e:
                logger.warning(f"System defaults validation failed: {e}")
                self._system_config = SystemConfig()

        return self._system_config

    def _load_user_config(self) -> Dict[str, Any]:
        """Load user-level configuration"""
        if self._user_config is None:
            self._user_config = self._load_yaml_file(self.config_dir / "user.yaml")
        return self._user_config

    def _load_project_config(self) -> Dict[str, Any]:
        """Load project-specific configuration"""
        if self._project_config is None:
            self._project_config = self._load_yaml_file(self.config_dir / "project.yaml")
        return self._project_config

    def _merge_configs(self) -> Dict[str, Any]:
        """Merge configurations with precedence: env → project → user → system"""
        merged = self._load_system_defaults().model_dump()
        self._deep_merge(merged, self._load_user_config())
        self._deep_merge(merged, self._load_project_config())
        self._deep_merge(merged, self._get_env_overrides())
        return merged

    def _deep_merge(self, base: Dict[str, Any], updates: Dict[str, Any]) -> None:
        """Deep merge configuration dictionaries"""
        for key, value in updates.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _get_env_overrides(self) -> Dict[str, Any]:
        """Extract configuration overrides from environment variables"""
        overrides: Dict[str, Any] = {}
        for env_key, (section, config_key, kind) in _ENV_MAP.items():
            value = os.getenv(env_key)
            if value is None:
                continue

            if kind is bool:
                converted: Any = value.lower() in ('true', '1', 'yes', 'on')
            elif kind is float:
                try:
                    converted = float(value)
                except ValueError:
                    logger.warning(f"Ignoring {env_key}={value!r}: not a number")
                    continue
            else:
                converted = value

            overrides.setdefault(section, {})[config_key] = converted

        return overrides

    def get_config(self, validation_level: ValidationLevel = ValidationLevel.STRICT) -> SystemConfig:
        """Get merged configuration with validation"""
        merged_config = self._merge_configs()

        try:
            return SystemConfig(**merged_config)
        except ValidationError as e:
            if validation_level == ValidationLevel.STRICT:
                raise ValueError(f"Configuration validation failed: {e}") from e
            logger.warning(f"Configuration validation failed, using defaults: {e}")
            return SystemConfig()

    def save_project_config(self, config_updates: Dict[str, Any]) -> bool:
        """Save project-specific configuration updates"""
        project_path = self.config_dir / "project.yaml"

        existing_config = self._load_yaml_file(project_path)
        self._deep_merge(existing_config, config_updates)

        success = self._save_yaml_file(project_path, existing_config)
        if success:
            # Force reload on next get_config()
            self._project_config = None

        return success

    def reload_config(self) -> None:
        """Clear cached configurations and reload from files"""
        self._system_config = None
        self._user_config = None
        self._project_config = None


# Global instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(project_root: Optional[Path] = None) -> ConfigManager:
    """Get global configuration manager instance"""
    global _config_manager
    if _config_manager is None or project_root is not None:
        _config_manager = ConfigManager(project_root)
    return _config_manager


def get_config(validation_level: ValidationLevel = ValidationLevel.STRICT) -> SystemConfig:
    """Get current system configuration"""
    return get_config_manager().get_config(validation_level)
