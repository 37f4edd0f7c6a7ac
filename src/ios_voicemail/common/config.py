"""Configuration loader with multi-source support."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Generic, Optional, Type, TypeVar, get_args

import platformdirs
import toml
from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)

CONFIG_FILENAME = "config.toml"


class ConfigLoader(Generic[T]):
    """Loads configuration from multiple sources with priority.

    Sources, lowest priority first:
        1. defaults TOML (explicit path, ``./config/defaults.toml``)
        2. system config (``/etc/<app>/config.toml`` or ``%PROGRAMDATA%``)
        3. user config (``platformdirs.user_config_dir``)
        4. environment variables ``<APP>_<SECTION>_<KEY>``, where ``<APP>`` is
           the upper-cased app name, e.g. ``IOS_VOICEMAIL_BACKUP_EXTRACTOR_``
           for the extract command
    """

    def __init__(self, app_name: str, config_class: Type[T]) -> None:
        self.app_name = app_name
        self.config_class = config_class
        self._config: Optional[T] = None

    @property
    def env_prefix(self) -> str:
        """Prefix for environment overrides, e.g. ``IOS_VOICEMAIL_BACKUP_EXTRACTOR_``."""
        return f"{self.app_name.upper().replace('-', '_')}_"

    def load(self, defaults_path: Optional[Path] = None) -> T:
        """Load configuration from all sources.

        Args:
            defaults_path: Optional path to a defaults TOML file

        Returns:
            Validated configuration object

        Raises:
            pydantic.ValidationError: If the merged configuration is invalid
            toml.TomlDecodeError: If a config file is not valid TOML
        """
        config_dict = self._load_defaults(defaults_path)

        for layer in (self._load_system_config(), self._load_user_config()):
            if layer:
                config_dict = self._deep_merge(config_dict, layer)

        config_dict = self._apply_env_overrides(config_dict)

        self._config = self.config_class(**config_dict)
        return self._config

    def _read_toml(self, path: Path) -> Dict[str, Any]:
        logger.debug(f"Loading config file: {{'path': {str(path)!r}}}")
        return toml.load(path)

    def _load_defaults(self, defaults_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load default configuration."""
        if defaults_path is not None:
            if not defaults_path.exists():
                raise FileNotFoundError(f"Config file not found: {defaults_path}")
            return self._read_toml(defaults_path)

        local_defaults = Path.cwd() / "config" / "defaults.toml"
        if local_defaults.exists():
            return self._read_toml(local_defaults)

        return {}

    def _load_system_config(self) -> Optional[Dict[str, Any]]:
        """Load system-wide configuration."""
        if os.name == "nt":
            system_path = (
                Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData"))
                / self.app_name
                / CONFIG_FILENAME
            )
        else:
            system_path = Path("/etc") / self.app_name / CONFIG_FILENAME

        if system_path.exists():
            return self._read_toml(system_path)

        return None

    def _load_user_config(self) -> Optional[Dict[str, Any]]:
        """Load user-specific configuration."""
        user_config_dir = platformdirs.user_config_dir(appname=self.app_name, appauthor=False)
        user_config_path = Path(user_config_dir) / CONFIG_FILENAME

        if user_config_path.exists():
            return self._read_toml(user_config_path)

        logger.debug(f"User config not found: {{'path': {str(user_config_path)!r}}}")
        return None

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Override config with environment variables.

        ``IOS_VOICEMAIL_BACKUP_EXTRACTOR_EXTRACTION_WORKER_THREADS=8`` sets
        ``extraction.worker_threads``: the first segment after the prefix names
        the section, the remainder is the field name. Values for ``str``
        fields are kept verbatim, so an all-digit device id stays a string.
        """
        prefix = self.env_prefix

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(prefix):
                continue

            section, _, key = env_key[len(prefix):].lower().partition("_")
            if not section or not key:
                logger.debug(f"Ignoring malformed config override: {{'variable': {env_key!r}}}")
                continue

            current = config.setdefault(section, {})
            if not isinstance(current, dict):
                continue
            if self._is_text_field(section, key):
                current[key] = env_value
            else:
                current[key] = self._convert_env_value(env_value)

        return config

    def _is_text_field(self, section: str, key: str) -> bool:
        """Whether ``<section>.<key>`` is declared as ``str`` or ``Optional[str]``."""
        section_field = self.config_class.model_fields.get(section)
        if section_field is None:
            return False

        fields = getattr(section_field.annotation, "model_fields", {})
        field = fields.get(key)
        if field is None:
            return False

        return field.annotation is str or str in get_args(field.annotation)

    def _convert_env_value(self, value: str) -> Any:
        """Convert string environment variable to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    @property
    def config(self) -> T:
        """Get loaded configuration."""
        if self._config is None:
            self._config = self.load()
        return self._config
