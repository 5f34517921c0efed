"""Defaults management for compression options"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from managers.options_validator import OptionsValidator, normalize_options
from models.errors import ValidationError
from models.options import HARDCODED_DEFAULTS, CompressionOptions

logger = logging.getLogger("ImgSqueeze")

# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "imgsqueeze"
CONFIG_FILE = CONFIG_DIR / "config.json"

ENV_PREFIX = "IMGSQUEEZE_DEFAULT_"


class DefaultsManager:
    """Manages default options with precedence: per-call > runtime > config > env > hardcoded"""

    def __init__(self, validator: Optional[OptionsValidator] = None, config_file: Optional[Path] = None):
        self.validator = validator or OptionsValidator()
        self.config_file = Path(config_file) if config_file else CONFIG_FILE
        self._runtime_defaults: Dict[str, Any] = {}
        self._config_defaults = self._load_config_defaults()
        self._hardcoded_defaults = dict(HARDCODED_DEFAULTS)

    def _load_config_defaults(self) -> Dict[str, Any]:
        """Load defaults from config file"""
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config file {self.config_file}: {e}")
            return {}
        defaults = config.get("defaults", {}) if isinstance(config, dict) else {}
        if not isinstance(defaults, dict):
            logger.warning(f"Ignoring malformed 'defaults' in {self.config_file}")
            return {}
        return self._known_only(normalize_options(defaults), source=str(self.config_file))

    def _get_env_defaults(self) -> Dict[str, Any]:
        """Load defaults from IMGSQUEEZE_DEFAULT_* environment variables"""
        defaults = {}
        for key in HARDCODED_DEFAULTS:
            value = os.getenv(f"{ENV_PREFIX}{key.upper()}")
            if value is not None:
                defaults[key] = value
        return defaults

    def _known_only(self, values: Mapping[str, Any], source: str) -> Dict[str, Any]:
        unknown = [key for key in values if key not in HARDCODED_DEFAULTS]
        if unknown:
            logger.warning(f"Ignoring unknown option keys from {source}: {unknown}")
        return {key: value for key, value in values.items() if key in HARDCODED_DEFAULTS}

    def get_default(self, key: str, provided_value: Any = None) -> Any:
        """Get default value with precedence: provided > runtime > config > env > hardcoded"""
        if provided_value is not None:
            return provided_value

        if key in self._runtime_defaults:
            return self._runtime_defaults[key]

        if key in self._config_defaults:
            return self._config_defaults[key]

        env_defaults = self._get_env_defaults()
        if key in env_defaults:
            return env_defaults[key]

        return self._hardcoded_defaults.get(key)

    def get_all_defaults(self) -> Dict[str, Any]:
        """Get all effective defaults (merged from all sources)"""
        result = dict(self._hardcoded_defaults)
        result.update(self._get_env_defaults())
        result.update(self._config_defaults)
        result.update(self._runtime_defaults)
        return result

    def resolve(self, overrides: Optional[Mapping[str, Any]] = None) -> CompressionOptions:
        """Merge per-call overrides over the effective defaults.

        The result is not validated here; the orchestrator validates it before
        invoking the codec so bad values are reported field by field.
        """
        merged = self.get_all_defaults()
        if overrides:
            merged.update({key: value for key, value in normalize_options(overrides).items() if value is not None})
        unknown = {key: value for key, value in merged.items() if key not in HARDCODED_DEFAULTS}
        if unknown:
            raise ValidationError({key: "unknown option" for key in unknown})
        return CompressionOptions(**merged)

    def set_defaults(self, defaults: Mapping[str, Any]) -> Dict[str, Any]:
        """Set runtime defaults. Returns validation errors if any."""
        candidate = self.get_all_defaults()
        candidate.update(normalize_options(defaults))
        try:
            validated = self.validator.validate(candidate)
        except ValidationError as e:
            return {"errors": e.fields}

        updated = {key: getattr(validated, key) for key in normalize_options(defaults)}
        self._runtime_defaults.update(updated)
        logger.info(f"Updated runtime defaults: {updated}")
        return {"success": True, "updated": updated}

    def persist_defaults(self, defaults: Mapping[str, Any]) -> Dict[str, Any]:
        """Persist defaults to config file"""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        config: Dict[str, Any] = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
            except (json.JSONDecodeError, IOError):
                config = {}

        config.setdefault("defaults", {}).update(normalize_options(defaults))

        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
            self._config_defaults = self._load_config_defaults()
            return {"success": True, "persisted": dict(defaults)}
        except IOError as e:
            return {"error": f"Failed to write config file: {e}"}
