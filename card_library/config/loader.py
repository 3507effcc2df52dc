"""Configuration loader with validation and error handling."""

import yaml
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from pydantic import ValidationError

from .models import LibraryConfig

logger = logging.getLogger(__name__)


class ConfigLoadError(Exception):
    """library.yaml could not be read."""


class ConfigValidationError(ConfigLoadError):
    """library.yaml was read but does not describe a valid LibraryConfig."""

    def __init__(self, file_path: Path, error: ValidationError):
        self.file_path = file_path
        self.problems = [
            (".".join(str(part) for part in item["loc"]), item["msg"])
            for item in error.errors()
        ]
        details = "; ".join(f"{field}: {msg}" for field, msg in self.problems)
        super().__init__(f"Invalid library config {file_path}: {details}")


class ConfigLoader:
    """Loads and validates configuration files."""

    def __init__(self, config_dir: Path = Path(".")):
        self.config_dir = Path(config_dir)

    def load_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Load YAML file with error handling."""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
                if data is None:
                    return {}
                if not isinstance(data, dict):
                    raise ConfigLoadError(f"Expected a mapping at the top of {file_path}")
                return data
        except FileNotFoundError:
            raise ConfigLoadError(f"Configuration file not found: {file_path}")
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {file_path}: {e}")
        except OSError as e:
            raise ConfigLoadError(f"Failed to load {file_path}: {e}")

    def load_library_config(self, file_path: Optional[Path] = None) -> LibraryConfig:
        """
        Load library configuration.

        Falls back to defaults if file not found. Relative paths in the file
        are kept relative to the working directory.
        """
        if file_path is None:
            file_path = self.config_dir / "config" / "library.yaml"

        try:
            if not file_path.exists():
                logger.info(f"Library config not found at {file_path}, using defaults")
                return LibraryConfig()

            data = self.load_yaml(file_path)
            config = LibraryConfig(**data)
            logger.info(f"Loaded library config from {file_path}")
            return config

        except ValidationError as e:
            raise ConfigValidationError(file_path, e) from e
