"""Configuration loading and validation."""

from .models import (
    LibraryConfig,
    PathsConfig,
    AvatarConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "LibraryConfig",
    "PathsConfig",
    "AvatarConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
