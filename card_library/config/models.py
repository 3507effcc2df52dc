"""Pydantic models for configuration validation."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

BUNDLED_DEFAULT_AVATAR = Path(__file__).resolve().parent.parent / "resources" / "default_avatar.png"


class PathsConfig(BaseModel):
    """File path configuration."""

    public_characters: Path = Path("data/public_characters")
    uploads: Path = Path("data/uploads")
    default_avatar: Path = BUNDLED_DEFAULT_AVATAR

    @field_validator('public_characters', 'uploads', 'default_avatar')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class AvatarConfig(BaseModel):
    """Avatar image dimensions used when resizing."""

    width: int = Field(default=512, gt=0, le=4096)
    height: int = Field(default=768, gt=0, le=4096)


class LibraryConfig(BaseModel):
    """Top-level card library configuration."""

    model_config = ConfigDict(extra='ignore')

    paths: PathsConfig = Field(default_factory=PathsConfig)
    avatar: AvatarConfig = Field(default_factory=AvatarConfig)
    debug: bool = False
