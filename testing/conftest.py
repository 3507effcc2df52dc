"""Shared fixtures for the character card tests."""

import io
from pathlib import Path

import pytest
from PIL import Image
from PIL.PngImagePlugin import PngInfo

from card_library.services.character_cards import (
    AvatarProcessor,
    CharacterCardImporter,
    PublicCharacterStore,
    Uploader,
)

AVATAR_SIZE = (40, 60)


def make_png(size=(32, 32), color=(200, 30, 30), text_chunks=None) -> bytes:
    """Build a PNG with optional (keyword, text) tEXt chunks."""
    image = Image.new("RGB", size, color=color)
    info = PngInfo()
    for keyword, text in text_chunks or []:
        info.add_text(keyword, text)
    output = io.BytesIO()
    image.save(output, format="PNG", pnginfo=info)
    return output.getvalue()


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def default_avatar_path(tmp_path) -> Path:
    path = tmp_path / "default_avatar.png"
    path.write_bytes(make_png(size=(16, 24), color=(10, 120, 200)))
    return path


@pytest.fixture
def store(tmp_path) -> PublicCharacterStore:
    return PublicCharacterStore(tmp_path / "public_characters")


@pytest.fixture
def processor(default_avatar_path) -> AvatarProcessor:
    return AvatarProcessor(default_avatar_path, width=AVATAR_SIZE[0], height=AVATAR_SIZE[1])


@pytest.fixture
def uploads_dir(tmp_path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def importer(store, processor, uploads_dir) -> CharacterCardImporter:
    return CharacterCardImporter(store, processor, uploads_dir)


@pytest.fixture
def uploader() -> Uploader:
    return Uploader(handle="alice", display_name="Alice")
