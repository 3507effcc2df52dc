"""
Public Character Store
======================

Flat directory of character card PNGs keyed by sanitized name.

Metadata lives only inside each PNG; nothing is cached, so every read decodes
the artifact on disk again.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List

from .errors import CardNotFoundError, CharacterCardError, StoreWriteError
from .format_detector import FormatDetector
from .metadata_handler import PNGMetadataHandler
from .models import ContainerArtifact, ListingEntry, StoreEntry
from .naming import humanized_timestamp
from .schema_normalizer import SchemaNormalizer

logger = logging.getLogger(__name__)


class PublicCharacterStore:
    """Atomic, name-keyed persistence of finished character cards."""

    EXTENSION = ".png"
    TEMP_PREFIX = "."
    TEMP_SUFFIX = ".tmp"

    def __init__(self, root_dir: Path):
        """
        Initialize store.

        Args:
            root_dir: Directory holding the public character cards
        """
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, file_name: str) -> Path:
        """
        Resolve a key to its file path.

        Raises:
            CardNotFoundError: key is empty or would escape the store directory
        """
        key = file_name[:-len(self.EXTENSION)] if file_name.endswith(self.EXTENSION) else file_name
        if not key or key in (".", "..") or "/" in key or "\\" in key or "\x00" in key:
            raise CardNotFoundError(f"Invalid character file name: {file_name!r}")
        return self.root_dir / f"{key}{self.EXTENSION}"

    def exists(self, file_name: str) -> bool:
        try:
            return self.path_for(file_name).is_file()
        except CardNotFoundError:
            return False

    def put(self, file_name: str, image_bytes: bytes) -> Path:
        """
        Write a card atomically, replacing any existing card with the same key.

        The bytes go to a dot-prefixed temp file in the store directory which
        is then renamed over the target, so readers never see partial files.

        Raises:
            StoreWriteError: the file could not be written
        """
        target = self.path_for(file_name)
        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=self.root_dir,
                prefix=self.TEMP_PREFIX,
                suffix=self.TEMP_SUFFIX,
                delete=False,
            ) as tmp:
                temp_path = Path(tmp.name)
                tmp.write(image_bytes)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(temp_path, target)
        except OSError as e:
            logger.error(f"Error saving character card to '{target}': {e}")
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise StoreWriteError(f"Failed to write {target.name}: {e}") from e

        logger.info(f"Saved character card: {target} ({len(image_bytes)} bytes)")
        return target

    def read_bytes(self, file_name: str) -> bytes:
        path = self.path_for(file_name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise CardNotFoundError(f"Character not found: {path.stem}")

    def get(self, file_name: str) -> StoreEntry:
        """
        Load a card and decode its metadata from the PNG.

        Raises:
            CardNotFoundError: no card with this key
            CharacterCardError: the stored PNG cannot be decoded
        """
        path = self.path_for(file_name)
        image_bytes = self.read_bytes(file_name)
        keyword, encoded = PNGMetadataHandler.read_card_chunk(image_bytes)
        raw_json = PNGMetadataHandler.decode(image_bytes)
        payload = FormatDetector.parse_json(raw_json)

        date_added = self._date_added(path)
        record = SchemaNormalizer.read_record(
            payload,
            raw_json,
            fallback_created_at=humanized_timestamp(datetime.fromtimestamp(date_added)),
        )
        return StoreEntry(
            file_name=path.stem,
            file_path=path,
            artifact=ContainerArtifact(image_bytes=image_bytes, keyword=keyword, embedded_payload=encoded),
            record=record,
            date_added=date_added,
        )

    def delete(self, file_name: str) -> None:
        """
        Remove a card. Authorization is the caller's job.

        Raises:
            CardNotFoundError: no card with this key
        """
        path = self.path_for(file_name)
        try:
            path.unlink()
        except FileNotFoundError:
            raise CardNotFoundError(f"Character not found: {path.stem}")
        logger.info(f"Deleted public character: {path.stem}")

    def keys(self) -> List[str]:
        """Keys of all stored cards, sorted; temp files are skipped."""
        return sorted(
            path.stem
            for path in self.root_dir.iterdir()
            if path.is_file()
            and path.suffix == self.EXTENSION
            and not path.name.startswith(self.TEMP_PREFIX)
        )

    def list_all(self) -> List[ListingEntry]:
        """
        Best-effort listing of every card.

        Each card is decoded on its own; a card that fails to decode is listed
        as a degraded stub instead of failing the whole listing.
        """
        return [self._listing_entry(key) for key in self.keys()]

    def avatar_path(self, file_name: str) -> Path:
        """Path of the stored PNG, for serving the image directly."""
        path = self.path_for(file_name)
        if not path.is_file():
            raise CardNotFoundError(f"Avatar not found: {path.name}")
        return path

    def copy_to(self, file_name: str, target_dir: Path) -> Path:
        """Copy a public card into another character directory."""
        source = self.avatar_path(file_name)
        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / source.name
        shutil.copyfile(source, target)
        logger.info(f"Copied public character {source.stem} to {target_dir}")
        return target

    def _listing_entry(self, key: str) -> ListingEntry:
        try:
            entry = self.get(key)
        except (CharacterCardError, OSError) as e:
            logger.error(f"Could not process character: {key}: {e}")
            return ListingEntry(file_name=key, name=key, degraded=True)

        record = entry.record
        return ListingEntry(
            file_name=key,
            name=record.name,
            uploader=record.uploader.display_name,
            uploader_handle=record.uploader.handle,
            description=record.description,
            tags=sorted(record.tags),
            create_date=record.created_at,
            date_added=entry.date_added,
            record=record,
        )

    @staticmethod
    def _date_added(path: Path) -> float:
        return path.stat().st_mtime
