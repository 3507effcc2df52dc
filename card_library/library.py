"""Public card library: the entry point HTTP handlers and the CLI call into."""

import logging
from pathlib import Path
from typing import List, Optional, Union

from .config import LibraryConfig
from .services.character_cards import (
    AvatarProcessor,
    CardImportResult,
    CharacterCardImporter,
    CropBox,
    ListingEntry,
    PublicCharacterStore,
    SourceFormat,
    StoreEntry,
    Uploader,
)

logger = logging.getLogger(__name__)


class CardLibrary:
    """Wires the store, avatar processor and importer together."""

    def __init__(self, store: PublicCharacterStore, importer: CharacterCardImporter):
        self.store = store
        self.importer = importer

    @classmethod
    def from_config(cls, config: LibraryConfig) -> "CardLibrary":
        store = PublicCharacterStore(config.paths.public_characters)
        processor = AvatarProcessor(
            config.paths.default_avatar,
            width=config.avatar.width,
            height=config.avatar.height,
        )
        if not processor.default_avatar_path.is_file():
            logger.warning(f"Default avatar not found: {processor.default_avatar_path}")
        importer = CharacterCardImporter(store, processor, config.paths.uploads)
        logger.info(f"Card library ready at {store.root_dir}")
        return cls(store, importer)

    def import_card(
        self,
        source_format: Union[str, SourceFormat],
        source: Union[bytes, Path, str],
        uploader_handle: str,
        uploader_display_name: str,
        preserved_file_name: Optional[str] = None,
        crop: Optional[CropBox] = None,
    ) -> CardImportResult:
        uploader = Uploader(handle=uploader_handle, display_name=uploader_display_name)
        return self.importer.import_card(
            source_format,
            source,
            uploader,
            preserved_file_name=preserved_file_name,
            crop=crop,
        )

    def get(self, file_name: str) -> StoreEntry:
        return self.store.get(file_name)

    def delete(self, file_name: str) -> None:
        self.store.delete(file_name)

    def list_all(self) -> List[ListingEntry]:
        return self.store.list_all()
