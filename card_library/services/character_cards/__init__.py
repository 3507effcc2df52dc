"""
Character Card System
====================

Character metadata embedded in PNG images as base64-encoded JSON tEXt chunks.

Supports:
- V1 (flat), V2 (chara_card_v2) and V3 (chara_card_v3) card payloads
- Import from YAML, JSON and PNG uploads
- Atomic, name-keyed public card storage
"""

from .avatar_processor import AvatarProcessor
from .card_importer import CharacterCardImporter
from .errors import (
    ErrorKind,
    CharacterCardError,
    InvalidContainerHeaderError,
    MalformedContainerError,
    NoTextSegmentsError,
    NotACharacterCardError,
    InvalidPayloadJsonError,
    MissingNameError,
    UnsupportedFormatError,
    ImageDecodeError,
    StoreWriteError,
    CardNotFoundError,
)
from .format_detector import FormatDetector
from .metadata_handler import PNGMetadataHandler
from .models import (
    AvatarStrategy,
    CardImportResult,
    CharacterRecord,
    CropBox,
    ListingEntry,
    SourceFormat,
    SpecVersion,
    StoreEntry,
    Uploader,
)
from .naming import sanitize_file_name, sanitize_name
from .public_store import PublicCharacterStore
from .schema_normalizer import SchemaNormalizer

__all__ = [
    'AvatarProcessor',
    'CharacterCardImporter',
    'FormatDetector',
    'PNGMetadataHandler',
    'PublicCharacterStore',
    'SchemaNormalizer',
    'ErrorKind',
    'CharacterCardError',
    'InvalidContainerHeaderError',
    'MalformedContainerError',
    'NoTextSegmentsError',
    'NotACharacterCardError',
    'InvalidPayloadJsonError',
    'MissingNameError',
    'UnsupportedFormatError',
    'ImageDecodeError',
    'StoreWriteError',
    'CardNotFoundError',
    'AvatarStrategy',
    'CardImportResult',
    'CharacterRecord',
    'CropBox',
    'ListingEntry',
    'SourceFormat',
    'SpecVersion',
    'StoreEntry',
    'Uploader',
    'sanitize_file_name',
    'sanitize_name',
]
