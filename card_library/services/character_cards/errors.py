"""
Character Card Errors
=====================

Error kinds raised by the codec, normalizer, importer and store.

Each exception carries a ``kind`` so callers can map failures to a response
without string matching on messages.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure reasons reported to callers."""
    INVALID_CONTAINER_HEADER = "InvalidContainerHeader"
    MALFORMED_CONTAINER = "MalformedContainer"
    NO_TEXT_SEGMENTS = "NoTextSegments"
    NOT_A_CHARACTER_CARD = "NotACharacterCard"
    INVALID_PAYLOAD_JSON = "InvalidPayloadJson"
    MISSING_NAME = "MissingName"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    IMAGE_DECODE_FAILED = "ImageDecodeFailed"
    STORE_WRITE_FAILED = "StoreWriteFailed"
    NOT_FOUND = "NotFound"


class CharacterCardError(Exception):
    """Base exception for character card errors."""

    kind: ErrorKind = ErrorKind.MALFORMED_CONTAINER
    default_message = "Character card error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidContainerHeaderError(CharacterCardError):
    kind = ErrorKind.INVALID_CONTAINER_HEADER
    default_message = "Invalid PNG file header"


class MalformedContainerError(CharacterCardError):
    kind = ErrorKind.MALFORMED_CONTAINER
    default_message = "PNG file structure is malformed"


class NoTextSegmentsError(CharacterCardError):
    kind = ErrorKind.NO_TEXT_SEGMENTS
    default_message = "PNG file does not contain any text chunks (not a character card)"


class NotACharacterCardError(CharacterCardError):
    kind = ErrorKind.NOT_A_CHARACTER_CARD
    default_message = "PNG file does not contain character card data (chara or ccv3 chunks)"


class InvalidPayloadJsonError(CharacterCardError):
    kind = ErrorKind.INVALID_PAYLOAD_JSON
    default_message = "Invalid JSON data in character card"


class MissingNameError(CharacterCardError):
    kind = ErrorKind.MISSING_NAME
    default_message = "Character name not found"


class UnsupportedFormatError(CharacterCardError):
    kind = ErrorKind.UNSUPPORTED_FORMAT
    default_message = "Unsupported character card format"


class ImageDecodeError(CharacterCardError):
    """Raised inside the avatar processor; always recovered by its fallback chain."""
    kind = ErrorKind.IMAGE_DECODE_FAILED
    default_message = "Failed to decode image"


class StoreWriteError(CharacterCardError):
    kind = ErrorKind.STORE_WRITE_FAILED
    default_message = "Failed to write character card"


class CardNotFoundError(CharacterCardError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Character not found"
