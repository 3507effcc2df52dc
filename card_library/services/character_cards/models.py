"""
Character Card Data Models
=========================

Pydantic models for the canonical character record, stored artifacts and
import results, plus the transient upload job that drives one import.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, List, Any, Set

from pydantic import BaseModel, Field

from .errors import UnsupportedFormatError

logger = logging.getLogger(__name__)


# ===========================
# Enumerations
# ===========================

class SpecVersion(str, Enum):
    """Generation of the character metadata schema a record came from."""
    V1 = "v1"
    V2 = "v2"
    V3 = "v3"


class SourceFormat(str, Enum):
    """Upload formats accepted by the importer."""
    YAML = "yaml"
    JSON = "json"
    PNG = "png"

    @classmethod
    def parse(cls, value: str) -> "SourceFormat":
        """Parse a declared format string ('yml' is accepted as YAML)."""
        if isinstance(value, cls):
            return value
        normalized = (value or "").strip().lower().lstrip(".")
        if normalized == "yml":
            normalized = "yaml"
        try:
            return cls(normalized)
        except ValueError:
            raise UnsupportedFormatError(f"Unsupported format: {value}")


class JobState(str, Enum):
    """Lifecycle of a single upload job."""
    RECEIVED = "received"
    VALIDATED = "validated"
    NORMALIZED = "normalized"
    IMAGE_RESOLVED = "image_resolved"
    EMBEDDED = "embedded"
    PERSISTED = "persisted"
    FAILED = "failed"


class AvatarStrategy(str, Enum):
    """Which step of the avatar fallback chain produced the image."""
    SOURCE = "source"
    ORIGINAL_CONTAINER = "original_container"
    DEFAULT_AVATAR = "default_avatar"
    BLANK = "blank"


# ===========================
# Canonical Record
# ===========================

class Uploader(BaseModel):
    """Authenticated identity stamped onto every accepted card."""
    handle: str
    display_name: str


class CharacterRecord(BaseModel):
    """Canonical in-memory view of a character card."""
    name: str
    description: str = ""
    personality: str = ""
    scenario: str = ""
    first_message: str = ""
    example_dialogue: str = ""
    creator_notes: str = ""
    tags: Set[str] = Field(default_factory=set)
    spec_version: SpecVersion = SpecVersion.V1
    created_at: str = ""
    uploader: Uploader
    raw_json: str

    def payload(self) -> Dict[str, Any]:
        """Re-parse the canonical JSON payload."""
        return json.loads(self.raw_json)


class CropBox(BaseModel):
    """Crop rectangle applied to an uploaded avatar."""
    x: int = Field(default=0, ge=0)
    y: int = Field(default=0, ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    want_resize: bool = False


# ===========================
# Stored Artifacts
# ===========================

class ContainerArtifact(BaseModel):
    """PNG bytes carrying an embedded character payload."""
    image_bytes: bytes
    keyword: str
    embedded_payload: str  # base64 text as stored in the tEXt chunk


class StoreEntry(BaseModel):
    """A persisted card, decoded fresh from disk."""
    file_name: str
    file_path: Path
    artifact: ContainerArtifact
    record: CharacterRecord
    date_added: float = 0.0


class ListingEntry(BaseModel):
    """
    Best-effort listing row.

    ``record`` is None and ``degraded`` is True when the artifact could not be
    decoded; the remaining fields are then derived from the file name.
    """
    file_name: str
    name: str
    uploader: str = "Unknown"
    uploader_handle: str = "unknown"
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    create_date: str = ""
    date_added: float = 0.0
    record: Optional[CharacterRecord] = None
    degraded: bool = False


# ===========================
# Import DTOs
# ===========================

class CardImportResult(BaseModel):
    """Result of a successful import."""
    file_name: str
    record: CharacterRecord
    source_format: SourceFormat
    avatar_strategy: AvatarStrategy
    warnings: List[str] = Field(default_factory=list)


@dataclass
class AvatarResult:
    """Image produced by the avatar processor and the strategy that produced it."""
    image_bytes: bytes
    strategy: AvatarStrategy
    attempts: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.strategy != AvatarStrategy.SOURCE


@dataclass
class UploadJob:
    """
    One import attempt.

    The job owns ``source_path`` (a transient upload file) and deletes it
    exactly once through ``discard``.
    """
    source_format: str
    source_path: Path
    uploader: Uploader
    preserved_file_name: Optional[str] = None
    crop: Optional[CropBox] = None
    state: JobState = JobState.RECEIVED
    error: Optional[Exception] = None
    _discarded: bool = field(default=False, repr=False)

    def advance(self, state: JobState) -> None:
        logger.debug(f"Upload job {self.source_path.name}: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, error: Exception) -> None:
        self.error = error
        self.advance(JobState.FAILED)

    def read_bytes(self) -> bytes:
        return self.source_path.read_bytes()

    def read_text(self) -> str:
        return self.source_path.read_text(encoding="utf-8-sig")

    def discard(self) -> None:
        """Delete the source temp file. Safe to call more than once."""
        if self._discarded:
            return
        self._discarded = True
        try:
            self.source_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to clean up upload file {self.source_path}: {e}")
