"""
Card Format Detector
===================

Classifies card payloads into a schema generation, and classifies PNG decode
failures into a specific error for the caller.
"""

import json
import logging
from typing import Any, Dict

from .errors import (
    CharacterCardError,
    InvalidPayloadJsonError,
    MalformedContainerError,
    NoTextSegmentsError,
    NotACharacterCardError,
    UnsupportedFormatError,
)
from .metadata_handler import PNGMetadataHandler
from .models import SpecVersion

logger = logging.getLogger(__name__)


class FormatDetector:
    """Detect character card schema generation and container failure reasons."""

    SPEC_VERSIONS = {
        "chara_card_v2": SpecVersion.V2,
        "chara_card_v3": SpecVersion.V3,
    }

    @classmethod
    def classify(cls, payload: Dict[str, Any]) -> SpecVersion:
        """
        Classify a parsed payload before any field access.

        A recognized ``spec`` selects V2/V3, ``name`` without ``spec`` selects V1.

        Raises:
            UnsupportedFormatError: neither a recognized spec nor a name
        """
        if not isinstance(payload, dict):
            raise UnsupportedFormatError("Character data is not an object")

        if "spec" in payload:
            spec = payload.get("spec")
            version = cls.SPEC_VERSIONS.get(spec) if isinstance(spec, str) else None
            if version is None:
                raise UnsupportedFormatError(f"Unrecognized character card spec: {spec!r}")
            if "data" in payload and not isinstance(payload["data"], dict):
                raise UnsupportedFormatError(f"{spec} card has a non-object 'data' field")
            return version

        if "name" in payload:
            return SpecVersion.V1

        raise UnsupportedFormatError("Character data has neither 'spec' nor 'name'")

    @staticmethod
    def parse_json(text: str) -> Dict[str, Any]:
        """Parse payload text into an object."""
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidPayloadJsonError(f"Invalid JSON data: {e}")
        if not isinstance(parsed, dict):
            raise InvalidPayloadJsonError("Character JSON is not an object")
        return parsed

    @staticmethod
    def classify_container_failure(png_data: bytes, cause: Exception) -> CharacterCardError:
        """
        Turn a failed decode into the most specific error.

        Runs the diagnostic chunk scan to tell a PNG without text chunks from
        one with unrelated text chunks and from a corrupted card.
        """
        try:
            report = PNGMetadataHandler.inspect(png_data)
        except MalformedContainerError as e:
            logger.warning(f"PNG analysis failed: {e}")
            return MalformedContainerError(f"PNG analysis failed: {e}")

        logger.info(
            f"PNG chunks found: {report.chunk_names}; "
            f"text chunks: {len(report.text_keywords)}"
        )

        if not report.has_text_chunks:
            return NoTextSegmentsError()
        if not report.has_card_chunk:
            return NotACharacterCardError()
        return MalformedContainerError(
            f"PNG file structure is valid but data extraction failed: {cause}"
        )

    @classmethod
    def get_format_name(cls, version: SpecVersion) -> str:
        """Get human-readable format name."""
        names = {
            SpecVersion.V1: "Character Card V1",
            SpecVersion.V2: "Character Card V2",
            SpecVersion.V3: "Character Card V3",
        }
        return names.get(version, "Unknown")
