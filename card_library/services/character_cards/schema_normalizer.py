"""
Schema Normalizer
=================

Maps V1, V2 and V3 character payloads to one canonical ``CharacterRecord``.

V1 cards are flat objects. V2/V3 cards wrap their fields in a ``data`` object
and may carry private user notes, which are always scrubbed before a card is
accepted into the public library.
"""

import copy
import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Set

from .errors import MissingNameError
from .format_detector import FormatDetector
from .models import CharacterRecord, SpecVersion, Uploader
from .naming import humanized_timestamp, sanitize_name

logger = logging.getLogger(__name__)

PRIVATE_FIELDS = (
    "user_notes",
    "user_notes_private",
    "user_notes_public",
    "user_notes_private_visible",
    "user_notes_public_visible",
)

# record attribute -> payload keys, first non-empty wins
_FIELD_KEYS = {
    "description": ("description",),
    "personality": ("personality",),
    "scenario": ("scenario",),
    "first_message": ("first_mes",),
    "example_dialogue": ("mes_example",),
    "creator_notes": ("creator_notes", "creatorcomment"),
}


def serialize_payload(payload: Dict[str, Any]) -> str:
    """Compact JSON used for embedding; non-ASCII is kept as-is.

    Values JSON has no type for (dates, binary) are written as their string form.
    """
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def card_name(payload: Dict[str, Any]) -> Optional[str]:
    """Name from ``data.name`` (V2/V3) or the top-level ``name``."""
    data = payload.get("data")
    if isinstance(data, dict) and data.get("name"):
        return str(data["name"])
    name = payload.get("name")
    return str(name) if name else None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_tags(value: Any) -> Set[str]:
    if not value:
        return set()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        return set()
    return {str(tag).strip() for tag in items if str(tag).strip()}


class SchemaNormalizer:
    """Normalize parsed card payloads into canonical records."""

    @staticmethod
    def scrub_private_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Remove private note fields from the top level and the data object."""
        targets = [payload]
        if isinstance(payload.get("data"), dict):
            targets.append(payload["data"])
        for target in targets:
            for key in PRIVATE_FIELDS:
                if key in target:
                    del target[key]
                    logger.debug(f"Removed private field '{key}'")
        return payload

    def normalize(
        self,
        payload: Dict[str, Any],
        uploader: Uploader,
        now: Optional[datetime] = None,
    ) -> CharacterRecord:
        """
        Produce the canonical record for an accepted upload.

        The input dict is not modified. ``create_date``, ``uploader`` and
        ``uploader_handle`` always reflect ``uploader``, whatever the payload
        says.

        Raises:
            UnsupportedFormatError: payload is neither V1 nor a known spec
            MissingNameError: no name survives sanitization
        """
        version = FormatDetector.classify(payload)
        logger.info(f"Importing from {FormatDetector.get_format_name(version)}")

        name = sanitize_name(card_name(payload))
        if not name:
            raise MissingNameError("Character name not found or empty after sanitization")

        canonical = copy.deepcopy(payload)
        if version in (SpecVersion.V2, SpecVersion.V3):
            self.scrub_private_fields(canonical)

        canonical["name"] = name
        canonical["create_date"] = humanized_timestamp(now)
        canonical["uploader"] = uploader.display_name
        canonical["uploader_handle"] = uploader.handle

        return self.read_record(canonical, serialize_payload(canonical), version)

    @staticmethod
    def read_record(
        payload: Dict[str, Any],
        raw_json: str,
        version: Optional[SpecVersion] = None,
        fallback_created_at: str = "",
    ) -> CharacterRecord:
        """
        Build a record view of an already canonical payload (no stamping).

        V2/V3 fields are read from ``data`` first, falling back to the top
        level. The record name is the top-level ``name`` when present.
        """
        version = version or FormatDetector.classify(payload)
        sources = [payload]
        if version != SpecVersion.V1 and isinstance(payload.get("data"), dict):
            sources.insert(0, payload["data"])

        def lookup(keys) -> Any:
            for source in sources:
                for key in keys:
                    if source.get(key):
                        return source[key]
            return None

        values = {attr: _as_text(lookup(keys)) for attr, keys in _FIELD_KEYS.items()}
        name = _as_text(payload.get("name")) or _as_text(card_name(payload))
        if not name:
            raise MissingNameError()

        return CharacterRecord(
            name=name,
            tags=_as_tags(lookup(("tags",))),
            spec_version=version,
            created_at=_as_text(payload.get("create_date")) or fallback_created_at,
            uploader=Uploader(
                handle=_as_text(payload.get("uploader_handle")) or "unknown",
                display_name=_as_text(payload.get("uploader")) or "Unknown",
            ),
            raw_json=raw_json,
            **values,
        )
