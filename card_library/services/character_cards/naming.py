"""File-name safe sanitization for character names and store keys."""

import re
from datetime import datetime
from pathlib import PurePath
from typing import Optional

_ILLEGAL_RE = re.compile(r'[/?<>\\:*|"]')
_CONTROL_RE = re.compile(r'[\x00-\x1f\x80-\x9f]')
_RESERVED_RE = re.compile(r'^\.+$')
_WINDOWS_RESERVED_RE = re.compile(r'^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$', re.IGNORECASE)
_WINDOWS_TRAILING_RE = re.compile(r'[. ]+$')

FILLER = "_"
MAX_KEY_BYTES = 200


def _truncate_utf8(value: str, max_bytes: int) -> str:
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def sanitize_name(name: Optional[str]) -> str:
    """
    Remove characters that are unsafe in a file name.

    Strips path separators, reserved punctuation and control characters, and
    blanks out reserved device names and dot-only names. Printable text such as
    spaces and non-Latin letters is kept.
    """
    if not name:
        return ""
    safe = _ILLEGAL_RE.sub("", str(name))
    safe = _CONTROL_RE.sub("", safe)
    safe = _truncate_utf8(safe, MAX_KEY_BYTES)
    safe = _RESERVED_RE.sub("", safe)
    # trailing dots/spaces go before the device-name check so "con." is caught
    safe = _WINDOWS_TRAILING_RE.sub("", safe)
    return _WINDOWS_RESERVED_RE.sub("", safe)


def sanitize_file_name(name: Optional[str]) -> str:
    """
    Derive a store key from a display name.

    Every character that is not a Unicode letter or digit becomes a single
    ``_``. The result is idempotent under repeated application.
    """
    safe = sanitize_name(name)
    return "".join(ch if ch.isalnum() else FILLER for ch in safe)


def preserved_key(preserved_file_name: Optional[str]) -> Optional[str]:
    """Reduce a caller supplied file name to a sanitized key (stem only)."""
    if not preserved_file_name:
        return None
    stem = PurePath(preserved_file_name.replace("\\", "/")).stem
    return sanitize_file_name(stem) or None


def humanized_timestamp(moment: Optional[datetime] = None) -> str:
    """Format a timestamp as ``2024-5-1 @09h 05m 07s 042ms``."""
    moment = moment or datetime.now()
    return (
        f"{moment.year}-{moment.month}-{moment.day} "
        f"@{moment.hour:02d}h {moment.minute:02d}m {moment.second:02d}s "
        f"{moment.microsecond // 1000:03d}ms"
    )
