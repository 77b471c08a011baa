"""Shared validation functions for all entry points.

Pure functions — no FastAPI or Click dependencies.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

_PACK_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")
_MAX_CHOICE_KEY_LENGTH = 128


def sanitize_pack_id(value: Any) -> tuple[str, str | None]:
    """Validate a pack id used to build a file path or URL.

    Returns (cleaned_id, None) on success or ("", error_message) on failure.
    """
    if not isinstance(value, str):
        return ("", "pack id must be a string")
    cleaned = value.strip()
    if not cleaned:
        return ("", "pack id must not be empty")
    if ".." in cleaned or not _PACK_ID_PATTERN.match(cleaned):
        return ("", f"invalid pack id '{cleaned}': must match ^[A-Za-z0-9][A-Za-z0-9_.-]{{0,63}}$ without '..'")
    return (cleaned, None)


def sanitize_choice_key(value: Any) -> tuple[str, str | None]:
    """Validate a choice key received from a renderer.

    Returns (cleaned_key, None) on success or ("", error_message) on failure.
    """
    if not isinstance(value, str):
        return ("", "choice must be a string")
    # Checked before strip(): "\nyes" is rejected, not trimmed to "yes".
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            return ("", f"choice must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "choice must not be empty")
    if len(cleaned) > _MAX_CHOICE_KEY_LENGTH:
        return ("", f"choice must be at most {_MAX_CHOICE_KEY_LENGTH} characters")
    return (cleaned, None)
