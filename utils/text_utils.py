"""
Text utilities for catalog names.

Used for submission payloads and every name comparison, so that
"unchanged" and "already taken" are judged on the same canonical form.
"""

import re
from typing import Optional

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_name(text: Optional[str]) -> str:
    """
    Canonicalize a display name.

    - "  Blue   Mug " → "Blue Mug"
    - "Red\\tMug" → "Red Mug"
    - None → ""

    Case is preserved; see name_key() for case-insensitive comparison.

    Args:
        text: Raw name as typed (may be None)

    Returns:
        Trimmed string with internal whitespace runs collapsed to one space
    """
    if not text:
        return ""
    return _WHITESPACE_RUN.sub(" ", text).strip()


def name_key(text: Optional[str]) -> str:
    """Case-insensitive uniqueness key for a name."""
    return normalize_name(text).casefold()
