"""Conversation title derivation from generated notes."""

import re

_HEADING_MARKERS = re.compile(r"^#+\s*")


def derive_title(notes: str | None) -> str:
    """Return the first non-blank line of ``notes`` without markdown heading markers.

    >>> derive_title("\\n# Meeting Recap\\n- item")
    'Meeting Recap'
    """
    if not notes:
        return ""

    for line in notes.splitlines():
        if line.strip():
            return _HEADING_MARKERS.sub("", line.strip()).strip()
    return ""
