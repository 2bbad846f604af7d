"""
Canonical normalizer for interview location labels.

Labels arrive from config forms and from upstream extraction with arbitrary
spacing and casing ("  providencia ", "PROVIDENCIA"). Both sides must be
normalized the same way or the unique slot constraints silently stop
matching.
"""
import re
from typing import Iterable, Optional


def normalize_location_label(label: Optional[str]) -> Optional[str]:
    """
    Collapse whitespace and title-case each word.

    - None / "" / "   " -> None
    - "  las   condes " -> "Las Condes"
    """
    if label is None:
        return None
    collapsed = re.sub(r"\s+", " ", str(label)).strip()
    if not collapsed:
        return None
    return " ".join(word[:1].upper() + word[1:] for word in collapsed.split(" "))


def match_location_label(label: Optional[str], known_labels: Iterable[str]) -> Optional[str]:
    """Return the configured label matching `label` case-insensitively, or None."""
    normalized = normalize_location_label(label)
    if normalized is None:
        return None
    for known in known_labels:
        if known.lower() == normalized.lower():
            return known
    return None
