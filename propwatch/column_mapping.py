import logging
import re
from typing import Dict, List, Optional, Sequence

from rapidfuzz.distance import JaroWinkler

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = [
    ("address", "Property Address"),
    ("postcode", "Postcode"),
    ("client_name", "Client Name"),
    ("status", "Listing Status"),
    ("withdrawn_date", "Withdrawn Date"),
]

FIELD_KEYS = [key for key, _ in REQUIRED_FIELDS]
FIELD_LABELS = dict(REQUIRED_FIELDS)

# shorter headers ("id", "no") would be contained in too many keys
MIN_CONTAINED_HEADER = 3


def _normalize_name(text: str) -> str:
    if not text:
        return ""
    s = re.sub(r"[\s_\-]+", " ", text)
    return s.strip().lower()


def _similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return JaroWinkler.normalized_similarity(a, b)


def empty_mapping() -> Dict[str, Optional[str]]:
    return {key: None for key in FIELD_KEYS}


def match_header(key: str, headers: Sequence[str]) -> Optional[str]:
    """First header equal to the key, else the first containing it, else the
    first (long enough) header the key contains. Case-insensitive, file order."""
    lowered = [(h, h.strip().lower()) for h in headers if h and h.strip()]
    for header, low in lowered:
        if low == key:
            return header
    for header, low in lowered:
        if key in low:
            return header
    for header, low in lowered:
        if len(low) >= MIN_CONTAINED_HEADER and low in key:
            logger.debug("Mapped %s to %r: header is part of the field name", key, header)
            return header
    return None


def auto_map(headers: Sequence[str]) -> Dict[str, Optional[str]]:
    return {key: match_header(key, headers) for key in FIELD_KEYS}


def missing_fields(mapping: Dict[str, Optional[str]]) -> List[str]:
    """Labels of the required fields without a mapped column, in display order."""
    return [label for key, label in REQUIRED_FIELDS if not (mapping.get(key) or "").strip()]


def rank_headers(key: str, headers: Sequence[str], limit: Optional[int] = None) -> List[str]:
    """Headers ordered by similarity to the field, best first, for the mapping picker.

    Ties keep file order. This only orders choices, it never changes auto_map.
    """
    targets = [_normalize_name(key), _normalize_name(FIELD_LABELS.get(key, key))]
    scored = []
    for index, header in enumerate(headers):
        name = _normalize_name(header)
        if not name:
            continue
        score = max(_similarity(name, t) for t in targets)
        scored.append((-score, index, header))
    scored.sort()
    ranked = [header for _, _, header in scored]
    return ranked[:limit] if limit else ranked
