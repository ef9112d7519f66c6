"""Decode the legacy JSON `filter` payload into a SearchFilter.

Structural checks only: anything that is not a JSON object string of acceptable size yields
None. Field-level rules are applied later by the predicate builder.
"""

import json
import logging
from typing import Any

from listing_search.core import get_settings
from listing_search.schemas.search import SearchFilter

logger = logging.getLogger(__name__)


def parse_filter(raw: Any, max_length: int | None = None) -> SearchFilter | None:
    """Return the decoded filter, or None for non-string, oversized, invalid or non-object input."""
    if not raw or not isinstance(raw, str):
        return None
    if max_length is None:
        max_length = get_settings().max_filter_length
    if len(raw) > max_length:
        logger.info("filter_parse: rejected oversized filter | length=%d max=%d", len(raw), max_length)
        return None
    try:
        decoded = json.loads(raw)
    except (ValueError, RecursionError):
        return None
    if not isinstance(decoded, dict):
        return None
    return SearchFilter.from_raw_dict(decoded)


def parse_id_list(raw: Any) -> list[int]:
    """Parse comma-separated or list listing ids; non-numeric entries are dropped."""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else list(raw) if isinstance(raw, (list, tuple)) else []
    ids: list[int] = []
    for part in parts:
        text = str(part).strip()
        if text.isascii() and text.isdigit():
            ids.append(int(text))
    return list(dict.fromkeys(ids))
