from .slugs import resolve_journey_slug, resolve_unique_slug, slugify
from .cursors import decode_cursor, encode_cursor


__all__ = [
    # slugs.py
    "slugify",
    "resolve_unique_slug",
    "resolve_journey_slug",
    # cursors.py
    "encode_cursor",
    "decode_cursor",
]
