"""
Opaque pagination cursors

A cursor is the urlsafe base64 form of ``"<created_at epoch ms>.<id>"`` for
the last item of a page.
"""
import base64
import binascii
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..domain.exceptions import InvalidArgumentError
from ..domain.repositories import CursorPosition

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def encode_cursor(created_at: Optional[datetime], item_id: str) -> str:
    if created_at is None:
        created_at = datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    ms = (created_at - _EPOCH) // _MILLISECOND
    raw = f"{ms}.{item_id}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> CursorPosition:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        ms, item_id = raw.split(".", 1)
        created_at = _EPOCH + int(ms) * _MILLISECOND
    except (binascii.Error, UnicodeError, ValueError, OverflowError, OSError):
        raise InvalidArgumentError("Invalid pagination cursor")

    if not item_id:
        raise InvalidArgumentError("Invalid pagination cursor")
    return CursorPosition(created_at=created_at, id=item_id)
