"""
Journey slug generation

Slugs are unique per club. The uniqueness check runs on the caller's
transaction so it is consistent with the write that stores the slug.
"""
import logging
import re
import time
import unicodedata

from ..config import settings
from ..domain.exceptions import InvalidArgumentError
from ..domain.repositories import CollectionQuery, ITransaction

logger = logging.getLogger(__name__)

JOURNEYS_COLLECTION = "journeys"

_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")
_REPEATED_HYPHENS = re.compile(r"--+")
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def _timestamp_suffix() -> str:
    return _to_base36(int(time.time() * 1000))


def slugify(title: str) -> str:
    """
    Convert a journey title into a URL-safe slug

    Examples:
        >>> slugify("Crème Brûlée for AI!")
        'creme-brulee-for-ai'
        >>> slugify("!!!")
        'journey'
    """
    normalized = _COMBINING_MARKS.sub("", unicodedata.normalize("NFKD", title.strip()))
    slug = _NON_ALPHANUMERIC.sub("-", normalized.lower()).strip("-")
    slug = _REPEATED_HYPHENS.sub("-", slug)
    # Truncation can expose a hyphen at the cut
    slug = slug[:settings.JOURNEY_SLUG_MAX_LENGTH].strip("-")
    return slug or settings.JOURNEY_SLUG_FALLBACK


async def resolve_unique_slug(tx: ITransaction, club_id: str, desired_slug: str) -> str:
    """
    Find the first free slug among desired_slug, desired_slug-2, desired_slug-3, ...

    Args:
        tx: Transaction the journey will be written in
        club_id: Club whose journeys the slug must be unique within
        desired_slug: Base slug, normally the output of slugify()

    Returns:
        A slug no journey of the club uses yet. After
        JOURNEY_SLUG_MAX_ATTEMPTS collisions a timestamp suffix is used instead
        of the numeric one.
    """
    if not club_id or not club_id.strip():
        raise InvalidArgumentError("Club ID is required to generate a journey slug")

    base_slug = desired_slug or settings.JOURNEY_SLUG_FALLBACK
    journeys = CollectionQuery(JOURNEYS_COLLECTION, club_id)
    candidate = base_slug
    suffix = 2

    for _ in range(settings.JOURNEY_SLUG_MAX_ATTEMPTS):
        snapshot = await tx.get(journeys.where("slug", "==", candidate).limit(1))
        if snapshot.empty:
            return candidate

        candidate = f"{base_slug}-{suffix}"
        suffix += 1

    fallback = f"{base_slug}-{_timestamp_suffix()}"
    logger.warning(
        f"Slug '{base_slug}' collided {settings.JOURNEY_SLUG_MAX_ATTEMPTS} times "
        f"in club {club_id}, using '{fallback}'"
    )
    return fallback


async def resolve_journey_slug(tx: ITransaction, club_id: str, title: str) -> str:
    """Slugify a journey title and make it unique within the club"""
    return await resolve_unique_slug(tx, club_id, slugify(title))
