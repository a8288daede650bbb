"""
Paginated feed state for one scope (a club's posts, a post's comments)

The store keeps a newest-first list of items, loads further pages on demand
and applies optimistic local changes by id. All state changes happen on the
event loop; a scope change invalidates any fetch still in flight.
"""
import asyncio
import logging
from operator import attrgetter
from typing import Any, Awaitable, Callable, Generic, Hashable, List, Optional, Tuple, TypeVar

from ..config import settings
from ..domain.exceptions import ClubServiceError
from ..domain.models import FeedPage
from ..schemas import CommentResponse, PostResponse
from .community_client import CommunityClient

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

FetchPage = Callable[[K, int, Optional[str]], Awaitable[FeedPage[T]]]


def normalize_identifier(value: Optional[str]) -> Optional[str]:
    trimmed = value.strip() if value else ""
    return trimmed or None


def normalize_pair(value: Optional[Tuple[Optional[str], Optional[str]]]) -> Optional[Tuple[str, str]]:
    if not value:
        return None
    first, second = (normalize_identifier(part) for part in value)
    if not first or not second:
        return None
    return first, second


class PaginatedFeedStore(Generic[K, T]):
    """
    Incrementally loaded, id-deduplicated list of feed items

    Args:
        fetch_page: ``fetch_page(scope_key, page_size, cursor)`` returning a
            FeedPage whose last_visible is echoed back for the next page
        page_size: Items requested per page
        normalize_scope: Maps a raw scope key to a usable one, or None when
            the scope is missing
        missing_context_message: Error shown when the scope is missing
        default_error_message: Error shown for failures without a
            user-facing message
        item_key: Returns the id items are deduplicated by
        enabled: A disabled store tracks its scope but never fetches
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        page_size: int,
        normalize_scope: Callable[[Any], Optional[K]] = normalize_identifier,
        missing_context_message: str = "Missing context.",
        default_error_message: str = "We couldn't load this feed. Please try again.",
        item_key: Callable[[T], Hashable] = attrgetter("id"),
        enabled: bool = True
    ):
        self._fetch_page = fetch_page
        self.page_size = page_size
        self._normalize_scope = normalize_scope
        self.missing_context_message = missing_context_message
        self.default_error_message = default_error_message
        self._key = item_key
        self.enabled = enabled

        self.items: List[T] = []
        self.cursor: Optional[str] = None
        self.has_more = False
        self.is_initial_loading = False
        self.is_loading_more = False
        self.error: Optional[str] = None

        self.scope_key: Optional[K] = None
        self.refresh_token: Any = 0
        self._has_loaded = False
        self._generation = 0
        self._initial_task: Optional[asyncio.Future] = None

    def _is_full_page(self, page: FeedPage[T]) -> bool:
        # A short page means the feed is exhausted, whatever the cursor says
        return len(page.items) == self.page_size and page.last_visible is not None

    def _error_message(self, error: BaseException) -> str:
        if isinstance(error, ClubServiceError) and error.message:
            return error.message
        return self.default_error_message

    def _reset(self, scope_key: Optional[K], refresh_token: Any) -> None:
        self._generation += 1
        if self._initial_task and not self._initial_task.done():
            self._initial_task.cancel()
        self._initial_task = None

        self.scope_key = scope_key
        self.refresh_token = refresh_token
        self._has_loaded = False
        self.items = []
        self.cursor = None
        self.has_more = False
        self.is_initial_loading = False
        self.is_loading_more = False
        self.error = None

    async def set_scope(self, scope_key: Any, refresh_token: Any = 0) -> None:
        """
        Point the store at a scope, rebuilding it if the scope or refresh token changed
        """
        normalized = self._normalize_scope(scope_key)
        changed = normalized != self.scope_key or refresh_token != self.refresh_token
        # Same scope already loaded or loading: no second fetch
        if not changed and (self._has_loaded or self.is_initial_loading):
            return

        if not self.enabled:
            if changed:
                self._reset(normalized, refresh_token)
            return

        await self.load_initial_page(scope_key, refresh_token)

    async def load_initial_page(self, scope_key: Any, refresh_token: Any = None) -> None:
        """Discard current state and fetch the first page for scope_key"""
        normalized = self._normalize_scope(scope_key)
        self._reset(normalized, self.refresh_token if refresh_token is None else refresh_token)

        if not self.enabled:
            return

        if normalized is None:
            self.error = self.missing_context_message
            return

        generation = self._generation
        self.is_initial_loading = True
        task = asyncio.ensure_future(self._fetch_page(normalized, self.page_size, None))
        self._initial_task = task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task.cancelled():
            return
        error = task.exception()
        if generation != self._generation:
            return

        self._initial_task = None
        self.is_initial_loading = False

        if error is not None:
            logger.warning(f"Initial page load failed for scope {normalized}: {error}")
            self.error = self._error_message(error)
            return

        page = task.result()
        self.items = self._merge([], page.items)
        self.cursor = page.last_visible
        self.has_more = self._is_full_page(page)
        self._has_loaded = True

    async def load_more(self) -> None:
        """
        Fetch the page after the held cursor and append unseen items

        Dropped while another load_more is in flight. A failure keeps the
        loaded items, cursor and has_more so the call can simply be retried.
        """
        if (
            not self.enabled
            or self.scope_key is None
            or self.is_loading_more
            or not self.has_more
            or self.cursor is None
        ):
            return

        generation = self._generation
        self.is_loading_more = True
        self.error = None

        try:
            page = await self._fetch_page(self.scope_key, self.page_size, self.cursor)
        except asyncio.CancelledError:
            if generation == self._generation:
                self.is_loading_more = False
            raise
        except Exception as e:
            if generation == self._generation:
                logger.warning(f"Loading more failed for scope {self.scope_key}: {e}")
                self.error = self._error_message(e)
                self.is_loading_more = False
            return

        if generation != self._generation:
            return

        if page.items:
            self.items = self._merge(self.items, page.items)
        self.cursor = page.last_visible
        self.has_more = self._is_full_page(page)
        self.is_loading_more = False

    def _merge(self, existing: List[T], fetched: List[T]) -> List[T]:
        seen = {self._key(item) for item in existing}
        merged = list(existing)
        for item in fetched:
            key = self._key(item)
            if key not in seen:
                seen.add(key)
                merged.append(item)
        return merged

    def prepend_item(self, item: T) -> None:
        """Insert at the head, replacing any entry with the same id"""
        key = self._key(item)
        self.items = [item] + [existing for existing in self.items if self._key(existing) != key]

    def update_item_in_state(self, item: T) -> None:
        """Replace the entry with the same id in place; no-op when absent"""
        key = self._key(item)
        for index, existing in enumerate(self.items):
            if self._key(existing) == key:
                updated = list(self.items)
                updated[index] = item
                self.items = updated
                return

    def remove_item_by_id(self, item_id: Hashable) -> None:
        filtered = [item for item in self.items if self._key(item) != item_id]
        if len(filtered) != len(self.items):
            self.items = filtered


def posts_feed(
    client: CommunityClient,
    page_size: int = settings.POSTS_PAGE_SIZE
) -> PaginatedFeedStore[str, PostResponse]:
    """Feed of a club's posts, scoped by club id"""
    return PaginatedFeedStore(
        client.fetch_posts_page,
        page_size,
        normalize_scope=normalize_identifier,
        missing_context_message="Missing club context.",
        default_error_message="We couldn't load posts for this club. Please try again.",
    )


def comments_feed(
    client: CommunityClient,
    page_size: int = settings.COMMENTS_PAGE_SIZE,
    enabled: bool = True
) -> PaginatedFeedStore[Tuple[str, str], CommentResponse]:
    """Feed of a post's comments, scoped by (club id, post id)"""
    return PaginatedFeedStore(
        client.fetch_comments_page,
        page_size,
        normalize_scope=normalize_pair,
        missing_context_message="Missing club or post context.",
        default_error_message="We couldn't load comments for this post. Please try again.",
        enabled=enabled,
    )
