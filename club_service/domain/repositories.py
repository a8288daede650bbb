"""
Repository interfaces - Define contracts for data access
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from .models import AuditLogEntry, Comment, Journey, Post, QuerySnapshot

T = TypeVar("T")


@dataclass(frozen=True)
class CollectionQuery:
    """
    Equality query against one scoped collection, e.g.
    ``CollectionQuery("journeys", club_id).where("slug", "==", slug).limit(1)``
    """
    collection: str
    scope_id: str
    filters: Tuple[Tuple[str, str, Any], ...] = ()
    order: Optional[Tuple[str, str]] = None
    limit_count: Optional[int] = None

    def where(self, field: str, op: str, value: Any) -> "CollectionQuery":
        if op != "==":
            raise ValueError(f"Unsupported query operator: {op}")
        return replace(self, filters=self.filters + ((field, op, value),))

    def order_by(self, field: str, direction: str = "asc") -> "CollectionQuery":
        if direction not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction: {direction}")
        return replace(self, order=(field, direction))

    def limit(self, count: int) -> "CollectionQuery":
        return replace(self, limit_count=count)


@dataclass(frozen=True)
class CursorPosition:
    """Decoded keyset position: the last item's creation time and id"""
    created_at: datetime
    id: str


class ITransaction(ABC):
    """Read/write handle bound to one store transaction"""

    @abstractmethod
    async def get(self, query: CollectionQuery) -> QuerySnapshot:
        """Run a query inside the transaction"""
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create a document inside the transaction"""
        pass

    @abstractmethod
    async def update(self, collection: str, scope_id: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Update fields of a document inside the transaction; no-op outside scope_id"""
        pass

    @abstractmethod
    async def delete(self, collection: str, scope_id: str, doc_id: str) -> None:
        """Delete a document inside the transaction; no-op outside scope_id"""
        pass


class ITransactionRunner(ABC):
    """Runs a callback inside a store transaction, retrying on conflicts"""

    @abstractmethod
    async def run_transaction(self, callback: Callable[[ITransaction], Awaitable[T]]) -> T:
        pass

    @abstractmethod
    def new_id(self) -> str:
        """Allocate a document id before writing"""
        pass


class IPostRepository(ABC):
    """Post repository interface"""

    @abstractmethod
    async def create(self, post: Post) -> Post:
        pass

    @abstractmethod
    async def find_by_id(self, club_id: str, post_id: str) -> Optional[Post]:
        pass

    @abstractmethod
    async def find_visible_page(
        self,
        club_id: str,
        limit: int,
        after: Optional[CursorPosition] = None
    ) -> Tuple[List[Post], List[str]]:
        """
        Find visible posts ordered by created_at desc

        Returns:
            Tuple of (posts, ids of posts with no stored comments_count)
        """
        pass

    @abstractmethod
    async def update_fields(self, club_id: str, post_id: str, fields: Dict[str, Any]) -> bool:
        """Update post fields, returns False when the post does not exist"""
        pass


class ICommentRepository(ABC):
    """Comment repository interface"""

    @abstractmethod
    async def create(self, comment: Comment) -> Comment:
        pass

    @abstractmethod
    async def find_by_id(self, club_id: str, post_id: str, comment_id: str) -> Optional[Comment]:
        pass

    @abstractmethod
    async def find_visible_page(
        self,
        club_id: str,
        post_id: str,
        limit: int,
        after: Optional[CursorPosition] = None
    ) -> List[Comment]:
        pass

    @abstractmethod
    async def count_for_post(self, club_id: str, post_id: str) -> int:
        pass

    @abstractmethod
    async def update_fields(
        self,
        club_id: str,
        post_id: str,
        comment_id: str,
        fields: Dict[str, Any]
    ) -> bool:
        pass


class IAuditLogRepository(ABC):
    """Moderation audit log interface"""

    @abstractmethod
    async def add(self, entry: AuditLogEntry) -> None:
        pass


class IJourneyRepository(ABC):
    """Journey repository interface"""

    @abstractmethod
    async def list_by_club(self, club_id: str) -> List[Journey]:
        """List journeys ordered by their display order"""
        pass

    @abstractmethod
    async def find_missing_slug(self) -> List[Journey]:
        """Find journeys in every club that have no slug yet"""
        pass


class IAccountRepository(ABC):
    """Read access to club and user documents used by the guards"""

    @abstractmethod
    async def find_club(self, club_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def find_user(self, uid: str) -> Optional[Dict[str, Any]]:
        pass
