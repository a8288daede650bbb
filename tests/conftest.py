from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import pytest
from bson import ObjectId
from jose import jwt

from club_service.config import settings
from club_service.domain.exceptions import ConflictError
from club_service.domain.models import AuditLogEntry, Comment, Journey, Post, QuerySnapshot
from club_service.domain.repositories import (
    CollectionQuery,
    CursorPosition,
    IAccountRepository,
    IAuditLogRepository,
    ICommentRepository,
    IJourneyRepository,
    IPostRepository,
    ITransaction,
    ITransactionRunner,
)


class InMemoryTransaction(ITransaction):
    """Reads and writes straight into a dict of collections"""

    def __init__(self, store: Dict[str, Dict[str, Dict[str, Any]]]):
        self.store = store
        self.queries: List[CollectionQuery] = []
        self.writes: List[Tuple[str, str, str, Dict[str, Any]]] = []

    async def get(self, query: CollectionQuery) -> QuerySnapshot:
        self.queries.append(query)
        docs = []
        for doc_id, doc in self.store.get(query.collection, {}).items():
            if doc.get("club_id") != query.scope_id:
                continue
            row = {"id": doc_id, **doc}
            if all(row.get("id" if field == "_id" else field) == value for field, _, value in query.filters):
                docs.append(row)
        if query.order:
            field, direction = query.order
            docs.sort(key=lambda d: d.get(field), reverse=direction == "desc")
        if query.limit_count:
            docs = docs[:query.limit_count]
        return QuerySnapshot(docs=docs)

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.writes.append(("set", collection, doc_id, data))
        self.store.setdefault(collection, {})[doc_id] = dict(data)

    async def update(self, collection: str, scope_id: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.writes.append(("update", collection, doc_id, data))
        doc = self.store.get(collection, {}).get(doc_id)
        if doc is not None and doc.get("club_id") == scope_id:
            doc.update(data)

    async def delete(self, collection: str, scope_id: str, doc_id: str) -> None:
        self.writes.append(("delete", collection, doc_id, {}))
        docs = self.store.get(collection, {})
        if docs.get(doc_id, {}).get("club_id") == scope_id:
            del docs[doc_id]


class InMemoryRunner(ITransactionRunner):
    def __init__(self, store: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self.store = store if store is not None else {}
        self.transactions: List[InMemoryTransaction] = []

    async def run_transaction(self, callback):
        tx = InMemoryTransaction(self.store)
        self.transactions.append(tx)
        return await callback(tx)

    def new_id(self) -> str:
        return str(ObjectId())


def _stored_time(value):
    # MongoDB keeps datetimes at millisecond precision
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _newest_first(items):
    return sorted(items, key=lambda item: (_stored_time(item.created_at), item.id), reverse=True)


def _after(items, after: Optional[CursorPosition]):
    if not after:
        return items
    return [
        item for item in items
        if _stored_time(item.created_at) < after.created_at
        or (_stored_time(item.created_at) == after.created_at and item.id < after.id)
    ]


class InMemoryPostRepository(IPostRepository):
    def __init__(self):
        self.posts: Dict[str, Post] = {}
        self.missing_counts: set = set()

    async def create(self, post: Post) -> Post:
        post = replace(post, id=post.id or str(ObjectId()))
        if post.id in self.posts:
            raise ConflictError("Post already exists")
        self.posts[post.id] = post
        return post

    async def find_by_id(self, club_id: str, post_id: str) -> Optional[Post]:
        post = self.posts.get(post_id)
        return post if post and post.club_id == club_id else None

    async def find_visible_page(self, club_id, limit, after=None):
        visible = [p for p in self.posts.values() if p.club_id == club_id and not p.hidden]
        page = _after(_newest_first(visible), after)[:limit]
        page = [replace(p, comments_count=0) if p.id in self.missing_counts else p for p in page]
        return page, [p.id for p in page if p.id in self.missing_counts]

    async def update_fields(self, club_id, post_id, fields) -> bool:
        post = await self.find_by_id(club_id, post_id)
        if not post:
            return False
        for key, value in fields.items():
            setattr(post, key, value)
        return True


class InMemoryCommentRepository(ICommentRepository):
    def __init__(self):
        self.comments: Dict[str, Comment] = {}

    async def create(self, comment: Comment) -> Comment:
        comment = replace(comment, id=comment.id or str(ObjectId()))
        if comment.id in self.comments:
            raise ConflictError("Comment already exists")
        self.comments[comment.id] = comment
        return comment

    async def find_by_id(self, club_id, post_id, comment_id) -> Optional[Comment]:
        comment = self.comments.get(comment_id)
        if comment and comment.club_id == club_id and comment.post_id == post_id:
            return comment
        return None

    async def find_visible_page(self, club_id, post_id, limit, after=None) -> List[Comment]:
        visible = [
            c for c in self.comments.values()
            if c.club_id == club_id and c.post_id == post_id and not c.hidden
        ]
        return _after(_newest_first(visible), after)[:limit]

    async def count_for_post(self, club_id, post_id) -> int:
        return len([
            c for c in self.comments.values()
            if c.club_id == club_id and c.post_id == post_id and not c.hidden
        ])

    async def update_fields(self, club_id, post_id, comment_id, fields) -> bool:
        comment = await self.find_by_id(club_id, post_id, comment_id)
        if not comment:
            return False
        for key, value in fields.items():
            setattr(comment, key, value)
        return True


class InMemoryAuditLog(IAuditLogRepository):
    def __init__(self):
        self.entries: List[AuditLogEntry] = []

    async def add(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)


class InMemoryJourneyRepository(IJourneyRepository):
    def __init__(self, journeys: Optional[List[Journey]] = None):
        self.journeys = journeys or []

    async def list_by_club(self, club_id: str) -> List[Journey]:
        return sorted([j for j in self.journeys if j.club_id == club_id], key=lambda j: j.order)

    async def find_missing_slug(self) -> List[Journey]:
        return [j for j in self.journeys if not (j.slug or "").strip()]


class InMemoryAccounts(IAccountRepository):
    def __init__(self, clubs=None, users=None):
        self.clubs = clubs or {}
        self.users = users or {}

    async def find_club(self, club_id):
        return self.clubs.get(club_id)

    async def find_user(self, uid):
        return self.users.get(uid)


class RecordingEvents:
    """Stands in for the Kafka producer"""

    def __init__(self, available: bool = True):
        self.available = available
        self.published: List[Tuple[str, Dict[str, Any]]] = []

    async def publish_post_created(self, club_id, post_id, author_id) -> bool:
        self.published.append(("post_created", {"club_id": club_id, "post_id": post_id}))
        return self.available

    async def publish_comment_written(self, club_id, post_id, comment_id, before, after) -> bool:
        self.published.append(("comment_written", {
            "club_id": club_id,
            "post_id": post_id,
            "comment_id": comment_id,
            "before": before,
            "after": after,
        }))
        return self.available


def make_token(uid: str = "user-1", **claims) -> str:
    return jwt.encode({"sub": uid, **claims}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def store():
    return {}


@pytest.fixture
def runner(store):
    return InMemoryRunner(store)


@pytest.fixture
def accounts():
    return InMemoryAccounts(
        clubs={
            "club-1": {"_id": "club-1", "name": "Book Club", "host_id": "host-1"},
            "club-2": {"_id": "club-2", "name": "Run Club", "host_id": "host-2"},
        },
        users={
            "host-1": {"_id": "host-1", "host_status": {"enabled": True}, "roles": {"host": True}},
            "host-2": {"_id": "host-2", "host_status": {"enabled": False}},
            "member-1": {"_id": "member-1", "clubs_joined": ["club-1"]},
            "outsider": {"_id": "outsider", "clubs_joined": ["club-2"]},
            "admin-1": {"_id": "admin-1", "email": "Admin@Example.com", "roles": {"admin": True}},
        },
    )
