"""
MongoDB repository implementations
"""
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from ..database import MongoDB
from ..domain.exceptions import ConflictError
from ..domain.models import (
    AuditLogEntry,
    Comment,
    IntentTag,
    Journey,
    Post,
    QuerySnapshot,
)
from ..domain.repositories import (
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


T = TypeVar("T")

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def to_object_id(value: Any) -> Any:
    """Use an ObjectId for ids that look like one, the raw value otherwise"""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _with_string_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def _after_filter(after: Optional[CursorPosition]) -> Dict[str, Any]:
    """Keyset condition for items strictly older than the cursor position"""
    if not after:
        return {}
    return {
        "$or": [
            {"created_at": {"$lt": after.created_at}},
            {"created_at": after.created_at, "_id": {"$lt": to_object_id(after.id)}},
        ]
    }


def _post_from_doc(doc: Dict[str, Any]) -> Post:
    count = doc.get("comments_count")
    return Post(
        id=str(doc["_id"]),
        club_id=doc["club_id"],
        author_id=doc["author_id"],
        content=doc["content"],
        intent_tag=IntentTag(doc.get("intent_tag", IntentTag.OPEN_FOR_DISCUSSION.value)),
        created_at=doc["created_at"],
        updated_at=doc.get("updated_at", doc["created_at"]),
        comments_count=count if isinstance(count, int) else 0,
        flagged=doc.get("flagged", False),
        hidden=doc.get("hidden", False),
    )


def _comment_from_doc(doc: Dict[str, Any]) -> Comment:
    return Comment(
        id=str(doc["_id"]),
        club_id=doc["club_id"],
        post_id=doc["post_id"],
        author_id=doc["author_id"],
        content=doc["content"],
        created_at=doc["created_at"],
        updated_at=doc.get("updated_at", doc["created_at"]),
        flagged=doc.get("flagged", False),
        hidden=doc.get("hidden", False),
    )


def _journey_from_doc(doc: Dict[str, Any]) -> Journey:
    return Journey(
        id=str(doc["_id"]),
        club_id=doc["club_id"],
        title=doc.get("title", ""),
        slug=doc.get("slug") or "",
        order=doc.get("order", 0),
        created_by=doc.get("created_by", ""),
        description=doc.get("description", ""),
        summary=doc.get("summary", ""),
        layer=doc.get("layer", ""),
        emotion_shift=doc.get("emotion_shift", ""),
        is_published=doc.get("is_published", False),
        is_archived=doc.get("is_archived", False),
        estimated_minutes=doc.get("estimated_minutes"),
        thumbnail_url=doc.get("thumbnail_url", ""),
        created_at=doc.get("created_at"),
        updated_at=doc.get("updated_at"),
    )


class MongoTransaction(ITransaction):
    """Transaction handle bound to a Motor client session"""

    def __init__(self, db: AsyncIOMotorDatabase, session: AsyncIOMotorClientSession):
        self.db = db
        self.session = session

    async def get(self, query: CollectionQuery) -> QuerySnapshot:
        filter_doc: Dict[str, Any] = {"club_id": query.scope_id}
        for field, _, value in query.filters:
            filter_doc[field] = to_object_id(value) if field == "_id" else value

        cursor = self.db[query.collection].find(filter_doc, session=self.session)
        if query.order:
            field, direction = query.order
            cursor = cursor.sort(field, DESCENDING if direction == "desc" else ASCENDING)
        if query.limit_count:
            cursor = cursor.limit(query.limit_count)

        docs = await cursor.to_list(length=query.limit_count)
        return QuerySnapshot(docs=[_with_string_id(doc) for doc in docs])

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self.db[collection].insert_one(
            {"_id": to_object_id(doc_id), **data},
            session=self.session
        )

    async def update(self, collection: str, scope_id: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self.db[collection].update_one(
            {"_id": to_object_id(doc_id), "club_id": scope_id},
            {"$set": data},
            session=self.session
        )

    async def delete(self, collection: str, scope_id: str, doc_id: str) -> None:
        await self.db[collection].delete_one(
            {"_id": to_object_id(doc_id), "club_id": scope_id},
            session=self.session
        )


class MongoTransactionRunner(ITransactionRunner):
    """Runs callbacks through ``with_transaction``, which retries transient conflicts"""

    def __init__(self, mongodb: MongoDB):
        self.mongodb = mongodb

    async def run_transaction(self, callback: Callable[[ITransaction], Awaitable[T]]) -> T:
        async with await self.mongodb.client.start_session() as session:
            return await session.with_transaction(
                lambda s: callback(MongoTransaction(self.mongodb.db, s))
            )

    def new_id(self) -> str:
        return str(ObjectId())


class PostRepository(IPostRepository):
    """MongoDB post repository"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.posts

    async def create(self, post: Post) -> Post:
        doc = {
            "club_id": post.club_id,
            "author_id": post.author_id,
            "content": post.content,
            "intent_tag": post.intent_tag.value,
            "comments_count": post.comments_count,
            "flagged": post.flagged,
            "hidden": post.hidden,
            "created_at": post.created_at,
            "updated_at": post.updated_at,
        }
        if post.id:
            doc["_id"] = to_object_id(post.id)

        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("Post already exists")
        post.id = str(result.inserted_id)
        return post

    async def find_by_id(self, club_id: str, post_id: str) -> Optional[Post]:
        doc = await self.collection.find_one({"_id": to_object_id(post_id), "club_id": club_id})
        return _post_from_doc(doc) if doc else None

    async def find_visible_page(
        self,
        club_id: str,
        limit: int,
        after: Optional[CursorPosition] = None
    ) -> Tuple[List[Post], List[str]]:
        query = {"club_id": club_id, "hidden": False, **_after_filter(after)}
        docs = await self.collection.find(query).sort(NEWEST_FIRST).limit(limit).to_list(length=limit)

        missing_counts = [
            str(doc["_id"]) for doc in docs
            if not isinstance(doc.get("comments_count"), int)
        ]
        return [_post_from_doc(doc) for doc in docs], missing_counts

    async def update_fields(self, club_id: str, post_id: str, fields: Dict[str, Any]) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(post_id), "club_id": club_id},
            {"$set": fields}
        )
        return result.matched_count > 0


class CommentRepository(ICommentRepository):
    """MongoDB comment repository"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.comments

    async def create(self, comment: Comment) -> Comment:
        doc = {
            "club_id": comment.club_id,
            "post_id": comment.post_id,
            "author_id": comment.author_id,
            "content": comment.content,
            "flagged": comment.flagged,
            "hidden": comment.hidden,
            "created_at": comment.created_at,
            "updated_at": comment.updated_at,
        }
        if comment.id:
            doc["_id"] = to_object_id(comment.id)

        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("Comment already exists")
        comment.id = str(result.inserted_id)
        return comment

    async def find_by_id(self, club_id: str, post_id: str, comment_id: str) -> Optional[Comment]:
        doc = await self.collection.find_one({
            "_id": to_object_id(comment_id),
            "club_id": club_id,
            "post_id": post_id,
        })
        return _comment_from_doc(doc) if doc else None

    async def find_visible_page(
        self,
        club_id: str,
        post_id: str,
        limit: int,
        after: Optional[CursorPosition] = None
    ) -> List[Comment]:
        query = {"club_id": club_id, "post_id": post_id, "hidden": False, **_after_filter(after)}
        docs = await self.collection.find(query).sort(NEWEST_FIRST).limit(limit).to_list(length=limit)
        return [_comment_from_doc(doc) for doc in docs]

    async def count_for_post(self, club_id: str, post_id: str) -> int:
        return await self.collection.count_documents({"club_id": club_id, "post_id": post_id, "hidden": False})

    async def update_fields(
        self,
        club_id: str,
        post_id: str,
        comment_id: str,
        fields: Dict[str, Any]
    ) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(comment_id), "club_id": club_id, "post_id": post_id},
            {"$set": fields}
        )
        return result.matched_count > 0


class AuditLogRepository(IAuditLogRepository):
    """MongoDB moderation audit log"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.audit_logs

    async def add(self, entry: AuditLogEntry) -> None:
        doc = {
            "club_id": entry.club_id,
            "action": entry.action.value,
            "target_id": entry.target_id,
            "target_type": entry.target_type.value,
            "performed_by": entry.performed_by,
            "created_at": entry.created_at,
        }
        if entry.reason:
            doc["reason"] = entry.reason
        await self.collection.insert_one(doc)


class JourneyRepository(IJourneyRepository):
    """MongoDB journey repository"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.journeys

    async def list_by_club(self, club_id: str) -> List[Journey]:
        docs = await self.collection.find({"club_id": club_id}).sort("order", ASCENDING).to_list(length=None)
        return [_journey_from_doc(doc) for doc in docs]

    async def find_missing_slug(self) -> List[Journey]:
        docs = await self.collection.find({
            "$or": [{"slug": {"$exists": False}}, {"slug": None}, {"slug": {"$regex": r"^\s*$"}}]
        }).to_list(length=None)
        return [_journey_from_doc(doc) for doc in docs]


class AccountRepository(IAccountRepository):
    """Club and user documents"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def find_club(self, club_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.clubs.find_one({"_id": club_id})

    async def find_user(self, uid: str) -> Optional[Dict[str, Any]]:
        return await self.db.users.find_one({"_id": uid})
