"""
Application services - Business logic layer
"""
import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import settings
from ..domain.exceptions import ConflictError, GuardError, InvalidArgumentError, NotFoundError
from ..domain.models import (
    AuditAction,
    AuditLogEntry,
    AuditTargetType,
    Comment,
    FeedPage,
    IntentTag,
    Journey,
    Post,
)
from ..domain.repositories import (
    CollectionQuery,
    IAuditLogRepository,
    ICommentRepository,
    IJourneyRepository,
    IPostRepository,
    ITransaction,
    ITransactionRunner,
)
from ..kafka_producer import KafkaProducerManager
from .cursors import decode_cursor, encode_cursor
from .slugs import JOURNEYS_COLLECTION, resolve_journey_slug

logger = logging.getLogger(__name__)

POSTS_COLLECTION = "posts"
LESSONS_COLLECTION = "lessons"
JOURNEY_FIELDS = frozenset({
    "title", "description", "summary", "layer", "emotion_shift", "is_published",
    "is_archived", "estimated_minutes", "order", "thumbnail_url",
})
INITIAL_COMMENTS_COUNT = 0


def _now() -> datetime:
    return datetime.now(timezone.utc)


def trim_or_raise(value: Optional[str], field: str) -> str:
    if not value or not value.strip():
        raise InvalidArgumentError(f"{field} is required")
    return value.strip()


def sanitize_content(value: Optional[str], max_length: int, field: str = "content") -> str:
    trimmed = trim_or_raise(value, field)
    if len(trimmed) > max_length:
        raise InvalidArgumentError(f"{field} must be {max_length} characters or fewer")
    return trimmed


def sanitize_limit(value: Optional[float]) -> int:
    """Clamp a requested page size into [MIN_PAGE_LIMIT, MAX_PAGE_LIMIT]"""
    if not value:
        value = settings.DEFAULT_PAGE_LIMIT
    if not math.isfinite(value):
        raise InvalidArgumentError("limit must be a finite number")
    if value < settings.MIN_PAGE_LIMIT:
        return settings.MIN_PAGE_LIMIT
    if value > settings.MAX_PAGE_LIMIT:
        return settings.MAX_PAGE_LIMIT
    return math.floor(value)


def is_visible(comment: Optional[Dict[str, Any]]) -> bool:
    return bool(comment) and comment.get("hidden") is not True


def comment_count_delta(
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]]
) -> int:
    """
    Change to a post's comments_count caused by one comment write

    ``before``/``after`` are the comment's state around the write, ``None``
    when the comment did not exist.
    """
    return int(is_visible(after)) - int(is_visible(before))


class CommentCountUpdater:
    """Keeps comments_count on posts in sync with visible comments"""

    def __init__(self, runner: ITransactionRunner):
        self.runner = runner

    async def apply(self, club_id: str, post_id: str, delta: int) -> Optional[int]:
        """
        Apply a comment count delta inside a transaction

        Returns:
            The new count, or None when nothing was written
        """
        if delta == 0:
            return None

        async def _apply(tx: ITransaction) -> Optional[int]:
            query = CollectionQuery(POSTS_COLLECTION, club_id).where("_id", "==", post_id).limit(1)
            snapshot = await tx.get(query)
            if snapshot.empty:
                logger.warning(f"Post {post_id} missing in club {club_id} for comment count update")
                return None

            current = int(snapshot.docs[0].get("comments_count") or 0)
            next_count = max(0, current + delta)
            await tx.update(POSTS_COLLECTION, club_id, post_id, {
                "comments_count": next_count,
                "updated_at": _now(),
            })
            return next_count

        return await self.runner.run_transaction(_apply)


class CommunityService:
    """Club community posts and comments"""

    def __init__(
        self,
        post_repository: IPostRepository,
        comment_repository: ICommentRepository,
        audit_repository: IAuditLogRepository,
        comment_counter: CommentCountUpdater,
        events: Optional[KafkaProducerManager] = None
    ):
        self.post_repo = post_repository
        self.comment_repo = comment_repository
        self.audit_repo = audit_repository
        self.comment_counter = comment_counter
        self.events = events

    # Posts

    async def create_post(
        self,
        club_id: str,
        author_id: str,
        content: str,
        intent_tag: IntentTag,
        post_id: Optional[str] = None
    ) -> Post:
        """
        Create a community post

        Args:
            post_id: Optional id allocated by the client so an optimistic copy
                of the post can be reconciled by id
        """
        club_id = trim_or_raise(club_id, "clubId")
        author_id = trim_or_raise(author_id, "authorId")
        content = sanitize_content(content, settings.MAX_POST_LENGTH)

        now = _now()
        post = Post(
            id=post_id or "",
            club_id=club_id,
            author_id=author_id,
            content=content,
            intent_tag=IntentTag(intent_tag),
            created_at=now,
            updated_at=now,
            comments_count=INITIAL_COMMENTS_COUNT,
        )

        try:
            post = await self.post_repo.create(post)
        except ConflictError:
            existing = await self.post_repo.find_by_id(club_id, post.id)
            if not self._is_retry(existing, author_id):
                logger.warning(f"Post id {post.id} in club {club_id} is already taken")
                raise
            logger.info(f"Post {post.id} was already created in club {club_id}")
            return existing
        except Exception as e:
            logger.error(f"Failed to create post in club {club_id} for author {author_id}: {e}")
            raise

        logger.info(f"Post {post.id} created in club {club_id}")
        if self.events:
            await self.events.publish_post_created(club_id, post.id, author_id)
        return post

    async def get_post(self, club_id: str, post_id: str) -> Post:
        post = await self.post_repo.find_by_id(club_id, post_id)
        if not post or post.hidden:
            raise NotFoundError("Post not found")
        return post

    async def fetch_posts_paginated(
        self,
        club_id: str,
        limit: Optional[float],
        cursor: Optional[str] = None
    ) -> FeedPage[Post]:
        """
        Fetch visible posts ordered by latest creation date

        Args:
            club_id: Club ID
            limit: Requested page size, clamped to MAX_PAGE_LIMIT
            cursor: last_visible of the previous page

        Returns:
            FeedPage whose last_visible is None when the page is empty
        """
        club_id = trim_or_raise(club_id, "clubId")
        page_limit = sanitize_limit(limit)
        after = decode_cursor(cursor) if cursor else None

        try:
            posts, missing_counts = await self.post_repo.find_visible_page(club_id, page_limit, after)
        except Exception as e:
            logger.error(f"Failed to fetch posts for club {club_id}: {e}")
            raise

        if missing_counts:
            missing = set(missing_counts)
            await asyncio.gather(*[
                self._fill_comment_count(post) for post in posts if post.id in missing
            ])

        last_visible = encode_cursor(posts[-1].created_at, posts[-1].id) if posts else None
        return FeedPage(items=posts, last_visible=last_visible)

    async def _fill_comment_count(self, post: Post) -> None:
        try:
            post.comments_count = await self.comment_repo.count_for_post(post.club_id, post.id)
        except Exception as e:
            logger.error(f"Failed to count comments for post {post.id} in club {post.club_id}: {e}")

    async def update_post_content(
        self,
        club_id: str,
        post_id: str,
        actor_id: str,
        content: str,
        intent_tag: Optional[IntentTag] = None,
        is_host: bool = False
    ) -> Post:
        club_id = trim_or_raise(club_id, "clubId")
        post_id = trim_or_raise(post_id, "postId")
        actor_id = trim_or_raise(actor_id, "actorId")
        content = sanitize_content(content, settings.MAX_POST_LENGTH)

        post = await self.get_post(club_id, post_id)
        self._ensure_can_moderate(actor_id, post.author_id, is_host)

        updates: Dict[str, Any] = {"content": content, "updated_at": _now()}
        if intent_tag:
            updates["intent_tag"] = IntentTag(intent_tag).value

        try:
            await self.post_repo.update_fields(club_id, post_id, updates)
            logger.info(f"Post updated {post_id}")
            await self._log_audit_action(club_id, post_id, AuditTargetType.POST, actor_id, AuditAction.EDIT)
        except Exception as e:
            logger.error(f"Failed to update post {post_id} in club {club_id} by {actor_id}: {e}")
            raise

        post.content = content
        post.updated_at = updates["updated_at"]
        if intent_tag:
            post.intent_tag = IntentTag(intent_tag)
        return post

    async def soft_delete_post(
        self,
        club_id: str,
        post_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        mode: AuditAction = AuditAction.DELETE,
        is_host: bool = False
    ) -> None:
        """Hide a post from the feed, recording a delete or hide audit entry"""
        club_id = trim_or_raise(club_id, "clubId")
        post_id = trim_or_raise(post_id, "postId")
        actor_id = trim_or_raise(actor_id, "actorId")
        mode = self._visibility_action(mode)

        post = await self.get_post(club_id, post_id)
        self._ensure_can_moderate(actor_id, post.author_id, is_host)

        try:
            await self.post_repo.update_fields(club_id, post_id, {"hidden": True, "updated_at": _now()})
            logger.info(f"Post {'hidden' if mode == AuditAction.HIDE else 'deleted'} {post_id}")
            await self._log_audit_action(club_id, post_id, AuditTargetType.POST, actor_id, mode, reason)
        except Exception as e:
            logger.error(f"Failed to {mode.value} post {post_id} in club {club_id} by {actor_id}: {e}")
            raise

    # Comments

    async def create_comment(
        self,
        club_id: str,
        post_id: str,
        author_id: str,
        content: str,
        comment_id: Optional[str] = None
    ) -> Comment:
        club_id = trim_or_raise(club_id, "clubId")
        post_id = trim_or_raise(post_id, "postId")
        author_id = trim_or_raise(author_id, "authorId")
        content = sanitize_content(content, settings.MAX_COMMENT_LENGTH)

        await self.get_post(club_id, post_id)

        now = _now()
        comment = Comment(
            id=comment_id or "",
            club_id=club_id,
            post_id=post_id,
            author_id=author_id,
            content=content,
            created_at=now,
            updated_at=now,
        )

        try:
            comment = await self.comment_repo.create(comment)
        except ConflictError:
            existing = await self.comment_repo.find_by_id(club_id, post_id, comment.id)
            if not self._is_retry(existing, author_id):
                logger.warning(f"Comment id {comment.id} on post {post_id} is already taken")
                raise
            logger.info(f"Comment {comment.id} was already created on post {post_id}")
            return existing
        except Exception as e:
            logger.error(f"Failed to create comment on post {post_id} in club {club_id}: {e}")
            raise

        logger.info(f"Comment {comment.id} created on post {post_id}")
        await self._comment_written(club_id, post_id, comment.id, None, {"hidden": False})
        return comment

    async def fetch_comments_paginated(
        self,
        club_id: str,
        post_id: str,
        limit: Optional[float],
        cursor: Optional[str] = None
    ) -> FeedPage[Comment]:
        club_id = trim_or_raise(club_id, "clubId")
        post_id = trim_or_raise(post_id, "postId")
        page_limit = sanitize_limit(limit)
        after = decode_cursor(cursor) if cursor else None

        try:
            comments = await self.comment_repo.find_visible_page(club_id, post_id, page_limit, after)
        except Exception as e:
            logger.error(f"Failed to fetch comments for post {post_id} in club {club_id}: {e}")
            raise

        last_visible = encode_cursor(comments[-1].created_at, comments[-1].id) if comments else None
        return FeedPage(items=comments, last_visible=last_visible)

    async def update_comment(
        self,
        club_id: str,
        post_id: str,
        comment_id: str,
        actor_id: str,
        content: str,
        is_host: bool = False
    ) -> Comment:
        club_id = trim_or_raise(club_id, "clubId")
        post_id = trim_or_raise(post_id, "postId")
        comment_id = trim_or_raise(comment_id, "commentId")
        actor_id = trim_or_raise(actor_id, "actorId")
        content = sanitize_content(content, settings.MAX_COMMENT_LENGTH)

        comment = await self._get_comment(club_id, post_id, comment_id)
        self._ensure_can_moderate(actor_id, comment.author_id, is_host)

        updated_at = _now()
        try:
            await self.comment_repo.update_fields(club_id, post_id, comment_id, {
                "content": content,
                "updated_at": updated_at,
            })
            logger.info(f"Comment updated {comment_id}")
            await self._log_audit_action(club_id, comment_id, AuditTargetType.COMMENT, actor_id, AuditAction.EDIT)
        except Exception as e:
            logger.error(f"Failed to update comment {comment_id} on post {post_id} by {actor_id}: {e}")
            raise

        comment.content = content
        comment.updated_at = updated_at
        return comment

    async def soft_delete_comment(
        self,
        club_id: str,
        post_id: str,
        comment_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        mode: AuditAction = AuditAction.DELETE,
        is_host: bool = False
    ) -> None:
        club_id = trim_or_raise(club_id, "clubId")
        post_id = trim_or_raise(post_id, "postId")
        comment_id = trim_or_raise(comment_id, "commentId")
        actor_id = trim_or_raise(actor_id, "actorId")
        mode = self._visibility_action(mode)

        comment = await self._get_comment(club_id, post_id, comment_id)
        self._ensure_can_moderate(actor_id, comment.author_id, is_host)

        try:
            await self.comment_repo.update_fields(club_id, post_id, comment_id, {
                "hidden": True,
                "updated_at": _now(),
            })
            logger.info(f"Comment {'hidden' if mode == AuditAction.HIDE else 'deleted'} {comment_id}")
            await self._log_audit_action(club_id, comment_id, AuditTargetType.COMMENT, actor_id, mode, reason)
        except Exception as e:
            logger.error(f"Failed to {mode.value} comment {comment_id} on post {post_id} by {actor_id}: {e}")
            raise

        await self._comment_written(club_id, post_id, comment_id, {"hidden": False}, {"hidden": True})

    async def _get_comment(self, club_id: str, post_id: str, comment_id: str) -> Comment:
        comment = await self.comment_repo.find_by_id(club_id, post_id, comment_id)
        if not comment or comment.hidden:
            raise NotFoundError("Comment not found")
        return comment

    async def _comment_written(
        self,
        club_id: str,
        post_id: str,
        comment_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]]
    ) -> None:
        """Hand the count update to the event consumer, or apply it here when Kafka is unavailable"""
        if self.events and await self.events.publish_comment_written(
            club_id, post_id, comment_id, before, after
        ):
            return
        await self.comment_counter.apply(club_id, post_id, comment_count_delta(before, after))

    # Moderation

    @staticmethod
    def _visibility_action(mode: AuditAction) -> AuditAction:
        mode = AuditAction(mode)
        if mode not in (AuditAction.DELETE, AuditAction.HIDE):
            raise InvalidArgumentError("mode must be 'delete' or 'hide'")
        return mode

    @staticmethod
    def _is_retry(existing, author_id: str) -> bool:
        # A client-chosen id repeated by its own author for an item still visible
        return existing is not None and not existing.hidden and existing.author_id == author_id

    @staticmethod
    def _ensure_can_moderate(actor_id: str, author_id: str, is_host: bool) -> None:
        if actor_id != author_id and not is_host:
            raise GuardError("Only the author or the club host can change this")

    async def _log_audit_action(
        self,
        club_id: str,
        target_id: str,
        target_type: AuditTargetType,
        performed_by: str,
        action: AuditAction,
        reason: Optional[str] = None
    ) -> None:
        entry = AuditLogEntry(
            club_id=club_id,
            action=action,
            target_id=target_id,
            target_type=target_type,
            performed_by=performed_by,
            created_at=_now(),
            reason=reason.strip() if reason and reason.strip() else None,
        )

        try:
            await self.audit_repo.add(entry)
        except Exception as e:
            logger.error(
                f"Failed to record {action.value} of {target_type.value} {target_id} in club {club_id}: {e}"
            )
            raise


class JourneyService:
    """Club journeys"""

    def __init__(self, runner: ITransactionRunner, journey_repository: IJourneyRepository):
        self.runner = runner
        self.journey_repo = journey_repository

    async def list_journeys(self, club_id: str) -> List[Journey]:
        return await self.journey_repo.list_by_club(trim_or_raise(club_id, "clubId"))

    async def create_journey(self, club_id: str, uid: str, data: Dict[str, Any]) -> Journey:
        """
        Create a journey with a slug that is unique within the club

        The order lookup, slug resolution and insert share one transaction;
        a conflicting concurrent create makes the store re-run all three.
        """
        club_id = trim_or_raise(club_id, "clubId")
        journey_id = self.runner.new_id()

        async def _create(tx: ITransaction) -> Journey:
            order = data.get("order")
            if order is None:
                order = await self._next_order(tx, club_id)

            slug = await resolve_journey_slug(tx, club_id, data["title"])
            now = _now()
            journey = Journey(
                id=journey_id,
                club_id=club_id,
                title=data["title"],
                slug=slug,
                order=order,
                created_by=uid,
                description=data.get("description") or "",
                summary=data.get("summary") or "",
                layer=data.get("layer") or "",
                emotion_shift=data.get("emotion_shift") or "",
                is_published=bool(data.get("is_published", False)),
                is_archived=bool(data.get("is_archived", False)),
                estimated_minutes=data.get("estimated_minutes"),
                thumbnail_url=data.get("thumbnail_url") or "",
                created_at=now,
                updated_at=now,
            )
            await tx.set(JOURNEYS_COLLECTION, journey_id, journey_document(journey))
            return journey

        journey = await self.runner.run_transaction(_create)
        logger.info(f"Journey {journey.id} created in club {club_id} with slug '{journey.slug}'")
        return journey

    async def update_journey(self, club_id: str, journey_id: str, data: Dict[str, Any]) -> Journey:
        """
        Update the given journey fields

        The slug stays as created so links to the journey keep working
        after a title change.
        """
        club_id = trim_or_raise(club_id, "clubId")
        journey_id = trim_or_raise(journey_id, "journeyId")
        updates = {key: value for key, value in data.items() if value is not None and key in JOURNEY_FIELDS}
        if not updates:
            raise InvalidArgumentError("At least one field must be provided.")
        if "title" in updates:
            updates["title"] = trim_or_raise(updates["title"], "title")

        async def _update(tx: ITransaction) -> Journey:
            doc = await self._get_journey_doc(tx, club_id, journey_id)
            updates["updated_at"] = _now()
            await tx.update(JOURNEYS_COLLECTION, club_id, journey_id, updates)
            return journey_from_document({**doc, **updates})

        journey = await self.runner.run_transaction(_update)
        logger.info(f"Journey {journey_id} in club {club_id} updated: {sorted(updates)}")
        return journey

    async def delete_journey(self, club_id: str, journey_id: str) -> int:
        """
        Delete a journey together with its lessons

        Returns:
            Number of lessons deleted
        """
        club_id = trim_or_raise(club_id, "clubId")
        journey_id = trim_or_raise(journey_id, "journeyId")

        async def _delete(tx: ITransaction) -> int:
            await self._get_journey_doc(tx, club_id, journey_id)
            lessons = await tx.get(CollectionQuery(LESSONS_COLLECTION, club_id).where("journey_id", "==", journey_id))
            for lesson in lessons.docs:
                await tx.delete(LESSONS_COLLECTION, club_id, lesson["id"])
            await tx.delete(JOURNEYS_COLLECTION, club_id, journey_id)
            return len(lessons.docs)

        deleted_lessons = await self.runner.run_transaction(_delete)
        logger.info(f"Journey {journey_id} deleted from club {club_id} with {deleted_lessons} lessons")
        return deleted_lessons

    async def reorder_journeys(self, club_id: str, journey_ids: List[str]) -> None:
        """Set each journey's order to its position in journey_ids"""
        club_id = trim_or_raise(club_id, "clubId")
        journey_ids = [trim_or_raise(journey_id, "journeyId") for journey_id in journey_ids or []]
        if not journey_ids:
            raise InvalidArgumentError("journeyIds is required")
        if len(set(journey_ids)) != len(journey_ids):
            raise InvalidArgumentError("Journey IDs must be unique.")

        async def _reorder(tx: ITransaction) -> None:
            # Every id must exist before any order is written
            for journey_id in journey_ids:
                await self._get_journey_doc(tx, club_id, journey_id)
            now = _now()
            for index, journey_id in enumerate(journey_ids):
                await tx.update(JOURNEYS_COLLECTION, club_id, journey_id, {"order": index, "updated_at": now})

        await self.runner.run_transaction(_reorder)
        logger.info(f"Reordered {len(journey_ids)} journeys in club {club_id}")

    @staticmethod
    async def _get_journey_doc(tx: ITransaction, club_id: str, journey_id: str) -> Dict[str, Any]:
        query = CollectionQuery(JOURNEYS_COLLECTION, club_id).where("_id", "==", journey_id).limit(1)
        snapshot = await tx.get(query)
        if snapshot.empty:
            raise NotFoundError("Journey not found")
        return snapshot.docs[0]

    @staticmethod
    async def _next_order(tx: ITransaction, club_id: str) -> int:
        query = CollectionQuery(JOURNEYS_COLLECTION, club_id).order_by("order", "desc").limit(1)
        snapshot = await tx.get(query)
        if snapshot.empty:
            return 0
        current = snapshot.docs[0].get("order")
        return current + 1 if isinstance(current, int) else 0


def journey_document(journey: Journey) -> Dict[str, Any]:
    return {
        "club_id": journey.club_id,
        "title": journey.title,
        "slug": journey.slug,
        "order": journey.order,
        "created_by": journey.created_by,
        "description": journey.description,
        "summary": journey.summary,
        "layer": journey.layer,
        "emotion_shift": journey.emotion_shift,
        "is_published": journey.is_published,
        "is_archived": journey.is_archived,
        "estimated_minutes": journey.estimated_minutes,
        "thumbnail_url": journey.thumbnail_url,
        "created_at": journey.created_at,
        "updated_at": journey.updated_at,
    }


def journey_from_document(doc: Dict[str, Any]) -> Journey:
    """Inverse of journey_document for a transactional read (id under ``id``)"""
    return Journey(
        id=doc["id"],
        club_id=doc["club_id"],
        title=doc.get("title", ""),
        slug=doc.get("slug") or "",
        order=doc.get("order", 0),
        created_by=doc.get("created_by", ""),
        description=doc.get("description") or "",
        summary=doc.get("summary") or "",
        layer=doc.get("layer") or "",
        emotion_shift=doc.get("emotion_shift") or "",
        is_published=doc.get("is_published", False),
        is_archived=doc.get("is_archived", False),
        estimated_minutes=doc.get("estimated_minutes"),
        thumbnail_url=doc.get("thumbnail_url") or "",
        created_at=doc.get("created_at"),
        updated_at=doc.get("updated_at"),
    )
