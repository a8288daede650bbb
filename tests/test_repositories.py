import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from club_service.domain.exceptions import ConflictError
from club_service.domain.models import Comment, IntentTag, Post
from club_service.infrastructure.repositories import (
    CommentRepository,
    JourneyRepository,
    MongoTransaction,
    PostRepository,
)

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def collection_db(name, collection):
    db = MagicMock()
    setattr(db, name, collection)
    return db


def rejecting_collection():
    collection = MagicMock()
    collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key error"))
    return collection


@pytest.mark.asyncio
async def test_duplicate_post_id_is_a_conflict():
    repo = PostRepository(collection_db("posts", rejecting_collection()))
    post = Post(
        id=str(ObjectId()), club_id="club-1", author_id="member-1", content="hi",
        intent_tag=IntentTag.REFLECTING, created_at=NOW, updated_at=NOW,
    )

    with pytest.raises(ConflictError) as exc_info:
        await repo.create(post)

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_duplicate_comment_id_is_a_conflict():
    repo = CommentRepository(collection_db("comments", rejecting_collection()))
    comment = Comment(
        id=str(ObjectId()), club_id="club-1", post_id="post-1", author_id="member-1",
        content="hi", created_at=NOW, updated_at=NOW,
    )

    with pytest.raises(ConflictError, match="Comment already exists"):
        await repo.create(comment)


@pytest.mark.asyncio
async def test_transaction_update_stays_inside_club():
    db = MagicMock()
    db["posts"].update_one = AsyncMock()
    post_id = str(ObjectId())
    tx = MongoTransaction(db, session="session")

    await tx.update("posts", "club-1", post_id, {"comments_count": 2})

    filter_doc, update_doc = db["posts"].update_one.call_args.args
    assert filter_doc == {"_id": ObjectId(post_id), "club_id": "club-1"}
    assert update_doc == {"$set": {"comments_count": 2}}
    assert db["posts"].update_one.call_args.kwargs == {"session": "session"}


@pytest.mark.asyncio
async def test_missing_slug_query_matches_blank_slugs():
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[
        {"_id": ObjectId(), "club_id": "club-1", "title": "Intro", "slug": "  "},
    ])
    collection = MagicMock()
    collection.find = MagicMock(return_value=cursor)
    repo = JourneyRepository(collection_db("journeys", collection))

    journeys = await repo.find_missing_slug()

    branches = collection.find.call_args.args[0]["$or"]
    patterns = [b["slug"]["$regex"] for b in branches if isinstance(b.get("slug"), dict) and "$regex" in b["slug"]]
    assert len(patterns) == 1
    assert re.match(patterns[0], "   ")
    assert re.match(patterns[0], "")
    assert not re.match(patterns[0], "intro")
    assert [j.title for j in journeys] == ["Intro"]
