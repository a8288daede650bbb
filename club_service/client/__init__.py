from .community_client import CommunityClient
from .feed_store import PaginatedFeedStore, comments_feed, posts_feed


__all__ = [
    # community_client.py
    "CommunityClient",
    # feed_store.py
    "PaginatedFeedStore",
    "posts_feed",
    "comments_feed",
]
