"""
Domain models - Core business entities
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar


class IntentTag(str, Enum):
    """Lightweight context a member attaches to a community post"""
    OPEN_FOR_DISCUSSION = "open_for_discussion"
    PREFER_HOST_INPUT = "prefer_host_input"
    ANY_RECOMMENDATIONS = "any_recommendations"
    REFLECTING = "reflecting"
    CELEBRATION = "celebration"
    SEEKING_HELP = "seeking_help"


class AuditAction(str, Enum):
    """Moderation action recorded in a club's audit log"""
    DELETE = "delete"
    HIDE = "hide"
    EDIT = "edit"


class AuditTargetType(str, Enum):
    POST = "post"
    COMMENT = "comment"


@dataclass
class Post:
    """Community post inside a club"""
    id: str
    club_id: str
    author_id: str
    content: str
    intent_tag: IntentTag
    created_at: datetime
    updated_at: datetime
    comments_count: int = 0
    flagged: bool = False
    hidden: bool = False


@dataclass
class Comment:
    """Comment attached to a community post"""
    id: str
    club_id: str
    post_id: str
    author_id: str
    content: str
    created_at: datetime
    updated_at: datetime
    flagged: bool = False
    hidden: bool = False


@dataclass
class Journey:
    """Course-like journey owned by a club, addressed by a per-club slug"""
    id: str
    club_id: str
    title: str
    slug: str
    order: int
    created_by: str
    description: str = ""
    summary: str = ""
    layer: str = ""
    emotion_shift: str = ""
    is_published: bool = False
    is_archived: bool = False
    estimated_minutes: Optional[int] = None
    thumbnail_url: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class AuditLogEntry:
    """Moderation audit log record"""
    club_id: str
    action: AuditAction
    target_id: str
    target_type: AuditTargetType
    performed_by: str
    created_at: datetime
    reason: Optional[str] = None


@dataclass
class UserRoles:
    user: bool = True
    host: bool = False
    admin: bool = False


@dataclass
class AdminUser:
    uid: str
    roles: UserRoles
    email: Optional[str] = None


@dataclass
class ClubContext:
    """Authenticated caller resolved against a club"""
    uid: str
    club_id: str
    token: str
    club: Dict[str, Any]
    user: Dict[str, Any]
    is_host: bool = False


T = TypeVar("T")


@dataclass
class FeedPage(Generic[T]):
    """One page of feed items plus the opaque cursor of its last item"""
    items: List[T] = field(default_factory=list)
    last_visible: Optional[str] = None


@dataclass
class QuerySnapshot:
    """Result of a transactional read"""
    docs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.docs
