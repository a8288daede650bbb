"""
Pydantic schemas for Club Community Service
"""
from pydantic import AfterValidator, BaseModel, Field, HttpUrl, field_validator, model_validator
from typing import Annotated, Optional, List
from datetime import datetime
from bson import ObjectId

from .domain.models import IntentTag


def _validate_object_id(value: Optional[str]) -> Optional[str]:
    if value is not None and not ObjectId.is_valid(value):
        raise ValueError("Invalid ObjectId")
    return value


ObjectIdStr = Annotated[str, AfterValidator(_validate_object_id)]


# Post schemas
class PostCreate(BaseModel):
    """Post creation request"""
    content: str = Field(..., min_length=1, max_length=800)
    intent_tag: IntentTag = IntentTag.OPEN_FOR_DISCUSSION
    # Client-allocated id, lets an optimistic copy be reconciled by id
    id: Optional[ObjectIdStr] = None


class PostUpdate(BaseModel):
    """Post edit request"""
    content: str = Field(..., min_length=1, max_length=800)
    intent_tag: Optional[IntentTag] = None


class PostResponse(BaseModel):
    """Post response"""
    id: str
    club_id: str
    author_id: str
    content: str
    intent_tag: IntentTag
    comments_count: int = 0
    flagged: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PostPageResponse(BaseModel):
    """One page of posts, newest first"""
    items: List[PostResponse]
    next_cursor: Optional[str] = None
    has_more: bool


# Comment schemas
class CommentCreate(BaseModel):
    """Comment creation request"""
    content: str = Field(..., min_length=1, max_length=400)
    id: Optional[ObjectIdStr] = None


class CommentUpdate(BaseModel):
    """Comment edit request"""
    content: str = Field(..., min_length=1, max_length=400)


class CommentResponse(BaseModel):
    """Comment response"""
    id: str
    club_id: str
    post_id: str
    author_id: str
    content: str
    flagged: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CommentPageResponse(BaseModel):
    """One page of comments, newest first"""
    items: List[CommentResponse]
    next_cursor: Optional[str] = None
    has_more: bool


# Journey schemas
class JourneyCreate(BaseModel):
    """Journey creation request"""
    title: str = Field(..., max_length=120)
    description: Optional[str] = Field(None, max_length=5000)
    summary: Optional[str] = Field(None, max_length=500)
    layer: Optional[str] = Field(None, max_length=120)
    emotion_shift: Optional[str] = Field(None, max_length=120)
    is_published: Optional[bool] = None
    is_archived: Optional[bool] = None
    estimated_minutes: Optional[int] = Field(None, ge=1, le=1000)
    order: Optional[int] = Field(None, ge=0)
    thumbnail_url: Optional[HttpUrl] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value


class JourneyUpdate(BaseModel):
    """Journey update request; only the fields sent are changed"""
    title: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = Field(None, max_length=5000)
    summary: Optional[str] = Field(None, max_length=500)
    layer: Optional[str] = Field(None, max_length=120)
    emotion_shift: Optional[str] = Field(None, max_length=120)
    is_published: Optional[bool] = None
    is_archived: Optional[bool] = None
    estimated_minutes: Optional[int] = Field(None, ge=1, le=1000)
    order: Optional[int] = Field(None, ge=0)
    thumbnail_url: Optional[HttpUrl] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @model_validator(mode="after")
    def require_a_field(self):
        if all(getattr(self, name) is None for name in type(self).model_fields):
            raise ValueError("At least one field must be provided.")
        return self


class JourneyReorder(BaseModel):
    journey_ids: List[str] = Field(..., min_length=1)

    @field_validator("journey_ids")
    @classmethod
    def unique_ids(cls, value: List[str]) -> List[str]:
        value = [journey_id.strip() for journey_id in value]
        if not all(value):
            raise ValueError("Journey IDs must not be blank.")
        if len(set(value)) != len(value):
            raise ValueError("Journey IDs must be unique.")
        return value


class JourneyResponse(BaseModel):
    """Journey response"""
    id: str
    club_id: str
    title: str
    slug: str
    order: int
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

    class Config:
        from_attributes = True


class JourneyListResponse(BaseModel):
    journeys: List[JourneyResponse]


# Admin schemas
class AdminUserResponse(BaseModel):
    uid: str
    email: Optional[str] = None
    host: bool = False
    admin: bool = True


# Message responses
class MessageResponse(BaseModel):
    """Generic message response"""
    message: str
    success: bool = True


class ErrorResponse(BaseModel):
    """Error response"""
    error: str
    success: bool = False
