"""
Community post and comment endpoints
"""
from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from ...application.services import CommunityService, sanitize_limit
from ...config import settings
from ...dependencies import get_club_member, get_community_service
from ...domain.models import AuditAction, ClubContext, FeedPage
from ...schemas import (
    CommentCreate,
    CommentPageResponse,
    CommentResponse,
    CommentUpdate,
    MessageResponse,
    PostCreate,
    PostPageResponse,
    PostResponse,
    PostUpdate,
)

router = APIRouter(prefix="/api/v1/clubs/{club_id}/posts", tags=["Community"])


def _has_more(page: FeedPage, page_size: int) -> bool:
    return len(page.items) == sanitize_limit(page_size) and page.last_visible is not None


@router.get("", response_model=PostPageResponse)
async def list_posts(
    club_id: str,
    page_size: int = Query(settings.POSTS_PAGE_SIZE, ge=1, le=100),
    cursor: Optional[str] = None,
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    """
    Get visible posts of a club, newest first

    - **page_size**: Items per page (clamped to 20)
    - **cursor**: next_cursor of the previous page
    """
    page = await service.fetch_posts_paginated(club_id, page_size, cursor)
    return PostPageResponse(
        items=[PostResponse.model_validate(post) for post in page.items],
        next_cursor=page.last_visible,
        has_more=_has_more(page, page_size),
    )


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    club_id: str,
    payload: PostCreate,
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    """
    Create a post

    - **id**: Optional client-allocated ObjectId
    """
    post = await service.create_post(club_id, member.uid, payload.content, payload.intent_tag, payload.id)
    return PostResponse.model_validate(post)


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    club_id: str,
    post_id: str,
    payload: PostUpdate,
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    """Edit a post; only its author or the club host may"""
    post = await service.update_post_content(
        club_id,
        post_id,
        member.uid,
        payload.content,
        payload.intent_tag,
        is_host=member.is_host,
    )
    return PostResponse.model_validate(post)


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    club_id: str,
    post_id: str,
    mode: AuditAction = AuditAction.DELETE,
    reason: Optional[str] = Query(None, max_length=500),
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    """
    Soft delete or hide a post

    - **mode**: `delete` or `hide`
    - **reason**: Optional moderation note for the audit log
    """
    await service.soft_delete_post(club_id, post_id, member.uid, reason, mode, is_host=member.is_host)
    return MessageResponse(message=f"Post {'hidden' if mode == AuditAction.HIDE else 'deleted'} successfully")


@router.get("/{post_id}/comments", response_model=CommentPageResponse)
async def list_comments(
    club_id: str,
    post_id: str,
    page_size: int = Query(settings.COMMENTS_PAGE_SIZE, ge=1, le=100),
    cursor: Optional[str] = None,
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    """Get visible comments of a post, newest first"""
    page = await service.fetch_comments_paginated(club_id, post_id, page_size, cursor)
    return CommentPageResponse(
        items=[CommentResponse.model_validate(comment) for comment in page.items],
        next_cursor=page.last_visible,
        has_more=_has_more(page, page_size),
    )


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_comment(
    club_id: str,
    post_id: str,
    payload: CommentCreate,
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    comment = await service.create_comment(club_id, post_id, member.uid, payload.content, payload.id)
    return CommentResponse.model_validate(comment)


@router.patch("/{post_id}/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    club_id: str,
    post_id: str,
    comment_id: str,
    payload: CommentUpdate,
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    comment = await service.update_comment(
        club_id,
        post_id,
        comment_id,
        member.uid,
        payload.content,
        is_host=member.is_host,
    )
    return CommentResponse.model_validate(comment)


@router.delete("/{post_id}/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    club_id: str,
    post_id: str,
    comment_id: str,
    mode: AuditAction = AuditAction.DELETE,
    reason: Optional[str] = Query(None, max_length=500),
    member: ClubContext = Depends(get_club_member),
    service: CommunityService = Depends(get_community_service)
):
    await service.soft_delete_comment(
        club_id,
        post_id,
        comment_id,
        member.uid,
        reason,
        mode,
        is_host=member.is_host,
    )
    return MessageResponse(message=f"Comment {'hidden' if mode == AuditAction.HIDE else 'deleted'} successfully")
