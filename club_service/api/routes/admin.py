"""
Admin endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, status

from ...application.access import can_access_admin
from ...config import settings
from ...dependencies import get_admin_user
from ...domain.models import AdminUser
from ...schemas import AdminUserResponse

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/me", response_model=AdminUserResponse)
async def get_admin_me(user: AdminUser = Depends(get_admin_user)):
    """Current admin, who must also be on the admin email whitelist"""
    if not can_access_admin(user, settings.ADMIN_EMAIL_WHITELIST):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is restricted"
        )

    return AdminUserResponse(
        uid=user.uid,
        email=user.email,
        host=user.roles.host,
        admin=user.roles.admin,
    )
