"""
Host and admin authorization guards
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from jose import JWTError, jwt

from ..config import settings
from ..domain.exceptions import GuardError, NotFoundError
from ..domain.models import AdminUser, ClubContext, UserRoles
from ..domain.repositories import IAccountRepository

logger = logging.getLogger(__name__)


def decode_token(token: Optional[str]) -> Dict[str, Any]:
    """Verify a bearer token and return its claims"""
    if not token:
        raise GuardError("Unauthorized", status_code=401)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        raise GuardError("Unauthorized", status_code=401)

    if not payload.get("sub"):
        raise GuardError("Unauthorized", status_code=401)
    return payload


async def _load_club_and_user(
    accounts: IAccountRepository,
    club_id: Optional[str],
    token: Optional[str]
):
    if not club_id:
        raise GuardError("Club ID is required", status_code=400)

    uid = decode_token(token)["sub"]
    club, user = await asyncio.gather(accounts.find_club(club_id), accounts.find_user(uid))

    if not club:
        raise NotFoundError("Club not found")
    return uid, club, user


async def require_enabled_host(
    accounts: IAccountRepository,
    token: Optional[str],
    club_id: Optional[str]
) -> ClubContext:
    """
    Ensure the caller hosts the given club and their host account is enabled
    """
    uid, club, user = await _load_club_and_user(accounts, club_id, token)

    if not user:
        raise GuardError("User record not found")

    if club.get("host_id") != uid:
        raise GuardError("Forbidden")

    if (user.get("host_status") or {}).get("enabled") is not True:
        raise GuardError("Your host account is disabled. Contact support.")

    return ClubContext(uid=uid, club_id=club_id, token=token, club=club, user=user, is_host=True)


async def require_club_member(
    accounts: IAccountRepository,
    token: Optional[str],
    club_id: Optional[str]
) -> ClubContext:
    """Allow the club host or users who joined the club"""
    uid, club, user = await _load_club_and_user(accounts, club_id, token)
    user = user or {}

    is_host = club.get("host_id") == uid
    clubs_joined = user.get("clubs_joined")
    is_member = isinstance(clubs_joined, list) and club_id in clubs_joined

    if not is_host and not is_member:
        raise GuardError("Forbidden")

    return ClubContext(uid=uid, club_id=club_id, token=token, club=club, user=user, is_host=is_host)


async def require_admin_user(accounts: IAccountRepository, token: Optional[str]) -> AdminUser:
    """Require the admin claim and an existing user record"""
    if not token:
        raise GuardError("Missing auth token", status_code=401)

    claims = decode_token(token)
    uid = claims["sub"]

    if claims.get("admin") is not True:
        raise GuardError("User does not have admin claim")

    user = await accounts.find_user(uid)
    if not user:
        logger.info(f"Admin user document missing for {uid}")
        raise GuardError("User record not found")

    roles = user.get("roles") or {}
    return AdminUser(
        uid=uid,
        email=user.get("email") or claims.get("email"),
        roles=UserRoles(user=True, host=bool(roles.get("host", False)), admin=True),
    )


def parse_admin_whitelist(value: Optional[str]) -> List[str]:
    """Parse a comma separated admin email whitelist"""
    if not value:
        return []
    entries = (entry.strip().lower() for entry in value.split(","))
    return [entry for entry in entries if entry]


def can_access_admin(user: Optional[AdminUser], whitelist: Optional[str]) -> bool:
    """
    Admin pages need BOTH the admin role and a whitelisted email.
    An empty whitelist denies everyone.
    """
    allowed = parse_admin_whitelist(whitelist)
    if not allowed:
        return False

    if not user or not user.roles or not user.roles.admin:
        return False

    return (user.email or "").lower() in allowed
